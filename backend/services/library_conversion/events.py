"""
GPI Document Hub - Library Provisioned Events

Provisioning creates libraries and groups, but recording their ids on the
conversion requests happens later, in a separate unit of work. The
provisioner writes a durable event to the conversion_events collection and
ConversionRequestUpdater applies it.

Delivery is at-least-once: an event may be applied more than once (for
example when marking it processed fails). Applying it overwrites request
fields by id with values taken from the event itself, so a replay leaves
the requests unchanged.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, ValidationError
from pymongo.errors import PyMongoError

from .config import EVENT_BATCH_SIZE, EVENT_MAX_ATTEMPTS
from .models import new_id, utc_now

logger = logging.getLogger(__name__)

LIBRARY_PROVISIONED = "library_provisioned"


class EventStatus:
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"  # Gave up after EVENT_MAX_ATTEMPTS


class ProvisionedRequest(BaseModel):
    """Library and group created for one conversion request."""
    request_id: str
    library_id: str
    group_id: str


class LibraryProvisionedEvent(BaseModel):
    """Payload of a library_provisioned event."""
    provisioned_utc: str
    requests: List[ProvisionedRequest]


class ConversionEventOutbox:
    """Durable store for completion events awaiting the request updater."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.conversion_events

    async def publish(self, requests: List[ProvisionedRequest]) -> str:
        """Store a library_provisioned event and return its id."""
        event = LibraryProvisionedEvent(
            provisioned_utc=utc_now(),
            requests=requests
        )
        event_id = new_id()
        await self.collection.insert_one({
            "id": event_id,
            "event_type": LIBRARY_PROVISIONED,
            "payload": event.model_dump_json(),
            "status": EventStatus.PENDING,
            "attempts": 0,
            "last_error": None,
            "created_utc": event.provisioned_utc,
            "processed_utc": None,
        })
        logger.info(f"Published {LIBRARY_PROVISIONED} event {event_id} for {len(requests)} requests")
        return event_id

    async def pending(self, limit: int = EVENT_BATCH_SIZE) -> List[Dict[str, Any]]:
        cursor = self.collection.find(
            {"status": EventStatus.PENDING}, {"_id": 0}
        ).sort("created_utc", 1).limit(limit)
        return await cursor.to_list(length=limit)

    async def mark_processed(self, event_id: str) -> None:
        await self.collection.update_one(
            {"id": event_id},
            {"$set": {
                "status": EventStatus.PROCESSED,
                "processed_utc": datetime.now(timezone.utc).isoformat(),
                "last_error": None,
            }}
        )

    async def mark_failed(self, event: Dict[str, Any], error: str) -> None:
        """Record a failed attempt; park the event once it runs out of attempts."""
        attempts = event.get("attempts", 0) + 1
        status = EventStatus.FAILED if attempts >= EVENT_MAX_ATTEMPTS else EventStatus.PENDING
        await self.collection.update_one(
            {"id": event["id"]},
            {"$set": {"status": status, "last_error": error, "attempts": attempts}}
        )


class ConversionRequestUpdater:
    """
    Applies library_provisioned events to conversion requests.

    Usage:
        updater = ConversionRequestUpdater(db)
        summary = await updater.process_pending()
    """

    def __init__(self, db: AsyncIOMotorDatabase, outbox: Optional[ConversionEventOutbox] = None):
        self.requests = db.conversion_requests
        self.outbox = outbox or ConversionEventOutbox(db)

    async def apply(self, event: LibraryProvisionedEvent) -> int:
        """Write library and group ids onto the requests. Returns requests matched."""
        matched = 0
        for item in event.requests:
            result = await self.requests.update_one(
                {"id": item.request_id},
                {"$set": {
                    "library_id": item.library_id,
                    "group_id": item.group_id,
                    "provisioned_utc": event.provisioned_utc,
                }}
            )
            if result.matched_count:
                matched += 1
            else:
                # Request was deleted (manual reset) after provisioning
                logger.warning(f"Conversion request {item.request_id} not found; skipping update")
        return matched

    async def process_pending(self, limit: int = EVENT_BATCH_SIZE) -> Dict[str, int]:
        """Drain pending events, oldest first."""
        events = await self.outbox.pending(limit)
        processed = 0
        failed = 0
        updated = 0

        for record in events:
            try:
                event = LibraryProvisionedEvent.model_validate_json(record["payload"])
                updated += await self.apply(event)
            except (ValidationError, PyMongoError) as e:
                logger.error(f"Failed to apply event {record['id']}: {e}")
                await self.outbox.mark_failed(record, str(e))
                failed += 1
                continue

            await self.outbox.mark_processed(record["id"])
            processed += 1

        if events:
            logger.info(
                f"Processed {processed} conversion events "
                f"({updated} requests updated, {failed} failed)"
            )
        return {"processed": processed, "failed": failed, "requests_updated": updated}
