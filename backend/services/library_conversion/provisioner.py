"""
GPI Document Hub - Library Provisioner

Creates the library and permission group for each queued conversion request
and mirrors the folder's sharing as group membership.

Steps:
1. Derive the library/group developer name from the folder developer name
2. Reuse existing libraries/groups with that name, create the missing ones
   (groups first, then libraries)
3. Sync group membership with the sharing principals (add new ones, remove
   those no longer listed) and grant the group the request's permission
   tier on the library, updating the tier of an existing grant
4. Publish a library_provisioned event; ConversionRequestUpdater records the
   new ids on the requests in a separate unit of work

A storage failure aborts the whole batch with ProvisioningError and no event
is published. Every step looks up before it inserts, so retrying the same
batch never duplicates libraries, groups or grants, and re-provisioning a
folder after a reset brings its access in line with the current sharing.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, Any, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from .errors import ProvisioningError
from .events import ConversionEventOutbox, ProvisionedRequest
from .models import ConversionRequest, new_id, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ProvisioningSummary:
    """Counts for one provisioning run."""
    requests: int = 0
    groups_created: int = 0
    groups_reused: int = 0
    libraries_created: int = 0
    libraries_reused: int = 0
    group_members_added: int = 0
    group_members_removed: int = 0
    library_members_added: int = 0
    library_members_updated: int = 0
    event_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class LibraryProvisioner:
    """
    Provisions libraries and permission groups for conversion requests.

    Usage:
        provisioner = LibraryProvisioner(db)
        summary = await provisioner.provision_libraries(requests)
    """

    def __init__(self, db: AsyncIOMotorDatabase, outbox: Optional[ConversionEventOutbox] = None):
        self.db = db
        self.libraries = db.conversion_libraries
        self.groups = db.conversion_groups
        self.group_members = db.conversion_group_members
        self.library_members = db.conversion_library_members
        self.outbox = outbox or ConversionEventOutbox(db)

    async def provision_libraries(self, requests: List[ConversionRequest]) -> ProvisioningSummary:
        """
        Provision libraries and groups for a batch of requests.

        Raises:
            ProvisioningError: if a request has no folder developer name, or
                if any write fails; retry the whole batch
        """
        summary = ProvisioningSummary(requests=len(requests))
        if not requests:
            return summary

        # Derived name -> display name, first request wins
        display_names: Dict[str, str] = {}
        for request in requests:
            try:
                library_name = request.library_name
            except ValueError as e:
                logger.error(f"Cannot provision request {request.id} for folder {request.folder_id}: {e}")
                raise ProvisioningError(
                    f"Request {request.id} for folder {request.folder_id} has no library name: {e}"
                ) from e
            display_names.setdefault(library_name, request.folder_name)

        logger.info(
            f"Provisioning {len(display_names)} libraries for {len(requests)} conversion requests"
        )

        try:
            group_ids, created = await self._ensure_named(self.groups, display_names)
            summary.groups_created = created
            summary.groups_reused = len(group_ids) - created

            library_ids, created = await self._ensure_named(self.libraries, display_names)
            summary.libraries_created = created
            summary.libraries_reused = len(library_ids) - created

            summary.group_members_added, summary.group_members_removed = (
                await self._sync_group_members(requests, group_ids)
            )
            summary.library_members_added, summary.library_members_updated = (
                await self._sync_library_members(requests, group_ids, library_ids)
            )

            summary.event_id = await self.outbox.publish([
                ProvisionedRequest(
                    request_id=request.id,
                    library_id=library_ids[request.library_name],
                    group_id=group_ids[request.library_name],
                )
                for request in requests
            ])
        except PyMongoError as e:
            logger.error(f"Provisioning failed for {len(requests)} requests: {e}")
            raise ProvisioningError(f"Provisioning failed: {e}") from e

        logger.info(
            f"Provisioned libraries: {summary.libraries_created} created, "
            f"{summary.libraries_reused} reused, "
            f"{summary.group_members_added} group members added, "
            f"{summary.group_members_removed} removed, "
            f"{summary.library_members_added} library grants added, "
            f"{summary.library_members_updated} updated"
        )
        return summary

    async def _ensure_named(self, collection, display_names: Dict[str, str]) -> Tuple[Dict[str, str], int]:
        """
        Look up or create one record per developer name.

        Returns:
            (developer name -> record id, number of records created)
        """
        ids: Dict[str, str] = {}
        cursor = collection.find(
            {"developer_name": {"$in": list(display_names)}},
            {"_id": 0, "id": 1, "developer_name": 1}
        )
        async for existing in cursor:
            ids[existing["developer_name"]] = existing["id"]

        now = utc_now()
        new_records = []
        for developer_name, name in display_names.items():
            if developer_name in ids:
                continue
            record = {
                "id": new_id(),
                "developer_name": developer_name,
                "name": name,
                "created_utc": now,
            }
            new_records.append(record)
            ids[developer_name] = record["id"]

        if new_records:
            await collection.insert_many(new_records)
        return ids, len(new_records)

    async def _sync_group_members(
        self,
        requests: List[ConversionRequest],
        group_ids: Dict[str, str]
    ) -> Tuple[int, int]:
        """
        Make each group's membership match its requests' sharing principals.

        Returns:
            (members added, members removed)
        """
        wanted: Dict[Tuple[str, str], None] = {}
        for request in requests:
            group_id = group_ids[request.library_name]
            for principal_id in request.principals:
                wanted[(group_id, principal_id)] = None

        existing: Dict[Tuple[str, str], str] = {}
        cursor = self.group_members.find(
            {"group_id": {"$in": list(set(group_ids.values()))}},
            {"_id": 0, "id": 1, "group_id": 1, "principal_id": 1}
        )
        async for member in cursor:
            existing[(member["group_id"], member["principal_id"])] = member["id"]

        new_members = [
            {"id": new_id(), "group_id": group_id, "principal_id": principal_id}
            for group_id, principal_id in wanted
            if (group_id, principal_id) not in existing
        ]
        if new_members:
            await self.group_members.insert_many(new_members)

        # Principals that lost access to the folder
        stale_ids = [member_id for key, member_id in existing.items() if key not in wanted]
        if stale_ids:
            await self.group_members.delete_many({"id": {"$in": stale_ids}})
            logger.info(f"Removed {len(stale_ids)} group members no longer sharing their folder")

        return len(new_members), len(stale_ids)

    async def _sync_library_members(
        self,
        requests: List[ConversionRequest],
        group_ids: Dict[str, str],
        library_ids: Dict[str, str]
    ) -> Tuple[int, int]:
        """
        Grant each group its request's permission tier on the library.

        Returns:
            (grants added, grants whose tier changed)
        """
        existing: Dict[Tuple[str, str], Dict[str, Any]] = {}
        cursor = self.library_members.find(
            {"library_id": {"$in": list(set(library_ids.values()))}},
            {"_id": 0, "id": 1, "library_id": 1, "member_id": 1, "permission_tier_id": 1}
        )
        async for member in cursor:
            existing[(member["library_id"], member["member_id"])] = member

        # Library/group pair -> tier, first request wins
        tiers: Dict[Tuple[str, str], str] = {}
        for request in requests:
            key = (library_ids[request.library_name], group_ids[request.library_name])
            tiers.setdefault(key, request.permission_tier_id)

        new_members = []
        updated = 0
        for (library_id, member_id), tier_id in tiers.items():
            grant = existing.get((library_id, member_id))
            if grant is None:
                new_members.append({
                    "id": new_id(),
                    "library_id": library_id,
                    "member_id": member_id,
                    "permission_tier_id": tier_id,
                })
            elif grant.get("permission_tier_id") != tier_id:
                await self.library_members.update_one(
                    {"id": grant["id"]},
                    {"$set": {"permission_tier_id": tier_id}}
                )
                updated += 1

        if new_members:
            await self.library_members.insert_many(new_members)
        return len(new_members), updated
