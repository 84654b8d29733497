"""
GPI Document Hub - Folder Conversion Storage

MongoDB collections used by folder conversion and their indexes.

Collections:
- conversion_requests: one tracking record per legacy folder
- conversion_libraries / conversion_groups: target containers and groups
- conversion_group_members / conversion_library_members: access grants
- conversion_file_versions: migrated documents
- conversion_events: completion events awaiting the request updater

The unique indexes are what keep conversion idempotent when two callers
race on the same folder or document.
"""

import logging
from motor.motor_asyncio import AsyncIOMotorDatabase

logger = logging.getLogger(__name__)


async def ensure_conversion_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create indexes for the conversion collections."""
    await db.conversion_requests.create_index("id", unique=True)
    await db.conversion_requests.create_index("folder_id", unique=True)
    await db.conversion_requests.create_index("library_id")

    await db.conversion_libraries.create_index("id", unique=True)
    await db.conversion_libraries.create_index("developer_name", unique=True)
    await db.conversion_groups.create_index("id", unique=True)
    await db.conversion_groups.create_index("developer_name", unique=True)

    await db.conversion_group_members.create_index(
        [("group_id", 1), ("principal_id", 1)], unique=True
    )
    await db.conversion_library_members.create_index(
        [("library_id", 1), ("member_id", 1)], unique=True
    )

    await db.conversion_file_versions.create_index("id", unique=True)
    await db.conversion_file_versions.create_index("origin_document_id", unique=True)
    await db.conversion_file_versions.create_index("library_id")

    await db.conversion_events.create_index("id", unique=True)
    await db.conversion_events.create_index([("status", 1), ("created_utc", 1)])

    logger.info("Conversion indexes created")
