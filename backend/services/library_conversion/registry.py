"""
GPI Document Hub - Conversion Request Registry

Turns a caller's folder selection into durable conversion requests.

For each folder the registry:
1. Skips it if a conversion request already exists
2. Resolves its sharing through the MembershipResolver
3. Persists one conversion request carrying the sharing principals and the
   permission tier matching the folder's access level

Every input folder gets exactly one result (QUEUED, SKIPPED or ERROR), in
the caller's order. Record inserts are partial: one rejected request does
not block the others.
"""

import logging
from typing import Dict, Any, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import BulkWriteError, PyMongoError

from .config import REQUEST_LIST_LIMIT
from .errors import ResolverError
from .models import AccessLevel, ConversionRequest, Folder, join_principal_ids
from .resolver import FolderSharing, MembershipResolver
from .results import ConversionResult, ConversionStatus

logger = logging.getLogger(__name__)

DUPLICATE_KEY_ERROR = 11000


def skip_message(request_id: str) -> str:
    return (
        f"Folder already has conversion request {request_id}. "
        f"Delete conversion request {request_id} to force re-conversion."
    )


class ConversionRequestRegistry:
    """
    Deduplicates and persists per-folder conversion requests.

    Usage:
        registry = ConversionRequestRegistry(db, resolver)
        results = await registry.prepare_for_conversion(
            folders, credential, read_only_tier_id, read_write_tier_id
        )
    """

    def __init__(self, db: AsyncIOMotorDatabase, resolver: MembershipResolver):
        self.db = db
        self.collection = db.conversion_requests
        self.resolver = resolver

    async def prepare_for_conversion(
        self,
        folders: List[Folder],
        credential: Optional[str],
        read_only_tier_id: str,
        read_write_tier_id: str
    ) -> List[ConversionResult]:
        """
        Queue conversion requests for the given folders.

        Args:
            folders: Folders to convert, in caller order
            credential: Opaque credential handed to the resolver
            read_only_tier_id: Permission tier granted for ReadOnly folders
            read_write_tier_id: Permission tier granted for ReadWrite folders

        Returns:
            One ConversionResult per input folder, same order
        """
        results: Dict[str, ConversionResult] = {}
        candidates: Dict[str, Folder] = {}
        for folder in folders:
            if folder.id not in results:
                results[folder.id] = ConversionResult.for_folder(folder.id)
                candidates[folder.developer_name] = folder

        logger.info(f"Preparing {len(results)} folders for conversion")

        await self._skip_existing(results, candidates)

        if candidates:
            tier_by_access = {
                AccessLevel.READ_ONLY.value: read_only_tier_id,
                AccessLevel.READ_WRITE.value: read_write_tier_id,
            }
            requests = await self._build_requests(candidates, credential, tier_by_access, results)
            await self._insert_requests(requests, results)

        for result in results.values():
            if not result.is_terminal:
                # Should not happen; never let a folder drop out silently
                result.mark(ConversionStatus.ERROR, "Folder was not processed")

        ordered = [results[folder.id] for folder in folders]
        counts = self._count(results.values())
        logger.info(
            f"Prepared folders: {counts[ConversionStatus.QUEUED]} queued, "
            f"{counts[ConversionStatus.SKIPPED]} skipped, "
            f"{counts[ConversionStatus.ERROR]} errors"
        )
        return ordered

    async def _skip_existing(
        self,
        results: Dict[str, ConversionResult],
        candidates: Dict[str, Folder]
    ) -> None:
        """Mark folders that already have a request and drop them from candidates."""
        cursor = self.collection.find(
            {"folder_id": {"$in": list(results)}},
            {"_id": 0, "id": 1, "folder_id": 1, "folder_developer_name": 1}
        )
        names_by_id = {folder.id: name for name, folder in candidates.items()}
        async for existing in cursor:
            folder_id = existing["folder_id"]
            results[folder_id].mark(ConversionStatus.SKIPPED, skip_message(existing["id"]))
            candidates.pop(names_by_id.get(folder_id), None)

    async def _build_requests(
        self,
        candidates: Dict[str, Folder],
        credential: Optional[str],
        tier_by_access: Dict[str, str],
        results: Dict[str, ConversionResult]
    ) -> List[ConversionRequest]:
        try:
            sharing_by_name = await self.resolver.resolve(list(candidates), credential)
        except ResolverError as e:
            logger.error(f"Sharing lookup failed for {len(candidates)} folders: {e}")
            for folder in candidates.values():
                results[folder.id].mark(ConversionStatus.ERROR, str(e))
            return []

        requests = []
        for developer_name, folder in candidates.items():
            result = results[folder.id]
            sharing: Optional[FolderSharing] = sharing_by_name.get(developer_name)

            if sharing is None:
                result.mark(
                    ConversionStatus.ERROR,
                    f"Sharing lookup returned nothing for folder {developer_name}"
                )
                continue
            if sharing.error:
                result.mark(ConversionStatus.ERROR, sharing.error)
                continue

            tier_id = tier_by_access.get(sharing.access_level)
            if tier_id is None:
                result.mark(
                    ConversionStatus.ERROR,
                    f"Unsupported access level '{sharing.access_level}' for folder {developer_name}"
                )
                continue

            requests.append(ConversionRequest(
                folder_id=folder.id,
                folder_name=sharing.name or folder.name,
                folder_developer_name=developer_name,
                principal_ids=join_principal_ids(sharing.principal_ids),
                permission_tier_id=tier_id,
            ))
        return requests

    async def _insert_requests(
        self,
        requests: List[ConversionRequest],
        results: Dict[str, ConversionResult]
    ) -> None:
        """Insert requests without letting one failure block the rest."""
        if not requests:
            return

        failures: Dict[int, Tuple[int, str]] = {}
        try:
            await self.collection.insert_many([r.to_dict() for r in requests], ordered=False)
        except BulkWriteError as e:
            for write_error in e.details.get("writeErrors", []):
                failures[write_error["index"]] = (write_error.get("code"), write_error.get("errmsg", ""))
        except PyMongoError as e:
            logger.error(f"Error writing conversion requests: {e}")
            for request in requests:
                results[request.folder_id].mark(ConversionStatus.ERROR, str(e))
            return

        for index, request in enumerate(requests):
            result = results[request.folder_id]
            if index not in failures:
                result.mark(ConversionStatus.QUEUED, f"Conversion request {request.id} queued")
                continue

            code, message = failures[index]
            if code == DUPLICATE_KEY_ERROR:
                # Another caller queued this folder between our check and insert
                existing = await self.collection.find_one(
                    {"folder_id": request.folder_id}, {"_id": 0, "id": 1}
                )
                existing_id = existing["id"] if existing else "unknown"
                result.mark(ConversionStatus.SKIPPED, skip_message(existing_id))
            else:
                logger.warning(f"Conversion request for folder {request.folder_id} rejected: {message}")
                result.mark(ConversionStatus.ERROR, message)

    @staticmethod
    def _count(results) -> Dict[ConversionStatus, int]:
        counts = {status: 0 for status in ConversionStatus}
        for result in results:
            counts[result.status] += 1
        return counts

    # =========================================================================
    # REQUEST ADMINISTRATION
    # =========================================================================

    async def get_request(self, request_id: str) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"id": request_id}, {"_id": 0})

    async def list_requests(
        self,
        pending_only: bool = False,
        limit: int = REQUEST_LIST_LIMIT
    ) -> List[Dict[str, Any]]:
        """List requests, optionally only those not yet provisioned."""
        query = {"library_id": None} if pending_only else {}
        cursor = self.collection.find(query, {"_id": 0}).limit(limit)
        return await cursor.to_list(length=limit)

    async def delete_request(self, request_id: str) -> bool:
        """
        Delete a conversion request so its folder can be converted again.

        This is the manual reset; nothing in the conversion flow deletes
        requests on its own.
        """
        result = await self.collection.delete_one({"id": request_id})
        if result.deleted_count:
            logger.info(f"Deleted conversion request {request_id}")
        return result.deleted_count > 0
