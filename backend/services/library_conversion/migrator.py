"""
GPI Document Hub - Document Migrator

Converts legacy documents into file versions inside the library provisioned
for their folder.

The migrator:
1. Finds each document folder's library through its derived name
2. Skips documents that already have a file version in any library; a
   document is migrated at most once, even if it moved to another folder
3. Builds file versions carrying the document's audit fields and a
   back-reference to the origin document and folder
4. Inserts the batch in one operation

Documents whose folder has no library yet are reported as errors so the
caller can provision the folder and retry; they are never dropped silently.
"""

import logging
from typing import Dict, List, Set

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from .errors import MigrationError
from .models import FileVersion, LegacyDocument, derive_library_name
from .results import ConversionResult, ConversionStatus

logger = logging.getLogger(__name__)


class DocumentMigrator:
    """
    Migrates legacy documents into their folder's library.

    Usage:
        migrator = DocumentMigrator(db)
        results = await migrator.migrate_documents(documents)
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.requests = db.conversion_requests
        self.libraries = db.conversion_libraries
        self.file_versions = db.conversion_file_versions

    async def migrate_documents(self, documents: List[LegacyDocument]) -> List[ConversionResult]:
        """
        Migrate a batch of documents.

        Returns:
            One ConversionResult per input document, same order

        Raises:
            MigrationError: if the file version insert fails; retry the batch
        """
        results = [ConversionResult.for_document(doc.id) for doc in documents]
        if not documents:
            return results

        logger.info(f"Migrating {len(documents)} documents")

        try:
            library_by_folder = await self._resolve_libraries({doc.folder_id for doc in documents})
            migrated = await self._already_migrated({doc.id for doc in documents})
        except PyMongoError as e:
            logger.error(f"Error looking up migration state: {e}")
            raise MigrationError(f"Migration lookup failed: {e}") from e

        pending = []
        for doc, result in zip(documents, results):
            library_id = library_by_folder.get(doc.folder_id)
            if library_id is None:
                result.mark(
                    ConversionStatus.ERROR,
                    f"No library provisioned for folder {doc.folder_id}. "
                    f"Provision the folder's conversion request and retry."
                )
                continue
            migrated_into = migrated.get(doc.id)
            if migrated_into == library_id:
                result.mark(ConversionStatus.SKIPPED, f"Document {doc.id} already migrated")
                continue
            if migrated_into is not None:
                result.mark(
                    ConversionStatus.SKIPPED,
                    f"Document {doc.id} already migrated into library {migrated_into}, "
                    f"not folder {doc.folder_id}'s library {library_id}"
                )
                continue

            migrated[doc.id] = library_id
            version = FileVersion.from_document(doc, library_id)
            pending.append((version, result))

        if pending:
            try:
                await self.file_versions.insert_many([version.to_dict() for version, _ in pending])
            except PyMongoError as e:
                logger.error(f"Error writing {len(pending)} file versions: {e}")
                raise MigrationError(f"File version insert failed: {e}") from e

        for version, result in pending:
            result.mark(ConversionStatus.CONVERTED, f"Created file version {version.id}")

        skipped = sum(1 for r in results if r.status == ConversionStatus.SKIPPED)
        errors = sum(1 for r in results if r.status == ConversionStatus.ERROR)
        logger.info(
            f"Document migration completed: {len(pending)} converted, "
            f"{skipped} skipped, {errors} errors"
        )
        return results

    async def _resolve_libraries(self, folder_ids: Set[str]) -> Dict[str, str]:
        """Map folder id to library id for folders whose library exists."""
        names_by_folder: Dict[str, str] = {}
        cursor = self.requests.find(
            {"folder_id": {"$in": list(folder_ids)}},
            {"_id": 0, "folder_id": 1, "folder_developer_name": 1}
        )
        async for request in cursor:
            names_by_folder[request["folder_id"]] = derive_library_name(
                request["folder_developer_name"]
            )

        library_ids: Dict[str, str] = {}
        cursor = self.libraries.find(
            {"developer_name": {"$in": list(set(names_by_folder.values()))}},
            {"_id": 0, "id": 1, "developer_name": 1}
        )
        async for library in cursor:
            library_ids[library["developer_name"]] = library["id"]

        return {
            folder_id: library_ids[name]
            for folder_id, name in names_by_folder.items()
            if name in library_ids
        }

    async def _already_migrated(self, document_ids: Set[str]) -> Dict[str, str]:
        """Map origin document id to the library holding its file version."""
        cursor = self.file_versions.find(
            {"origin_document_id": {"$in": list(document_ids)}},
            {"_id": 0, "origin_document_id": 1, "library_id": 1}
        )
        return {version["origin_document_id"]: version["library_id"] async for version in cursor}
