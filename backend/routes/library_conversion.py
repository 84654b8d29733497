"""
Folder Conversion API Routes

REST endpoints for converting legacy folders into libraries and migrating
their documents. Provisioning and completion-event processing run as
background tasks, separate from the request that triggers them.
"""

import base64
import binascii
import logging
from typing import Optional, List

from fastapi import APIRouter, HTTPException, Query, BackgroundTasks
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from services.library_conversion import (
    ConversionRequest,
    ConversionRequestRegistry,
    ConversionRequestUpdater,
    DocumentMigrator,
    DocumentType,
    Folder,
    LegacyDocument,
    LibraryProvisioner,
    MembershipResolver,
    MigrationError,
    ProvisioningError,
)
from services.library_conversion.config import is_conversion_enabled, EVENT_BATCH_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversion", tags=["Folder Conversion"])

# Database and resolver - set by main app
db = None
resolver: Optional[MembershipResolver] = None

# Track background provisioning status
provisioning_status = {
    "running": False,
    "last_result": None,
    "last_event_result": None,
}


def set_dependencies(database, membership_resolver: MembershipResolver):
    global db, resolver
    db = database
    resolver = membership_resolver


def _require_db():
    if not is_conversion_enabled():
        raise HTTPException(status_code=503, detail="Folder conversion is disabled")
    if db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return db


def get_registry() -> ConversionRequestRegistry:
    database = _require_db()
    if resolver is None:
        raise HTTPException(status_code=500, detail="Membership resolver not configured")
    return ConversionRequestRegistry(database, resolver)


# ==================== MODELS ====================

class FolderIn(BaseModel):
    id: str
    developerName: str
    name: str = ""


class PrepareRequest(BaseModel):
    """Request body for folder preparation."""
    folders: List[FolderIn]
    credential: Optional[str] = None
    readOnlyTierId: str
    readWriteTierId: str


class ProvisionRequest(BaseModel):
    """Request body for provisioning. Defaults to every unprovisioned request."""
    requestIds: Optional[List[str]] = None
    maxCount: int = 100


class ProvisionResponse(BaseModel):
    scheduled: int
    running: bool


class DocumentIn(BaseModel):
    id: str
    folderId: str
    type: DocumentType
    title: str
    authorId: str
    bodyBase64: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    keywords: Optional[str] = None
    fileExtension: Optional[str] = None
    createdById: Optional[str] = None
    createdDate: Optional[str] = None
    lastModifiedById: Optional[str] = None
    lastModifiedDate: Optional[str] = None

    def to_document(self) -> LegacyDocument:
        body = None
        if self.bodyBase64:
            try:
                body = base64.b64decode(self.bodyBase64, validate=True)
            except (binascii.Error, ValueError):
                raise HTTPException(status_code=400, detail=f"Document {self.id} body is not valid base64")
        return LegacyDocument(
            id=self.id,
            folder_id=self.folderId,
            doc_type=self.type,
            title=self.title,
            author_id=self.authorId,
            body=body,
            url=self.url,
            description=self.description,
            keywords=self.keywords,
            file_extension=self.fileExtension,
            created_by_id=self.createdById,
            created_date=self.createdDate,
            last_modified_by_id=self.lastModifiedById,
            last_modified_date=self.lastModifiedDate,
        )


class MigrateDocumentsRequest(BaseModel):
    documents: List[DocumentIn]


# ==================== ENDPOINTS ====================

@router.get("/health")
async def health():
    return {"enabled": is_conversion_enabled(), "database": db is not None}


@router.post("/folders/prepare")
async def prepare_folders(request: PrepareRequest):
    """
    Queue conversion requests for folders.

    Returns one result per folder in request order. Folders that already
    have a conversion request are skipped.
    """
    registry = get_registry()
    folders = [Folder(id=f.id, developer_name=f.developerName, name=f.name) for f in request.folders]
    logger.info(f"Prepare request for {len(folders)} folders")

    results = await registry.prepare_for_conversion(
        folders,
        request.credential,
        request.readOnlyTierId,
        request.readWriteTierId
    )
    return {"results": [r.to_dict() for r in results]}


@router.post("/libraries/provision", response_model=ProvisionResponse)
async def provision_libraries(request: ProvisionRequest, background_tasks: BackgroundTasks):
    """
    Provision libraries for queued conversion requests.

    Returns immediately; provisioning and the request bookkeeping update run
    in the background. Poll /libraries/provision/status for the outcome.
    """
    database = _require_db()

    if provisioning_status["running"]:
        return ProvisionResponse(scheduled=0, running=True)

    if request.requestIds:
        query = {"id": {"$in": request.requestIds}}
    else:
        query = {"library_id": None}
    cursor = database.conversion_requests.find(query, {"_id": 0}).limit(request.maxCount)
    records = await cursor.to_list(length=request.maxCount)
    requests = [ConversionRequest.from_dict(r) for r in records]

    if not requests:
        return ProvisionResponse(scheduled=0, running=False)

    async def run_provisioning():
        try:
            summary = await LibraryProvisioner(database).provision_libraries(requests)
            provisioning_status["last_result"] = summary.to_dict()
        except ProvisioningError as e:
            logger.error(f"Background provisioning error: {e}")
            provisioning_status["last_result"] = {"error": str(e)}
        except Exception as e:
            logger.error(f"Unexpected background provisioning error: {e}")
            provisioning_status["last_result"] = {"error": str(e)}
        finally:
            provisioning_status["running"] = False

    async def run_event_processing():
        try:
            result = await ConversionRequestUpdater(database).process_pending()
        except PyMongoError as e:
            logger.error(f"Background event processing error: {e}")
            result = {"error": str(e)}
        provisioning_status["last_event_result"] = result

    # Claimed before scheduling so a second request sees the run in progress
    provisioning_status["running"] = True
    background_tasks.add_task(run_provisioning)
    background_tasks.add_task(run_event_processing)

    return ProvisionResponse(scheduled=len(requests), running=False)


@router.get("/libraries/provision/status")
async def get_provisioning_status():
    """Get the last background provisioning outcome."""
    return provisioning_status


@router.post("/events/process")
async def process_events(limit: int = Query(EVENT_BATCH_SIZE, ge=1, le=500)):
    """Apply pending library_provisioned events to conversion requests."""
    database = _require_db()
    return await ConversionRequestUpdater(database).process_pending(limit)


@router.post("/documents/migrate")
async def migrate_documents(request: MigrateDocumentsRequest):
    """
    Migrate documents into their folder's library.

    Already migrated documents are skipped; documents whose folder has no
    library yet come back as errors.
    """
    database = _require_db()
    documents = [d.to_document() for d in request.documents]

    try:
        results = await DocumentMigrator(database).migrate_documents(documents)
    except MigrationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"results": [r.to_dict() for r in results]}


@router.get("/requests")
async def list_requests(
    pending_only: bool = Query(False, description="Only requests without a library"),
    limit: int = Query(100, ge=1, le=500, description="Max results")
):
    registry = get_registry()
    requests = await registry.list_requests(pending_only=pending_only, limit=limit)
    return {"requests": requests, "count": len(requests)}


@router.get("/requests/{request_id}")
async def get_request(request_id: str):
    registry = get_registry()
    record = await registry.get_request(request_id)
    if not record:
        raise HTTPException(status_code=404, detail="Conversion request not found")
    return record


@router.delete("/requests/{request_id}")
async def delete_request(request_id: str):
    """Delete a conversion request so its folder can be converted again."""
    registry = get_registry()
    if not await registry.delete_request(request_id):
        raise HTTPException(status_code=404, detail="Conversion request not found")
    return {"deleted": request_id}
