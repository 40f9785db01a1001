"""
API endpoints for page extraction and Capsule sync
"""

from fastapi import APIRouter, HTTPException, Depends, status
import logging

from schoolsync.core.config import settings
from schoolsync.core.security import CredentialVault
from schoolsync.integrations.sis.document import Document
from schoolsync.integrations.sis.error_handler import ConfigurationFailure, sync_error_handler
from schoolsync.integrations.sis.parsers import CSVExportParser
from schoolsync.core.source_config import source_registry
from schoolsync.schemas.sync import (
    ExtractRequest,
    ExtractResponse,
    SyncRequest,
    SyncResponse,
    SyncStatusResponse,
    CredentialsRequest,
    ConnectionTestRequest,
    ScheduleRequest,
    HealthResponse
)
from schoolsync.services.sync import SQLStateStore, SyncPipeline, SyncStateRepository

logger = logging.getLogger(__name__)
router = APIRouter()

# One vault per process so an unsealed token lasts for the session
_vault = CredentialVault()


def get_pipeline() -> SyncPipeline:
    return SyncPipeline(SyncStateRepository(SQLStateStore()), vault=_vault)


@router.post("/extract", response_model=ExtractResponse)
async def extract_page(
    request: ExtractRequest,
    pipeline: SyncPipeline = Depends(get_pipeline)
):
    """Classify a captured page and return the records it carries"""

    document = Document.from_html(request.html, request.url)
    result = pipeline.extract(document)

    return ExtractResponse(
        source_kind=result.source_kind,
        page_kind=result.page_kind,
        count=result.count,
        students=[record.to_payload() for record in result.students],
        grades=[record.to_payload() for record in result.grades],
        attendance=[record.to_payload() for record in result.attendance],
        csv_link=result.csv_link
    )


@router.post("/sync", response_model=SyncResponse)
async def sync_page(
    request: SyncRequest,
    pipeline: SyncPipeline = Depends(get_pipeline)
):
    """Extract records from a page or CSV text and sync the changed ones"""

    if request.csv_text:
        records = CSVExportParser(source_registry.get(request.source_kind)).parse(request.csv_text)
        if not records:
            return SyncResponse(success=False, error="CSV contained no student data")
        result = await pipeline.sync_students(records, request.passphrase)
    else:
        document = Document.from_html(request.html, request.url)
        result = await pipeline.run(document, request.passphrase, deep=request.deep)

    logger.info(f"Sync request finished: success={result.success}, count={result.count}")
    return SyncResponse(**result.to_dict())


@router.get("/sync/status", response_model=SyncStatusResponse)
async def get_sync_status(pipeline: SyncPipeline = Depends(get_pipeline)):
    """Last sync summary, schedule and rolling sync log"""

    state = await pipeline.repository.get_status()
    return SyncStatusResponse(
        **state,
        recent_errors=sync_error_handler.get_recent_errors(limit=20)
    )


@router.post("/settings/credentials", status_code=status.HTTP_204_NO_CONTENT)
async def save_credentials(
    request: CredentialsRequest,
    pipeline: SyncPipeline = Depends(get_pipeline)
):
    """Store the Capsule endpoint and the passphrase-encrypted token"""

    try:
        await pipeline.save_credentials(request.endpoint, request.token, request.passphrase)
    except ConfigurationFailure as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message
        )


@router.post("/settings/schedule")
async def save_schedule(
    request: ScheduleRequest,
    pipeline: SyncPipeline = Depends(get_pipeline)
):
    """Persist the auto-sync preference; triggering is left to the caller"""

    schedule = await pipeline.repository.set_schedule(request.enabled, request.interval_hours)
    return schedule


@router.post("/settings/test-connection")
async def check_connection(
    request: ConnectionTestRequest,
    pipeline: SyncPipeline = Depends(get_pipeline)
):
    """Check that the Capsule endpoint is reachable with the stored token"""

    connected = await pipeline.test_connection(request.passphrase)
    return {"connected": connected}


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="healthy", app=settings.APP_NAME)
