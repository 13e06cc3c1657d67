"""
Vendor Import API Endpoints

- POST /api/vendor-import - Submit a vendor document for import (queued)
- POST /api/vendor-import/process - Queue delivery target; runs the job
- GET /api/vendor-import/status/{job_id} - Job state and result
- POST /api/vendor-import/confirm - Apply user-approved property matches
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from config import Settings, get_settings
from middleware.auth import get_current_session
from services.auth import SessionUser
from utils.validation_errors import parse_body, parse_request_body
from vendor_import.dependencies import (
    get_confirm_service, get_import_handler, get_job_id_minter, get_job_store,
    get_queue_publisher, get_signature_verifier, get_statement_store
)
from vendor_import.errors import (
    DuplicateImportError, ImportValidationError, NotFoundError, UnauthorizedError
)
from vendor_import.job_queue import (
    RETRIED_HEADER, SIGNATURE_HEADER, QueuePublishError, QueuePublisher, QueueSignatureVerifier
)
from vendor_import.job_store import UNKNOWN_JOB_RESPONSE, JobIdMinter, JobStore
from vendor_import.schemas import (
    VendorImportConfirmRequest, VendorImportConfirmResponse,
    VendorImportJob, VendorImportRequest, VendorImportSubmitResponse
)
from vendor_import.services.confirm_service import VendorImportConfirmService
from vendor_import.services.import_handler import VendorImportJobHandler
from vendor_import.services.statement_store import StatementStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vendor-import", tags=["Vendor Import"])


# ==================== Endpoints ====================

@router.post("", response_model=VendorImportSubmitResponse, summary="Submit vendor import")
async def submit_vendor_import(
    request: Request,
    session: SessionUser = Depends(get_current_session),
    store: StatementStore = Depends(get_statement_store),
    publisher: QueuePublisher = Depends(get_queue_publisher),
    job_store: JobStore = Depends(get_job_store),
    minter: JobIdMinter = Depends(get_job_id_minter),
    settings: Settings = Depends(get_settings)
):
    """
    Queue a vendor document for import into the statement's month.

    The statement is checked before anything is queued; the response
    returns as soon as the job is published.
    """
    payload = await parse_request_body(request, VendorImportRequest)

    statement = await store.find_statement(payload.current_statement_id)
    if statement is None or statement.management_group_id != session.org_id:
        raise HTTPException(status_code=404, detail="Statement not found")

    job_id = minter.next_id()
    message = f"Processing vendor import for {statement.property_name or 'statement'}"
    job = VendorImportJob(
        **payload.model_dump(),
        job_id=job_id,
        org_id=session.org_id,
        user_id=session.user_id,
    )

    job_store.create(job_id, session.org_id, session.user_id, statement.id, message=message)

    try:
        await publisher.publish_json(settings.process_url, job.model_dump(by_alias=True))
    except QueuePublishError as e:
        job_store.mark_failed(job_id, e.message)
        logger.error(f"Failed to enqueue vendor import {job_id}: {e.message}")
        raise HTTPException(status_code=500, detail="Failed to queue vendor import")

    logger.info(
        f"Queued vendor import {job_id}",
        extra={"job_id": job_id, "org_id": session.org_id, "statement_id": statement.id}
    )
    return VendorImportSubmitResponse(jobId=job_id, message=message)


@router.post("/process", summary="Process queued vendor import")
async def process_vendor_import(
    request: Request,
    upstash_signature: Optional[str] = Header(None, alias=SIGNATURE_HEADER),
    upstash_retried: Optional[str] = Header(None, alias=RETRIED_HEADER),
    verifier: QueueSignatureVerifier = Depends(get_signature_verifier),
    handler: VendorImportJobHandler = Depends(get_import_handler),
    settings: Settings = Depends(get_settings)
):
    """
    Run a vendor import job delivered by the queue.

    Non-2xx responses make the queue redeliver within its retry budget;
    outcomes a retry cannot change are answered 200 with success false.
    """
    body = await request.body()

    try:
        verifier.verify(upstash_signature, body, url=settings.process_url)
    except UnauthorizedError as e:
        logger.warning(f"Rejected queue delivery: {e.message}")
        raise HTTPException(status_code=401, detail="Invalid signature")

    job = parse_body(body, VendorImportJob)

    try:
        retried = int(upstash_retried or 0)
    except ValueError:
        retried = 0

    try:
        result = await handler.handle(job, final_attempt=retried >= settings.QUEUE_RETRIES)
    except (NotFoundError, DuplicateImportError) as e:
        # Acknowledged so the queue does not redeliver a job that cannot succeed
        return {"success": False, "jobId": job.job_id, "error": e.message}
    except Exception:
        # Already logged and reported by the handler
        return JSONResponse(
            status_code=500,
            content={"success": False, "jobId": job.job_id, "error": "Vendor import failed"}
        )

    return {"success": True, **result.to_dict()}


@router.get("/status/{job_id}", summary="Get vendor import status")
async def get_vendor_import_status(
    job_id: str,
    session: SessionUser = Depends(get_current_session),
    job_store: JobStore = Depends(get_job_store)
):
    """Job state for the caller's organization; unknown ids read as still processing."""
    record = job_store.get_for_org(job_id, session.org_id)
    if record is None:
        return dict(UNKNOWN_JOB_RESPONSE)
    return record.to_dict()


@router.post("/confirm", response_model=VendorImportConfirmResponse, summary="Confirm vendor import matches")
async def confirm_vendor_import(
    request: Request,
    session: SessionUser = Depends(get_current_session),
    service: VendorImportConfirmService = Depends(get_confirm_service)
):
    """
    Write the expenses of user-approved property matches and recompute totals.
    """
    payload = await parse_request_body(request, VendorImportConfirmRequest)

    try:
        result = await service.confirm(session.org_id, session.user_id, payload)
    except ImportValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except Exception as e:
        logger.error(f"Vendor import confirmation failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Vendor import confirmation failed")

    return result.to_dict()
