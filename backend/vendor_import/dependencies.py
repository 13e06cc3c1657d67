"""
FastAPI dependencies for the vendor import endpoints.

Long-lived clients (AI client, queue publisher, job store) are created in
the application lifespan and kept on app.state; per-request objects are
built from them here.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from database import get_db
from services.ai_client import AIClient
from vendor_import.job_queue import QueuePublisher, QueueSignatureVerifier
from vendor_import.job_store import JobIdMinter, JobStore
from vendor_import.matching_rules import PropertyMatcher
from vendor_import.services.confirm_service import VendorImportConfirmService
from vendor_import.services.extraction import VendorDocumentExtractor
from vendor_import.services.import_handler import VendorImportJobHandler
from vendor_import.services.statement_store import StatementStore


def get_ai_client(request: Request) -> AIClient:
    return request.app.state.ai_client


def get_queue_publisher(request: Request) -> QueuePublisher:
    return request.app.state.queue_publisher


def get_signature_verifier(request: Request) -> QueueSignatureVerifier:
    return request.app.state.signature_verifier


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def get_job_id_minter(request: Request) -> JobIdMinter:
    return request.app.state.job_id_minter


def get_statement_store(db: AsyncSession = Depends(get_db)) -> StatementStore:
    return StatementStore(db)


def get_import_handler(
    store: StatementStore = Depends(get_statement_store),
    ai_client: AIClient = Depends(get_ai_client),
    job_store: JobStore = Depends(get_job_store),
    settings: Settings = Depends(get_settings)
) -> VendorImportJobHandler:
    return VendorImportJobHandler(
        store=store,
        matcher=PropertyMatcher(ai_client),
        extractor=VendorDocumentExtractor(ai_client, model=settings.AI_EXTRACTION_MODEL),
        job_store=job_store,
    )


def get_confirm_service(store: StatementStore = Depends(get_statement_store)) -> VendorImportConfirmService:
    return VendorImportConfirmService(store)
