"""Consent router — document consent requests and token-based signing.

Staff endpoints (admin/recruiter JWT):
  POST  /api/consent/upload                   — store a document, return its path
  POST  /api/consent/request                  — create a request, fan out records
  POST  /api/consent/resend                   — re-send links for pending records
  POST  /api/consent/expire                   — expire pending records
  GET   /api/consent/documents                — paginated documents with counts
  PATCH /api/consent/documents/{id}           — activate/deactivate a document
  GET   /api/consent/documents/{id}/url       — time-limited document URL
  GET   /api/consent/records/{document_id}    — paginated records of a document
  GET   /api/consent/entity-records/{id}      — consent history of one client/jobseeker

Public endpoints (token is the credential):
  GET   /api/consent/view?token=              — resolve a token (read-only)
  GET   /api/consent/view/url?token=          — time-limited document URL
  POST  /api/consent/submit                   — provide consent, once
"""

from __future__ import annotations

import uuid
from datetime import date

import structlog
from fastapi import APIRouter, File, Query, UploadFile, status
from starlette.concurrency import run_in_threadpool

from consentlink.deps import DB, ClientIP, Redis, StaffUser, Store
from consentlink.models.consent import ConsentStatus, RecipientType
from consentlink.schemas.common import Pagination
from consentlink.schemas.consent import (
    ConsentDocumentResponse,
    ConsentDocumentSummary,
    ConsentDocumentUpdate,
    ConsentRecordResponse,
    ConsentRequestCreate,
    ConsentRequestResponse,
    ConsentSubmit,
    ConsentSubmitData,
    ConsentSubmitResponse,
    ConsentViewData,
    ConsentViewResponse,
    DocumentListResponse,
    EntityRecordListResponse,
    EntityRecordResponse,
    ExpireResponse,
    RecordIdsRequest,
    RecordListResponse,
    ResendResponse,
    SignedUrlResponse,
    UploadResponse,
    ViewDocument,
    ViewEntity,
)
from consentlink.services import consent as consent_service
from consentlink.services import reporting
from consentlink.services.storage import SignedUrlCache

logger = structlog.get_logger()

router = APIRouter()


# --- Staff ---

@router.post("/consent/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(staff: StaffUser, store: Store, file: UploadFile = File(...)):
    """Store an uploaded consent document. The returned path feeds /consent/request."""
    data = await file.read()
    file_name = file.filename or "document"
    path = await run_in_threadpool(store.upload, data, file_name, staff["sub"], file.content_type)
    logger.info("consent_document_uploaded", file_name=file_name, uploaded_by=staff["sub"])
    return UploadResponse(file_name=file_name, file_path=path)


@router.post("/consent/request", response_model=ConsentRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_consent_request(body: ConsentRequestCreate, db: DB, staff: StaffUser):
    """Create one document and one pending consent record per recipient.

    Emails go out through the worker after the rows are committed; a
    failed hand-off does not fail the request.
    """
    result = await consent_service.create_consent_request(
        db,
        file_name=body.file_name,
        file_path=body.file_path,
        recipient_ids=body.recipient_ids,
        recipient_type=body.recipient_type,
        uploaded_by=staff["sub"],
    )
    return ConsentRequestResponse(
        message="Consent request created successfully",
        document=ConsentDocumentResponse.model_validate(result.document),
        record_count=result.record_count,
    )


@router.post("/consent/resend", response_model=ResendResponse)
async def resend_consent(body: RecordIdsRequest, db: DB, staff: StaffUser):
    """Re-send the existing link to every still-pending recipient in the batch."""
    result = await consent_service.resend_consent_requests(db, body.record_ids)
    return ResendResponse(
        message=f"Successfully resent {result.resent_count} consent emails",
        resent_count=result.resent_count,
        skipped_count=result.skipped_count,
    )


@router.post("/consent/expire", response_model=ExpireResponse)
async def expire_consent(body: RecordIdsRequest, db: DB, staff: StaffUser):
    """Expire pending records. Completed records are left untouched."""
    expired = await consent_service.expire_consent_records(db, record_ids=body.record_ids)
    return ExpireResponse(expired_count=expired)


@router.get("/consent/documents", response_model=DocumentListResponse)
async def list_documents(
    db: DB,
    staff: StaffUser,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = None,
    file_name_filter: str | None = Query(None, alias="fileNameFilter"),
    uploader_filter: str | None = Query(None, alias="uploaderFilter"),
    status_filter: str | None = Query(None, alias="statusFilter"),
    recipient_type_filter: RecipientType | None = Query(None, alias="recipientTypeFilter"),
    date_filter: date | None = Query(None, alias="dateFilter"),
):
    """List consent documents with recipient completion counts."""
    filters = reporting.DocumentFilters(
        search=search,
        file_name=file_name_filter,
        uploader=uploader_filter,
        status=status_filter,
        recipient_type=recipient_type_filter,
        created_on=date_filter,
    )
    result = await reporting.list_documents(db, filters, page=page, limit=limit)

    documents = [
        ConsentDocumentSummary.model_validate(row.document).model_copy(
            update={
                "total_recipients": row.total_recipients,
                "completed_recipients": row.completed_recipients,
            }
        )
        for row in result.items
    ]
    return DocumentListResponse(
        documents=documents,
        pagination=Pagination.build(page, limit, result.total, result.total_filtered),
    )


@router.patch("/consent/documents/{document_id}", response_model=ConsentDocumentResponse)
async def update_document(document_id: uuid.UUID, body: ConsentDocumentUpdate, db: DB, staff: StaffUser):
    """Activate or deactivate a document. Inactive documents refuse view/submit."""
    document = await consent_service.set_document_active(db, document_id, body.is_active)
    return ConsentDocumentResponse.model_validate(document)


@router.get("/consent/documents/{document_id}/url", response_model=SignedUrlResponse)
async def document_url(document_id: uuid.UUID, db: DB, redis: Redis, store: Store, staff: StaffUser):
    document = await consent_service.get_document(db, document_id)
    url, expires_in = await SignedUrlCache(redis, store).get_url(document.file_path)
    return SignedUrlResponse(url=url, expires_in=expires_in)


@router.get("/consent/records/{document_id}", response_model=RecordListResponse)
async def list_records(
    document_id: uuid.UUID,
    db: DB,
    staff: StaffUser,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = None,
    status_filter: ConsentStatus | None = Query(None, alias="statusFilter"),
    type_filter: RecipientType | None = Query(None, alias="typeFilter"),
    name_filter: str | None = Query(None, alias="nameFilter"),
    date_filter: date | None = Query(None, alias="dateFilter"),
):
    """List the consent records of one document with recipient name and email."""
    filters = reporting.RecordFilters(
        search=search,
        status=status_filter,
        consentable_type=type_filter,
        name=name_filter,
        sent_on=date_filter,
    )
    document, result = await reporting.list_records(db, document_id, filters, page=page, limit=limit)

    records = [
        ConsentRecordResponse.model_validate(row.record).model_copy(
            update={"entity_name": row.entity.name, "entity_email": row.entity.email}
        )
        for row in result.items
    ]
    return RecordListResponse(
        document=ConsentDocumentResponse.model_validate(document),
        records=records,
        pagination=Pagination.build(page, limit, result.total, result.total_filtered),
    )


@router.get("/consent/entity-records/{consentable_id}", response_model=EntityRecordListResponse)
async def list_entity_records(
    consentable_id: uuid.UUID,
    db: DB,
    staff: StaffUser,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = None,
    status_filter: ConsentStatus | None = Query(None, alias="statusFilter"),
    consentable_type: RecipientType = Query(RecipientType.JOBSEEKER_PROFILE, alias="consentableType"),
):
    """Every consent record sent to one client or jobseeker, with its document."""
    filters = reporting.EntityRecordFilters(search=search, status=status_filter)
    result = await reporting.list_entity_records(
        db, consentable_id, consentable_type, filters, page=page, limit=limit
    )

    records = [
        EntityRecordResponse(
            **ConsentRecordResponse.model_validate(row.record).model_dump(),
            document=ConsentDocumentResponse.model_validate(row.document),
        )
        for row in result.items
    ]
    return EntityRecordListResponse(
        records=records,
        pagination=Pagination.build(page, limit, result.total, result.total_filtered),
    )


# --- Public ---

@router.get("/consent/view", response_model=ConsentViewResponse)
async def view_consent(db: DB, token: str | None = None):
    """Resolve a consent link. Safe to reload; never changes the record."""
    view = await consent_service.view_by_token(db, token or "")
    record, document, entity = view.record, view.document, view.entity
    return ConsentViewResponse(
        data=ConsentViewData(
            record_id=record.id,
            status=record.status,
            completed_at=record.completed_at,
            consented_name=record.consented_name,
            document=ViewDocument.model_validate(document),
            entity=ViewEntity(name=entity.name, email=entity.email, type=entity.type),
        )
    )


@router.get("/consent/view/url", response_model=SignedUrlResponse)
async def view_consent_document_url(db: DB, redis: Redis, store: Store, token: str | None = None):
    """Time-limited URL for the document behind a consent link."""
    view = await consent_service.view_by_token(db, token or "")
    url, expires_in = await SignedUrlCache(redis, store).get_url(view.document.file_path)
    return SignedUrlResponse(url=url, expires_in=expires_in)


@router.post("/consent/submit", response_model=ConsentSubmitResponse)
async def submit_consent(body: ConsentSubmit, db: DB, ip: ClientIP):
    """Record consent for a token. Exactly one submission per record succeeds."""
    result = await consent_service.submit_consent(db, body.token, body.consented_name, ip)
    return ConsentSubmitResponse(
        data=ConsentSubmitData(completed_at=result.completed_at, consented_name=result.consented_name)
    )
