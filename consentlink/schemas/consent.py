"""Pydantic schemas for Consent endpoints.

Request models carry the server-side field checks (required, min length,
pattern) that run before any mutation.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import Field, field_validator

from consentlink.models.consent import ConsentStatus, RecipientType
from consentlink.schemas.common import CamelModel, Pagination

TOKEN_PATTERN = r"^[A-Za-z0-9_-]+$"


def _dedupe(ids: list[uuid.UUID]) -> list[uuid.UUID]:
    return list(dict.fromkeys(ids))


# --- Requests ---

class ConsentRequestCreate(CamelModel):
    file_name: str = Field(min_length=1, max_length=500)
    file_path: str = Field(min_length=1, max_length=1000)
    recipient_ids: list[uuid.UUID] = Field(min_length=1)
    recipient_type: RecipientType

    @field_validator("file_name", "file_path", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("recipient_ids")
    @classmethod
    def dedupe_recipients(cls, v: list[uuid.UUID]) -> list[uuid.UUID]:
        return _dedupe(v)


class ConsentSubmit(CamelModel):
    token: str = Field(min_length=1, max_length=256, pattern=TOKEN_PATTERN)
    consented_name: str = Field(min_length=1, max_length=200)

    @field_validator("token", "consented_name", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class RecordIdsRequest(CamelModel):
    record_ids: list[uuid.UUID] = Field(min_length=1)

    @field_validator("record_ids")
    @classmethod
    def dedupe_records(cls, v: list[uuid.UUID]) -> list[uuid.UUID]:
        return _dedupe(v)


class ConsentDocumentUpdate(CamelModel):
    is_active: bool


# --- Responses ---

class ConsentDocumentResponse(CamelModel):
    id: uuid.UUID
    file_name: str
    file_path: str
    uploaded_by: str
    version: int
    is_active: bool
    recipient_type: RecipientType
    created_at: datetime
    updated_at: datetime


class ConsentDocumentSummary(ConsentDocumentResponse):
    total_recipients: int = 0
    completed_recipients: int = 0


class ConsentRequestResponse(CamelModel):
    success: bool = True
    message: str
    document: ConsentDocumentResponse
    record_count: int


class ConsentRecordResponse(CamelModel):
    id: uuid.UUID
    document_id: uuid.UUID
    consentable_id: uuid.UUID
    consentable_type: RecipientType
    status: ConsentStatus
    consent_token: str
    sent_at: datetime
    completed_at: datetime | None = None
    consented_name: str | None = None
    ip_address: str | None = None
    created_at: datetime
    updated_at: datetime
    entity_name: str | None = None
    entity_email: str | None = None


class ViewDocument(CamelModel):
    id: uuid.UUID
    file_name: str
    file_path: str
    version: int
    created_at: datetime


class ViewEntity(CamelModel):
    name: str
    email: str
    type: RecipientType


class ConsentViewData(CamelModel):
    record_id: uuid.UUID
    status: ConsentStatus
    completed_at: datetime | None = None
    consented_name: str | None = None
    document: ViewDocument
    entity: ViewEntity


class ConsentViewResponse(CamelModel):
    success: bool = True
    data: ConsentViewData


class ConsentSubmitData(CamelModel):
    completed_at: datetime
    consented_name: str


class ConsentSubmitResponse(CamelModel):
    success: bool = True
    data: ConsentSubmitData


class ResendResponse(CamelModel):
    success: bool = True
    message: str
    resent_count: int
    skipped_count: int


class ExpireResponse(CamelModel):
    success: bool = True
    expired_count: int


class DocumentListResponse(CamelModel):
    documents: list[ConsentDocumentSummary]
    pagination: Pagination


class RecordListResponse(CamelModel):
    document: ConsentDocumentResponse
    records: list[ConsentRecordResponse]
    pagination: Pagination


class EntityRecordResponse(ConsentRecordResponse):
    document: ConsentDocumentResponse


class EntityRecordListResponse(CamelModel):
    success: bool = True
    records: list[EntityRecordResponse]
    pagination: Pagination


class UploadResponse(CamelModel):
    success: bool = True
    file_name: str
    file_path: str


class SignedUrlResponse(CamelModel):
    success: bool = True
    url: str
    expires_in: int
