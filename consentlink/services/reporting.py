"""Staff-facing listings of consent documents and records."""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from consentlink.models.consent import ConsentDocument, ConsentRecord, ConsentStatus, RecipientType
from consentlink.services.consent import get_document
from consentlink.services.recipients import Entity, resolve_entities


@dataclass
class DocumentFilters:
    search: str | None = None
    file_name: str | None = None
    uploader: str | None = None
    status: str | None = None  # "active" / "inactive"
    recipient_type: RecipientType | None = None
    created_on: date | None = None


@dataclass
class RecordFilters:
    search: str | None = None
    status: ConsentStatus | None = None
    consentable_type: RecipientType | None = None
    name: str | None = None
    sent_on: date | None = None


@dataclass
class DocumentRow:
    document: ConsentDocument
    total_recipients: int
    completed_recipients: int


@dataclass
class RecordRow:
    record: ConsentRecord
    entity: Entity


@dataclass
class Page:
    items: list
    total: int
    total_filtered: int


def _day_range(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _like(value: str) -> str:
    return f"%{value.strip()}%"


def _document_conditions(filters: DocumentFilters) -> list:
    conditions = []
    if filters.search and filters.search.strip():
        term = _like(filters.search)
        conditions.append(
            or_(
                ConsentDocument.file_name.ilike(term),
                ConsentDocument.file_path.ilike(term),
                ConsentDocument.uploaded_by.ilike(term),
            )
        )
    if filters.file_name and filters.file_name.strip():
        conditions.append(ConsentDocument.file_name.ilike(_like(filters.file_name)))
    if filters.uploader and filters.uploader.strip():
        conditions.append(ConsentDocument.uploaded_by.ilike(_like(filters.uploader)))
    if filters.status and filters.status.strip():
        conditions.append(ConsentDocument.is_active.is_(filters.status.strip().lower() == "active"))
    if filters.recipient_type:
        conditions.append(ConsentDocument.recipient_type == filters.recipient_type)
    if filters.created_on:
        start, end = _day_range(filters.created_on)
        conditions.append(ConsentDocument.created_at >= start)
        conditions.append(ConsentDocument.created_at < end)
    return conditions


def _record_conditions(filters: RecordFilters) -> list:
    conditions = []
    if filters.search and filters.search.strip():
        conditions.append(ConsentRecord.consented_name.ilike(_like(filters.search)))
    if filters.status:
        conditions.append(ConsentRecord.status == filters.status)
    if filters.consentable_type:
        conditions.append(ConsentRecord.consentable_type == filters.consentable_type)
    if filters.name and filters.name.strip():
        conditions.append(ConsentRecord.consented_name.ilike(_like(filters.name)))
    if filters.sent_on:
        start, end = _day_range(filters.sent_on)
        conditions.append(ConsentRecord.sent_at >= start)
        conditions.append(ConsentRecord.sent_at < end)
    return conditions


async def list_documents(
    db: AsyncSession,
    filters: DocumentFilters,
    page: int = 1,
    limit: int = 10,
) -> Page:
    """Documents newest first, each with total/completed recipient counts."""
    conditions = _document_conditions(filters)

    stats = (
        select(
            ConsentRecord.document_id.label("document_id"),
            func.count(ConsentRecord.id).label("total"),
            func.sum(case((ConsentRecord.status == ConsentStatus.COMPLETED, 1), else_=0)).label("completed"),
        )
        .group_by(ConsentRecord.document_id)
        .subquery()
    )

    total = (await db.execute(select(func.count()).select_from(ConsentDocument))).scalar() or 0
    total_filtered = (
        await db.execute(select(func.count()).select_from(ConsentDocument).where(*conditions))
    ).scalar() or 0

    query = (
        select(
            ConsentDocument,
            func.coalesce(stats.c.total, 0),
            func.coalesce(stats.c.completed, 0),
        )
        .outerjoin(stats, stats.c.document_id == ConsentDocument.id)
        .where(*conditions)
        .order_by(ConsentDocument.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await db.execute(query)).all()

    return Page(
        items=[
            DocumentRow(document=doc, total_recipients=int(t), completed_recipients=int(c))
            for doc, t, c in rows
        ],
        total=total,
        total_filtered=total_filtered,
    )


async def list_records(
    db: AsyncSession,
    document_id: uuid.UUID,
    filters: RecordFilters,
    page: int = 1,
    limit: int = 10,
) -> tuple[ConsentDocument, Page]:
    """Records of one document, most recently sent first, with recipient details.

    Raises:
        NotFoundError: unknown document id.
    """
    document = await get_document(db, document_id)
    conditions = [ConsentRecord.document_id == document_id, *_record_conditions(filters)]

    total = (
        await db.execute(
            select(func.count()).select_from(ConsentRecord).where(ConsentRecord.document_id == document_id)
        )
    ).scalar() or 0
    total_filtered = (
        await db.execute(select(func.count()).select_from(ConsentRecord).where(*conditions))
    ).scalar() or 0

    result = await db.execute(
        select(ConsentRecord)
        .where(*conditions)
        .order_by(ConsentRecord.sent_at.desc(), ConsentRecord.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    records = result.scalars().all()

    by_type: dict[RecipientType, list[uuid.UUID]] = defaultdict(list)
    for record in records:
        by_type[RecipientType(record.consentable_type)].append(record.consentable_id)
    entities: dict[tuple[RecipientType, uuid.UUID], Entity] = {}
    for recipient_type, ids in by_type.items():
        for entity_id, entity in (await resolve_entities(db, recipient_type, ids)).items():
            entities[(recipient_type, entity_id)] = entity

    rows = [
        RecordRow(
            record=record,
            entity=entities[(RecipientType(record.consentable_type), record.consentable_id)],
        )
        for record in records
    ]
    return document, Page(items=rows, total=total, total_filtered=total_filtered)


@dataclass
class EntityRecordFilters:
    search: str | None = None
    status: ConsentStatus | None = None


@dataclass
class EntityRecordRow:
    record: ConsentRecord
    document: ConsentDocument


async def list_entity_records(
    db: AsyncSession,
    consentable_id: uuid.UUID,
    consentable_type: RecipientType,
    filters: EntityRecordFilters,
    page: int = 1,
    limit: int = 10,
) -> Page:
    """Consent history of one client or jobseeker across all documents.

    ``search`` matches the document file name or the consented name.
    An entity with no records yields an empty page, not an error.
    """
    entity = [
        ConsentRecord.consentable_id == consentable_id,
        ConsentRecord.consentable_type == consentable_type,
    ]
    conditions = list(entity)
    if filters.status:
        conditions.append(ConsentRecord.status == filters.status)
    if filters.search and filters.search.strip():
        term = _like(filters.search)
        conditions.append(
            or_(ConsentDocument.file_name.ilike(term), ConsentRecord.consented_name.ilike(term))
        )

    total = (
        await db.execute(select(func.count()).select_from(ConsentRecord).where(*entity))
    ).scalar() or 0
    total_filtered = (
        await db.execute(
            select(func.count())
            .select_from(ConsentRecord)
            .join(ConsentDocument, ConsentDocument.id == ConsentRecord.document_id)
            .where(*conditions)
        )
    ).scalar() or 0

    rows = (
        await db.execute(
            select(ConsentRecord, ConsentDocument)
            .join(ConsentDocument, ConsentDocument.id == ConsentRecord.document_id)
            .where(*conditions)
            .order_by(ConsentRecord.sent_at.desc(), ConsentRecord.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
    ).all()

    return Page(
        items=[EntityRecordRow(record=record, document=document) for record, document in rows],
        total=total,
        total_filtered=total_filtered,
    )
