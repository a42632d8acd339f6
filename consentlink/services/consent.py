"""Consent request lifecycle.

- create_consent_request: one document + one pending record per recipient,
  all-or-nothing, then one email per record handed to the worker.
- view_by_token: read-only token resolution (safe to call repeatedly).
- submit_consent: the only pending -> completed transition, done as a
  single conditional UPDATE so concurrent duplicates cannot both win.
- resend_consent_requests: re-sends the existing link for pending records.
- expire_consent_records: externally triggered pending -> expired.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from consentlink.config import settings
from consentlink.exceptions import ConflictError, NotFoundError, TransientError, ValidationError
from consentlink.models.base import utcnow
from consentlink.models.consent import ConsentDocument, ConsentRecord, ConsentStatus, RecipientType
from consentlink.services.email import build_consent_email
from consentlink.services.notifications import dispatch_emails
from consentlink.services.recipients import Entity, resolve_entities, resolve_entity
from consentlink.services.tokens import issue_tokens, token_hint

logger = structlog.get_logger()

INACTIVE_MESSAGE = "This consent document is no longer active"


@dataclass
class ConsentRequestResult:
    document: ConsentDocument
    records: list[ConsentRecord]
    emails_queued: int = 0

    @property
    def record_count(self) -> int:
        return len(self.records)


@dataclass
class ConsentView:
    record: ConsentRecord
    document: ConsentDocument
    entity: Entity


@dataclass
class SubmissionResult:
    record_id: uuid.UUID
    completed_at: datetime
    consented_name: str


@dataclass
class ResendResult:
    resent_ids: list[uuid.UUID]
    skipped_count: int

    @property
    def resent_count(self) -> int:
        return len(self.resent_ids)


def _is_token_collision(exc: IntegrityError) -> bool:
    return "consent_token" in str(exc.orig)


async def _get_record_by_token(db: AsyncSession, token: str) -> ConsentRecord | None:
    result = await db.execute(
        select(ConsentRecord)
        .options(joinedload(ConsentRecord.document))
        .where(ConsentRecord.consent_token == token)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _insert_records(
    db: AsyncSession,
    document: ConsentDocument,
    recipient_ids: Sequence[uuid.UUID],
    recipient_type: RecipientType,
) -> list[ConsentRecord]:
    """Insert one pending record per recipient inside a savepoint.

    A token collision rolls back the savepoint and retries with fresh tokens;
    any other uniqueness violation means a recipient already has a record.
    """
    sent_at = utcnow()
    for attempt in range(1, settings.TOKEN_MAX_ATTEMPTS + 1):
        tokens = issue_tokens(len(recipient_ids))
        records = [
            ConsentRecord(
                document_id=document.id,
                consentable_id=recipient_id,
                consentable_type=recipient_type,
                status=ConsentStatus.PENDING,
                consent_token=token,
                sent_at=sent_at,
            )
            for recipient_id, token in zip(recipient_ids, tokens)
        ]
        try:
            async with db.begin_nested():
                db.add_all(records)
                await db.flush()
        except IntegrityError as e:
            if _is_token_collision(e):
                logger.warning("consent_token_collision", document_id=str(document.id), attempt=attempt)
                continue
            raise ConflictError(
                "A consent record already exists for one or more recipients",
                ConflictError.DUPLICATE,
            ) from e
        return records

    raise TransientError("Could not issue unique consent tokens, please retry")


async def _queue_emails(
    db: AsyncSession,
    records: Iterable[ConsentRecord],
    document_names: dict[uuid.UUID, str],
) -> int:
    """Compose and enqueue one email per record. Records without an email are skipped."""
    by_type: dict[RecipientType, list[ConsentRecord]] = defaultdict(list)
    for record in records:
        by_type[RecipientType(record.consentable_type)].append(record)

    messages = []
    for recipient_type, typed_records in by_type.items():
        entities = await resolve_entities(db, recipient_type, [r.consentable_id for r in typed_records])
        for record in typed_records:
            entity = entities[record.consentable_id]
            if not entity.email:
                logger.warning(
                    "consent_email_skipped_no_address",
                    record_id=str(record.id),
                    consentable_type=recipient_type.value,
                )
                continue
            messages.append(
                build_consent_email(
                    to=entity.email,
                    recipient_name=entity.name,
                    document_name=document_names[record.document_id],
                    token=record.consent_token,
                )
            )
    return dispatch_emails(messages)


async def create_consent_request(
    db: AsyncSession,
    *,
    file_name: str,
    file_path: str,
    recipient_ids: Sequence[uuid.UUID],
    recipient_type: RecipientType | str,
    uploaded_by: str,
) -> ConsentRequestResult:
    """Register a document and fan out one pending record per recipient.

    Raises:
        ValidationError: missing fields, no recipients, unknown recipient type.
        ConflictError: a recipient already has a record for this document.
    """
    file_name = (file_name or "").strip()
    file_path = (file_path or "").strip()
    if not file_name or not file_path or not uploaded_by:
        raise ValidationError("Missing required fields")

    recipient_ids = list(dict.fromkeys(recipient_ids or []))
    if not recipient_ids:
        raise ValidationError("Recipients must be a non-empty array")

    try:
        recipient_type = RecipientType(recipient_type)
    except ValueError as e:
        raise ValidationError("Invalid recipient type") from e

    document = ConsentDocument(
        file_name=file_name,
        file_path=file_path,
        uploaded_by=str(uploaded_by),
        version=1,
        is_active=True,
        recipient_type=recipient_type,
    )
    try:
        db.add(document)
        await db.flush()
        records = await _insert_records(db, document, recipient_ids, recipient_type)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.warning("consent_request_aborted", file_name=file_name, recipients=len(recipient_ids))
        raise

    logger.info(
        "consent_request_created",
        document_id=str(document.id),
        file_name=file_name,
        recipient_type=recipient_type.value,
        recipients=len(records),
        uploaded_by=str(uploaded_by),
    )

    result = ConsentRequestResult(document=document, records=records)
    try:
        result.emails_queued = await _queue_emails(db, records, {document.id: document.file_name})
    except Exception as e:
        # Rows are committed; staff can resend
        logger.error("consent_request_emails_failed", document_id=str(document.id), error=str(e))
    return result


async def view_by_token(db: AsyncSession, token: str) -> ConsentView:
    """Resolve a token to its record, document and recipient. No side effects.

    Expired records are returned (status visible), not treated as unknown.

    Raises:
        ValidationError: empty token.
        NotFoundError: no record has this token.
        ConflictError: the document has been deactivated.
    """
    if not token:
        raise ValidationError("Consent token is required")

    record = await _get_record_by_token(db, token)
    if record is None:
        logger.info("consent_view_invalid_token", token=token_hint(token))
        raise NotFoundError("Invalid or expired consent token")

    document = record.document
    if not document.is_active:
        raise ConflictError(INACTIVE_MESSAGE, ConflictError.INACTIVE)

    entity = await resolve_entity(db, RecipientType(record.consentable_type), record.consentable_id)
    logger.info(
        "consent_viewed",
        record_id=str(record.id),
        document_id=str(document.id),
        status=ConsentStatus(record.status).value,
    )
    return ConsentView(record=record, document=document, entity=entity)


async def submit_consent(
    db: AsyncSession,
    token: str,
    consented_name: str,
    ip_address: str | None = None,
) -> SubmissionResult:
    """Complete a pending record exactly once.

    Raises:
        ValidationError: empty token, empty or one-character name.
        NotFoundError: unknown token.
        ConflictError: already completed, expired, or document inactive.
    """
    name = (consented_name or "").strip()
    if not token or not name:
        raise ValidationError("Token and consented name are required")
    if len(name) < 2:
        raise ValidationError("Please provide a valid full name")

    now = utcnow()
    active_documents = select(ConsentDocument.id).where(ConsentDocument.is_active.is_(True))
    result = await db.execute(
        update(ConsentRecord)
        .where(
            ConsentRecord.consent_token == token,
            ConsentRecord.status == ConsentStatus.PENDING,
            ConsentRecord.document_id.in_(active_documents),
        )
        .values(
            status=ConsentStatus.COMPLETED,
            completed_at=now,
            consented_name=name,
            ip_address=ip_address,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 1:
        await db.commit()
        record = await _get_record_by_token(db, token)
        logger.info(
            "consent_submitted",
            record_id=str(record.id),
            document_id=str(record.document_id),
            consentable_type=RecipientType(record.consentable_type).value,
            ip_address=ip_address,
        )
        return SubmissionResult(record_id=record.id, completed_at=now, consented_name=name)

    await db.rollback()
    record = await _get_record_by_token(db, token)
    if record is None:
        logger.info("consent_submit_invalid_token", token=token_hint(token))
        raise NotFoundError("Invalid or expired consent token")

    status_ = ConsentStatus(record.status)
    logger.info("consent_submit_rejected", record_id=str(record.id), status=status_.value)
    if status_ == ConsentStatus.COMPLETED:
        raise ConflictError(
            "Consent has already been provided for this document",
            ConflictError.ALREADY_COMPLETED,
            {"alreadyCompleted": True},
        )
    if status_ == ConsentStatus.EXPIRED:
        raise ConflictError(
            "This consent request has expired",
            ConflictError.EXPIRED,
            {"expired": True},
        )
    if not record.document.is_active:
        raise ConflictError(INACTIVE_MESSAGE, ConflictError.INACTIVE)
    # Pending and active yet not updated: the document was reactivated mid-request
    raise TransientError("Consent could not be recorded, please try again")


async def resend_consent_requests(
    db: AsyncSession,
    record_ids: Sequence[uuid.UUID],
) -> ResendResult:
    """Re-send the existing link for every pending record in ``record_ids``.

    Completed, expired, unknown ids and records of inactive documents are
    skipped. Tokens never change here; only ``sent_at`` moves forward.

    Raises:
        ValidationError: empty id list.
        NotFoundError: none of the ids exist.
    """
    ids = list(dict.fromkeys(record_ids or []))
    if not ids:
        raise ValidationError("Record IDs must be a non-empty array")

    result = await db.execute(
        select(ConsentRecord)
        .options(joinedload(ConsentRecord.document))
        .where(ConsentRecord.id.in_(ids))
        .execution_options(populate_existing=True)
    )
    records = result.scalars().all()
    if not records:
        raise NotFoundError("No consent records found")

    eligible = [
        r for r in records
        if ConsentStatus(r.status) == ConsentStatus.PENDING and r.document.is_active
    ]

    resent_ids: set[uuid.UUID] = set()
    if eligible:
        now = utcnow()
        updated = await db.execute(
            update(ConsentRecord)
            .where(
                ConsentRecord.id.in_([r.id for r in eligible]),
                ConsentRecord.status == ConsentStatus.PENDING,
            )
            .values(sent_at=now, updated_at=now)
            .returning(ConsentRecord.id)
            .execution_options(synchronize_session=False)
        )
        resent_ids = set(updated.scalars().all())
    await db.commit()

    resent = [r for r in eligible if r.id in resent_ids]
    outcome = ResendResult(resent_ids=[r.id for r in resent], skipped_count=len(ids) - len(resent))
    logger.info(
        "consent_requests_resent",
        requested=len(ids),
        resent=outcome.resent_count,
        skipped=outcome.skipped_count,
    )

    if resent:
        try:
            await _queue_emails(db, resent, {r.document_id: r.document.file_name for r in resent})
        except Exception as e:
            logger.error("consent_resend_emails_failed", error=str(e))
    return outcome


async def expire_consent_records(
    db: AsyncSession,
    record_ids: Sequence[uuid.UUID] | None = None,
    sent_before: datetime | None = None,
) -> int:
    """Move pending records to expired. Completed records are never touched.

    At least one selector is required so a bare call cannot expire everything.
    """
    ids = list(dict.fromkeys(record_ids or []))
    if not ids and sent_before is None:
        raise ValidationError("Record IDs or a cutoff date are required")

    now = utcnow()
    stmt = update(ConsentRecord).where(ConsentRecord.status == ConsentStatus.PENDING)
    if ids:
        stmt = stmt.where(ConsentRecord.id.in_(ids))
    if sent_before is not None:
        stmt = stmt.where(ConsentRecord.sent_at < sent_before)

    result = await db.execute(
        stmt.values(status=ConsentStatus.EXPIRED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info("consent_records_expired", count=result.rowcount, by_ids=bool(ids), sent_before=sent_before)
    return result.rowcount


async def get_document(db: AsyncSession, document_id: uuid.UUID) -> ConsentDocument:
    document = await db.get(ConsentDocument, document_id)
    if document is None:
        raise NotFoundError("Consent document not found")
    return document


async def set_document_active(
    db: AsyncSession,
    document_id: uuid.UUID,
    is_active: bool,
) -> ConsentDocument:
    document = await get_document(db, document_id)
    document.is_active = is_active
    await db.commit()
    logger.info("consent_document_toggled", document_id=str(document_id), is_active=is_active)
    return document
