"""Resolve consentable entities (clients, jobseeker profiles) to name + email."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from consentlink.models.consent import RecipientType
from consentlink.models.recipient import Client, JobseekerProfile

logger = structlog.get_logger()

UNKNOWN_NAME = "Unknown"


@dataclass(frozen=True)
class Entity:
    name: str
    email: str
    type: RecipientType


async def resolve_entities(
    db: AsyncSession,
    recipient_type: RecipientType,
    ids: Iterable[uuid.UUID],
) -> dict[uuid.UUID, Entity]:
    """Look up display name and email for a batch of recipients of one type.

    Ids with no matching row are returned as ``Unknown`` with an empty email
    so callers can still render them; emails are never sent to those.
    """
    ids = list(dict.fromkeys(ids))
    if not ids:
        return {}

    found: dict[uuid.UUID, Entity] = {}
    if recipient_type == RecipientType.CLIENT:
        rows = await db.execute(
            select(Client.id, Client.company_name, Client.email_address1).where(Client.id.in_(ids))
        )
        for row_id, company_name, email in rows.all():
            found[row_id] = Entity(name=company_name, email=email or "", type=recipient_type)
    else:
        rows = await db.execute(
            select(
                JobseekerProfile.id,
                JobseekerProfile.first_name,
                JobseekerProfile.last_name,
                JobseekerProfile.email,
            ).where(JobseekerProfile.id.in_(ids))
        )
        for row_id, first_name, last_name, email in rows.all():
            found[row_id] = Entity(
                name=f"{first_name} {last_name}".strip(), email=email or "", type=recipient_type
            )

    missing = [i for i in ids if i not in found]
    if missing:
        logger.warning("recipients_not_found", type=recipient_type.value, count=len(missing))
    for i in missing:
        found[i] = Entity(name=UNKNOWN_NAME, email="", type=recipient_type)
    return found


async def resolve_entity(
    db: AsyncSession, recipient_type: RecipientType, entity_id: uuid.UUID
) -> Entity:
    entities = await resolve_entities(db, recipient_type, [entity_id])
    return entities[entity_id]
