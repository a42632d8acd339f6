"""Tests for staff listings: document counts, record enrichment, filters, pagination."""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import update

from consentlink.exceptions import NotFoundError
from consentlink.models.base import utcnow
from consentlink.models.consent import ConsentDocument, ConsentRecord, ConsentStatus, RecipientType
from consentlink.services import consent as consent_service
from consentlink.services.reporting import (
    DocumentFilters,
    EntityRecordFilters,
    RecordFilters,
    list_documents,
    list_entity_records,
    list_records,
)


async def _create(db, recipient_ids, recipient_type=RecipientType.CLIENT, file_name="NDA.pdf"):
    return await consent_service.create_consent_request(
        db,
        file_name=file_name,
        file_path=f"staff-1/{uuid.uuid4()}/{file_name}",
        recipient_ids=recipient_ids,
        recipient_type=recipient_type,
        uploaded_by="staff-1",
    )


class TestListDocuments:
    @pytest.mark.asyncio
    async def test_counts_total_and_completed(self, db, recipients):
        result = await _create(db, recipients["clients"])
        tokens = [r.consent_token for r in result.records]
        await consent_service.submit_consent(db, tokens[0], "Jane Doe")

        page = await list_documents(db, DocumentFilters())
        assert page.total == 1
        assert page.total_filtered == 1
        row = page.items[0]
        assert row.document.id == result.document.id
        assert row.total_recipients == 3
        assert row.completed_recipients == 1

    @pytest.mark.asyncio
    async def test_completed_never_exceeds_total(self, db, recipients):
        first = await _create(db, recipients["clients"][:2], file_name="A.pdf")
        second = await _create(db, recipients["jobseekers"], RecipientType.JOBSEEKER_PROFILE, file_name="B.pdf")
        for record in first.records + second.records:
            await consent_service.submit_consent(db, record.consent_token, "Signer")

        page = await list_documents(db, DocumentFilters())
        for row in page.items:
            assert row.completed_recipients <= row.total_recipients
            assert row.completed_recipients == row.total_recipients == 2

    @pytest.mark.asyncio
    async def test_newest_first(self, db, recipients):
        older = await _create(db, recipients["clients"][:1], file_name="Old.pdf")
        newer = await _create(db, recipients["clients"][:1], file_name="New.pdf")
        await db.execute(
            update(ConsentDocument)
            .where(ConsentDocument.id == older.document.id)
            .values(created_at=utcnow() - timedelta(days=2))
        )
        await db.commit()

        page = await list_documents(db, DocumentFilters())
        assert [row.document.id for row in page.items] == [newer.document.id, older.document.id]

    @pytest.mark.asyncio
    async def test_filters(self, db, recipients):
        await _create(db, recipients["clients"][:1], file_name="Privacy Notice.pdf")
        inactive = await _create(db, recipients["clients"][:1], file_name="Old Terms.pdf")
        await _create(db, recipients["jobseekers"][:1], RecipientType.JOBSEEKER_PROFILE, file_name="Offer.pdf")
        await consent_service.set_document_active(db, inactive.document.id, False)

        by_name = await list_documents(db, DocumentFilters(file_name="privacy"))
        assert [r.document.file_name for r in by_name.items] == ["Privacy Notice.pdf"]
        assert by_name.total == 3
        assert by_name.total_filtered == 1

        by_search = await list_documents(db, DocumentFilters(search="terms"))
        assert [r.document.file_name for r in by_search.items] == ["Old Terms.pdf"]

        by_status = await list_documents(db, DocumentFilters(status="inactive"))
        assert [r.document.id for r in by_status.items] == [inactive.document.id]

        by_type = await list_documents(db, DocumentFilters(recipient_type=RecipientType.JOBSEEKER_PROFILE))
        assert [r.document.file_name for r in by_type.items] == ["Offer.pdf"]

        by_uploader = await list_documents(db, DocumentFilters(uploader="nobody"))
        assert by_uploader.items == []
        assert by_uploader.total_filtered == 0

        today = await list_documents(db, DocumentFilters(created_on=utcnow().date()))
        assert today.total_filtered == 3

    @pytest.mark.asyncio
    async def test_pagination(self, db, recipients):
        for i in range(5):
            await _create(db, recipients["clients"][:1], file_name=f"Doc {i}.pdf")

        first = await list_documents(db, DocumentFilters(), page=1, limit=2)
        third = await list_documents(db, DocumentFilters(), page=3, limit=2)
        assert len(first.items) == 2
        assert len(third.items) == 1
        assert first.total_filtered == 5


class TestListRecords:
    @pytest.mark.asyncio
    async def test_records_enriched_with_entity(self, db, recipients):
        result = await _create(db, recipients["clients"])

        document, page = await list_records(db, result.document.id, RecordFilters())
        assert document.id == result.document.id
        assert page.total == 3
        by_name = {row.entity.name: row.entity.email for row in page.items}
        assert by_name == {
            "Northwind Logistics": "hr@northwind.example.com",
            "Contoso Health": "people@contoso.example.com",
            "Fabrikam Retail": "",
        }

    @pytest.mark.asyncio
    async def test_missing_entity_is_unknown(self, db):
        result = await _create(db, [uuid.uuid4()])

        _, page = await list_records(db, result.document.id, RecordFilters())
        assert page.items[0].entity.name == "Unknown"

    @pytest.mark.asyncio
    async def test_status_and_name_filters(self, db, recipients):
        result = await _create(db, recipients["jobseekers"], RecipientType.JOBSEEKER_PROFILE)
        await consent_service.submit_consent(db, result.records[0].consent_token, "Ada Okafor")

        _, completed = await list_records(db, result.document.id, RecordFilters(status=ConsentStatus.COMPLETED))
        assert completed.total == 2
        assert completed.total_filtered == 1
        assert completed.items[0].record.consented_name == "Ada Okafor"

        _, pending = await list_records(db, result.document.id, RecordFilters(status=ConsentStatus.PENDING))
        assert pending.total_filtered == 1

        _, named = await list_records(db, result.document.id, RecordFilters(name="okafor"))
        assert named.total_filtered == 1

        _, wrong_type = await list_records(
            db, result.document.id, RecordFilters(consentable_type=RecipientType.CLIENT)
        )
        assert wrong_type.items == []

    @pytest.mark.asyncio
    async def test_sent_on_filter(self, db, recipients):
        result = await _create(db, recipients["clients"][:2])

        _, today = await list_records(db, result.document.id, RecordFilters(sent_on=utcnow().date()))
        assert today.total_filtered == 2

        _, last_year = await list_records(
            db, result.document.id, RecordFilters(sent_on=(utcnow() - timedelta(days=365)).date())
        )
        assert last_year.total_filtered == 0

    @pytest.mark.asyncio
    async def test_unknown_document(self, db):
        with pytest.raises(NotFoundError):
            await list_records(db, uuid.uuid4(), RecordFilters())


class TestListEntityRecords:
    @pytest.mark.asyncio
    async def test_history_across_documents(self, db, recipients):
        ada = recipients["jobseekers"][0]
        first = await _create(db, [ada], RecipientType.JOBSEEKER_PROFILE, file_name="Offer.pdf")
        second = await _create(db, recipients["jobseekers"], RecipientType.JOBSEEKER_PROFILE, file_name="Policy.pdf")
        await db.execute(
            update(ConsentRecord)
            .where(ConsentRecord.document_id == first.document.id)
            .values(sent_at=utcnow() - timedelta(days=3))
        )
        await db.commit()

        page = await list_entity_records(db, ada, RecipientType.JOBSEEKER_PROFILE, EntityRecordFilters())
        assert page.total == 2
        assert page.total_filtered == 2
        assert [row.document.id for row in page.items] == [second.document.id, first.document.id]
        assert all(row.record.consentable_id == ada for row in page.items)

    @pytest.mark.asyncio
    async def test_scoped_to_recipient_type(self, db, recipients):
        ada = recipients["jobseekers"][0]
        await _create(db, [ada], RecipientType.JOBSEEKER_PROFILE)

        page = await list_entity_records(db, ada, RecipientType.CLIENT, EntityRecordFilters())
        assert page.items == []
        assert page.total == 0

    @pytest.mark.asyncio
    async def test_search_and_status(self, db, recipients):
        ada = recipients["jobseekers"][0]
        offer = await _create(db, [ada], RecipientType.JOBSEEKER_PROFILE, file_name="Offer Letter.pdf")
        await _create(db, [ada], RecipientType.JOBSEEKER_PROFILE, file_name="Handbook.pdf")
        await consent_service.submit_consent(db, offer.records[0].consent_token, "Ada Okafor")

        by_file = await list_entity_records(
            db, ada, RecipientType.JOBSEEKER_PROFILE, EntityRecordFilters(search="handbook")
        )
        assert [row.document.file_name for row in by_file.items] == ["Handbook.pdf"]
        assert by_file.total == 2
        assert by_file.total_filtered == 1

        by_name = await list_entity_records(
            db, ada, RecipientType.JOBSEEKER_PROFILE, EntityRecordFilters(search="okafor")
        )
        assert [row.document.file_name for row in by_name.items] == ["Offer Letter.pdf"]

        pending = await list_entity_records(
            db, ada, RecipientType.JOBSEEKER_PROFILE, EntityRecordFilters(status=ConsentStatus.PENDING)
        )
        assert [row.document.file_name for row in pending.items] == ["Handbook.pdf"]

    @pytest.mark.asyncio
    async def test_pagination(self, db, recipients):
        client_id = recipients["clients"][0]
        for i in range(3):
            await _create(db, [client_id], file_name=f"Doc {i}.pdf")

        second = await list_entity_records(
            db, client_id, RecipientType.CLIENT, EntityRecordFilters(), page=2, limit=2
        )
        assert len(second.items) == 1
        assert second.total_filtered == 3

    @pytest.mark.asyncio
    async def test_unknown_entity_is_empty(self, db):
        page = await list_entity_records(db, uuid.uuid4(), RecipientType.CLIENT, EntityRecordFilters())
        assert page.items == []
        assert page.total == page.total_filtered == 0
