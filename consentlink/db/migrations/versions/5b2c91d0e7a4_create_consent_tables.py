"""create consent documents, consent records and recipient directories

Revision ID: 5b2c91d0e7a4
Revises:
Create Date: 2026-10-18 10:12:41.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '5b2c91d0e7a4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # === Recipient directories ===

    op.create_table(
        'clients',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_name', sa.String(length=200), nullable=False),
        sa.Column('email_address1', sa.String(length=320), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'jobseeker_profiles',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=True),
        *_timestamps(),
    )

    # === Consent documents ===

    op.create_table(
        'consent_documents',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('file_name', sa.Text(), nullable=False),
        sa.Column('file_path', sa.Text(), nullable=False),
        sa.Column('uploaded_by', sa.String(length=64), nullable=False),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('recipient_type', sa.String(length=32), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("recipient_type IN ('client', 'jobseeker_profile')", name='recipient_type'),
    )
    op.create_index(op.f('ix_consent_documents_uploaded_by'), 'consent_documents', ['uploaded_by'], unique=False)
    op.create_index('ix_consent_documents_active_created', 'consent_documents', ['is_active', 'created_at'], unique=False)

    # === Consent records ===

    op.create_table(
        'consent_records',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('document_id', sa.Uuid(), sa.ForeignKey('consent_documents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('consentable_id', sa.Uuid(), nullable=False),
        sa.Column('consentable_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), server_default='pending', nullable=False),
        sa.Column('consent_token', sa.String(length=128), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('consented_name', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            'document_id', 'consentable_id', 'consentable_type',
            name='uq_consent_records_document_consentable',
        ),
        sa.CheckConstraint("consentable_type IN ('client', 'jobseeker_profile')", name='consentable_type'),
        sa.CheckConstraint("status IN ('pending', 'completed', 'expired')", name='consent_status'),
        sa.CheckConstraint(
            "(status = 'completed') = (completed_at IS NOT NULL AND consented_name IS NOT NULL)",
            name='ck_consent_records_completion_fields',
        ),
    )
    op.create_index(op.f('ix_consent_records_document_id'), 'consent_records', ['document_id'], unique=False)
    op.create_index(op.f('ix_consent_records_consentable_id'), 'consent_records', ['consentable_id'], unique=False)
    op.create_index(op.f('ix_consent_records_status'), 'consent_records', ['status'], unique=False)
    op.create_index(op.f('ix_consent_records_sent_at'), 'consent_records', ['sent_at'], unique=False)
    op.create_index(op.f('ix_consent_records_consent_token'), 'consent_records', ['consent_token'], unique=True)
    op.create_index('ix_consent_records_document_status', 'consent_records', ['document_id', 'status'], unique=False)
    op.create_index(
        'ix_consent_records_pending_sent_at',
        'consent_records',
        ['status', 'sent_at'],
        unique=False,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index('ix_consent_records_pending_sent_at', table_name='consent_records')
    op.drop_index('ix_consent_records_document_status', table_name='consent_records')
    op.drop_index(op.f('ix_consent_records_consent_token'), table_name='consent_records')
    op.drop_index(op.f('ix_consent_records_sent_at'), table_name='consent_records')
    op.drop_index(op.f('ix_consent_records_status'), table_name='consent_records')
    op.drop_index(op.f('ix_consent_records_consentable_id'), table_name='consent_records')
    op.drop_index(op.f('ix_consent_records_document_id'), table_name='consent_records')
    op.drop_table('consent_records')

    op.drop_index('ix_consent_documents_active_created', table_name='consent_documents')
    op.drop_index(op.f('ix_consent_documents_uploaded_by'), table_name='consent_documents')
    op.drop_table('consent_documents')

    op.drop_table('jobseeker_profiles')
    op.drop_table('clients')
