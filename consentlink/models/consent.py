import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from consentlink.models.base import Base, TimestampMixin, utcnow


class RecipientType(str, enum.Enum):
    CLIENT = "client"
    JOBSEEKER_PROFILE = "jobseeker_profile"


class ConsentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"


def _enum_values(e: type[enum.Enum]) -> list[str]:
    return [member.value for member in e]


class ConsentDocument(Base, TimestampMixin):
    __tablename__ = "consent_documents"
    __table_args__ = (
        Index("ix_consent_documents_active_created", "is_active", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    recipient_type: Mapped[RecipientType] = mapped_column(
        Enum(
            RecipientType,
            name="recipient_type",
            native_enum=False,
            create_constraint=True,
            length=32,
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    records = relationship("ConsentRecord", back_populates="document", cascade="all, delete-orphan")


class ConsentRecord(Base, TimestampMixin):
    __tablename__ = "consent_records"
    __table_args__ = (
        UniqueConstraint(
            "document_id", "consentable_id", "consentable_type",
            name="uq_consent_records_document_consentable",
        ),
        Index("ix_consent_records_document_status", "document_id", "status"),
        Index(
            "ix_consent_records_pending_sent_at",
            "status",
            "sent_at",
            postgresql_where=text("status = 'pending'"),
        ),
        CheckConstraint(
            "(status = 'completed') = (completed_at IS NOT NULL AND consented_name IS NOT NULL)",
            name="ck_consent_records_completion_fields",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("consent_documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    consentable_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    consentable_type: Mapped[RecipientType] = mapped_column(
        Enum(
            RecipientType,
            name="consentable_type",
            native_enum=False,
            create_constraint=True,
            length=32,
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    status: Mapped[ConsentStatus] = mapped_column(
        Enum(
            ConsentStatus,
            name="consent_status",
            native_enum=False,
            create_constraint=True,
            length=16,
            values_callable=_enum_values,
        ),
        default=ConsentStatus.PENDING,
        nullable=False,
        index=True,
    )
    consent_token: Mapped[str] = mapped_column(
        String(128), nullable=False, unique=True, index=True
    )
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    consented_name: Mapped[str | None] = mapped_column(Text)
    ip_address: Mapped[str | None] = mapped_column(String(64))

    document = relationship("ConsentDocument", back_populates="records")
