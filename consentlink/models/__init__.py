from consentlink.models.base import Base
from consentlink.models.consent import ConsentDocument, ConsentRecord, ConsentStatus, RecipientType
from consentlink.models.recipient import Client, JobseekerProfile

__all__ = [
    "Base",
    "ConsentDocument",
    "ConsentRecord",
    "ConsentStatus",
    "RecipientType",
    "Client",
    "JobseekerProfile",
]
