"""Document store for uploaded consent documents.

Files live under ``STORAGE_DIR`` at ``{owner_id}/{uuid}/{file_name}``.
Retrieval goes through time-limited URLs whose ``signature`` query param
is a short-lived JWT bound to the storage path.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from urllib.parse import quote, urlencode

import redis.asyncio as aioredis
import structlog
from jose import JWTError, jwt

from consentlink.config import settings
from consentlink.exceptions import NotFoundError, TransientError, ValidationError

logger = structlog.get_logger()

ALGORITHM = "HS256"
SIGNATURE_SCOPE = "storage:read"

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "image/jpeg",
    "image/png",
}

# Cached URLs are dropped this many seconds before they stop working
CACHE_SAFETY_MARGIN_SECONDS = 60

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")


def safe_file_name(file_name: str) -> str:
    name = Path(file_name.replace("\\", "/")).name
    name = _UNSAFE_CHARS.sub("_", name).strip(" .")
    return name or "document"


class LocalDocumentStore:
    def __init__(
        self,
        root: str | Path | None = None,
        public_url: str | None = None,
        secret: str | None = None,
        max_bytes: int | None = None,
    ):
        self.root = Path(root or settings.STORAGE_DIR)
        self.public_url = (public_url or settings.STORAGE_PUBLIC_URL).rstrip("/")
        self.secret = secret or settings.APP_SECRET_KEY
        self.max_bytes = max_bytes or settings.MAX_UPLOAD_BYTES

    def upload(
        self,
        data: bytes,
        file_name: str,
        owner_id: str,
        content_type: str | None = None,
    ) -> str:
        """Store bytes and return the storage path.

        Raises:
            ValidationError: empty payload, too large, or disallowed type.
            TransientError: the bytes could not be written.
        """
        if not data:
            raise ValidationError("Uploaded file is empty")
        if len(data) > self.max_bytes:
            raise ValidationError(
                "Uploaded file is too large",
                {"maxBytes": self.max_bytes},
            )
        if content_type and content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError(f"Unsupported file type: {content_type}")

        owner = safe_file_name(str(owner_id))
        path = f"{owner}/{uuid.uuid4()}/{safe_file_name(file_name)}"
        target = self.root / path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error("document_store_write_failed", path=path, error=str(e))
            raise TransientError("Failed to store uploaded document") from e

        logger.info("document_stored", path=path, size_bytes=len(data))
        return path

    def resolve(self, path: str) -> Path:
        """Map a storage path to a file on disk, refusing anything outside the root."""
        root = self.root.resolve()
        target = (root / path).resolve()
        if root not in target.parents or not target.is_file():
            raise NotFoundError("Document not found")
        return target

    def create_signed_url(self, path: str, ttl_seconds: int | None = None) -> str:
        ttl = ttl_seconds or settings.SIGNED_URL_TTL_SECONDS
        payload = {
            "path": path,
            "scope": SIGNATURE_SCOPE,
            "exp": datetime.now(timezone.utc) + timedelta(seconds=ttl),
        }
        signature = jwt.encode(payload, self.secret, algorithm=ALGORITHM)
        return f"{self.public_url}/{quote(path)}?{urlencode({'signature': signature})}"

    def verify_signature(self, path: str, signature: str) -> bool:
        try:
            payload = jwt.decode(signature, self.secret, algorithms=[ALGORITHM])
        except JWTError:
            return False
        return payload.get("scope") == SIGNATURE_SCOPE and payload.get("path") == path


class SignedUrlCache:
    """Signed URLs keyed by storage path, cached in Redis until shortly before expiry.

    Redis problems degrade to issuing a fresh URL on every call.
    """

    KEY_PREFIX = "consentlink:signed_url:"

    def __init__(self, redis: aioredis.Redis, store: LocalDocumentStore, ttl_seconds: int | None = None):
        self.redis = redis
        self.store = store
        self.ttl_seconds = ttl_seconds or settings.SIGNED_URL_TTL_SECONDS

    async def get_url(self, path: str) -> tuple[str, int]:
        """Return ``(url, seconds_until_expiry)``."""
        key = f"{self.KEY_PREFIX}{path}"
        try:
            cached = await self.redis.get(key)
            if cached:
                remaining = await self.redis.ttl(key)
                if remaining and remaining > 0:
                    return cached, remaining + CACHE_SAFETY_MARGIN_SECONDS
        except aioredis.RedisError as e:
            logger.warning("signed_url_cache_read_failed", error=str(e))

        url = self.store.create_signed_url(path, self.ttl_seconds)
        cache_ttl = self.ttl_seconds - CACHE_SAFETY_MARGIN_SECONDS
        if cache_ttl > 0:
            try:
                await self.redis.set(key, url, ex=cache_ttl)
            except aioredis.RedisError as e:
                logger.warning("signed_url_cache_write_failed", error=str(e))
        return url, self.ttl_seconds


document_store = LocalDocumentStore()
