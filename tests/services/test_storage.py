"""Tests for the document store and the signed URL cache."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, unquote, urlparse

import pytest
import redis.asyncio as aioredis

from consentlink.exceptions import NotFoundError, ValidationError
from consentlink.services.storage import CACHE_SAFETY_MARGIN_SECONDS, SignedUrlCache, safe_file_name


def _signature(url: str) -> str:
    return parse_qs(urlparse(url).query)["signature"][0]


class TestSafeFileName:
    def test_strips_directories(self):
        assert safe_file_name("../../etc/passwd") == "passwd"
        assert safe_file_name("C:\\Users\\me\\NDA.pdf") == "NDA.pdf"

    def test_replaces_unsafe_characters(self):
        assert safe_file_name("contract<v2>?.pdf") == "contract_v2_.pdf"

    def test_empty_falls_back(self):
        assert safe_file_name("...") == "document"


class TestLocalDocumentStore:
    def test_upload_and_resolve(self, document_store):
        path = document_store.upload(b"%PDF-1.4 hello", "NDA.pdf", "staff-1", "application/pdf")

        assert path.startswith("staff-1/")
        assert path.endswith("/NDA.pdf")
        assert document_store.resolve(path).read_bytes() == b"%PDF-1.4 hello"

    def test_same_name_does_not_overwrite(self, document_store):
        first = document_store.upload(b"one", "NDA.pdf", "staff-1", "application/pdf")
        second = document_store.upload(b"two", "NDA.pdf", "staff-1", "application/pdf")
        assert first != second
        assert document_store.resolve(first).read_bytes() == b"one"

    def test_rejects_empty(self, document_store):
        with pytest.raises(ValidationError):
            document_store.upload(b"", "NDA.pdf", "staff-1", "application/pdf")

    def test_rejects_too_large(self, document_store):
        with pytest.raises(ValidationError) as exc_info:
            document_store.upload(b"x" * 2048, "NDA.pdf", "staff-1", "application/pdf")
        assert exc_info.value.details == {"maxBytes": 1024}

    def test_rejects_unsupported_type(self, document_store):
        with pytest.raises(ValidationError):
            document_store.upload(b"MZ", "setup.exe", "staff-1", "application/x-msdownload")

    def test_resolve_refuses_traversal(self, document_store, tmp_path):
        (tmp_path / "secret.txt").write_text("nope")
        with pytest.raises(NotFoundError):
            document_store.resolve("../secret.txt")

    def test_resolve_missing(self, document_store):
        with pytest.raises(NotFoundError):
            document_store.resolve("staff-1/missing/NDA.pdf")

    def test_signed_url_round_trip(self, document_store):
        path = document_store.upload(b"data", "Privacy Notice.pdf", "staff-1", "application/pdf")
        url = document_store.create_signed_url(path, 300)

        parsed = urlparse(url)
        assert url.startswith("http://testserver/api/storage/")
        assert unquote(parsed.path) == f"/api/storage/{path}"
        assert document_store.verify_signature(path, _signature(url))

    def test_signature_bound_to_path(self, document_store):
        url = document_store.create_signed_url("staff-1/a/NDA.pdf", 300)
        assert not document_store.verify_signature("staff-1/b/NDA.pdf", _signature(url))

    def test_garbage_signature(self, document_store):
        assert not document_store.verify_signature("staff-1/a/NDA.pdf", "not-a-jwt")


class TestSignedUrlCache:
    @pytest.mark.asyncio
    async def test_reuses_cached_url(self, document_store, fake_redis):
        cache = SignedUrlCache(fake_redis, document_store, ttl_seconds=600)

        url, expires_in = await cache.get_url("staff-1/a/NDA.pdf")
        again, _ = await cache.get_url("staff-1/a/NDA.pdf")

        assert again == url
        assert expires_in == 600
        assert fake_redis.expiry[f"{SignedUrlCache.KEY_PREFIX}staff-1/a/NDA.pdf"] == 600 - CACHE_SAFETY_MARGIN_SECONDS

    @pytest.mark.asyncio
    async def test_short_ttl_is_not_cached(self, document_store, fake_redis):
        cache = SignedUrlCache(fake_redis, document_store, ttl_seconds=CACHE_SAFETY_MARGIN_SECONDS)

        await cache.get_url("staff-1/a/NDA.pdf")
        assert fake_redis.values == {}

    @pytest.mark.asyncio
    async def test_redis_errors_fall_back_to_fresh_url(self, document_store):
        broken = MagicMock()
        broken.get = AsyncMock(side_effect=aioredis.ConnectionError("down"))
        broken.set = AsyncMock(side_effect=aioredis.ConnectionError("down"))
        cache = SignedUrlCache(broken, document_store, ttl_seconds=600)

        url, expires_in = await cache.get_url("staff-1/a/NDA.pdf")
        assert document_store.verify_signature("staff-1/a/NDA.pdf", _signature(url))
        assert expires_in == 600
