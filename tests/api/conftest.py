"""API test fixtures — FastAPI TestClient against the SQLite test database.

The app's database, Redis and document store dependencies are overridden
per test; email hand-off is captured by the autouse ``sent_emails`` fixture.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from consentlink.config import settings
from consentlink.deps import ALGORITHM, get_db, get_document_store, get_redis
from consentlink.main import app


def _token(sub: str, role: str) -> str:
    return jwt.encode(
        {"sub": sub, "role": role, "email": f"{sub}@example.com",
         "exp": datetime(2030, 1, 1, tzinfo=timezone.utc)},
        settings.APP_SECRET_KEY, algorithm=ALGORITHM,
    )


@pytest.fixture
def client(session_factory, fake_redis, document_store):
    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_redis] = _get_redis
    app.dependency_overrides[get_document_store] = lambda: document_store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def staff_headers():
    return {"Authorization": f"Bearer {_token('staff-1', 'recruiter')}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {_token('admin-1', 'admin')}"}


@pytest.fixture
def candidate_headers():
    return {"Authorization": f"Bearer {_token('cand-1', 'jobseeker')}"}


@pytest.fixture
def consent_request(client, staff_headers, recipients, sent_emails) -> dict:
    """A request for the first two clients; returns document id and tokens by client id."""
    ids = [str(i) for i in recipients["clients"][:2]]
    r = client.post(
        "/api/consent/request",
        headers=staff_headers,
        json={
            "fileName": "Privacy Notice.pdf",
            "filePath": "staff-1/abc/Privacy Notice.pdf",
            "recipientIds": ids,
            "recipientType": "client",
        },
    )
    assert r.status_code == 201, r.text
    document_id = r.json()["document"]["id"]

    tokens = {}
    for call in sent_emails.call_args_list:
        message = call.args[0]
        tokens[message["to"]] = message["text"].split("token=")[1].split()[0]
    sent_emails.reset_mock()
    return {"document_id": document_id, "recipient_ids": ids, "tokens": tokens}
