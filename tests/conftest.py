"""Shared test fixtures for all test modules.

Tests run against a file-backed SQLite database through aiosqlite. Every
transaction starts with BEGIN IMMEDIATE so concurrent sessions serialize
their writes the way row locks do on PostgreSQL.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from consentlink.models import Base, Client, JobseekerProfile
from consentlink.services.storage import LocalDocumentStore


class FakeRedis:
    """In-memory stand-in for the handful of redis.asyncio calls we make."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.expiry: dict[str, int] = {}

    async def get(self, key):
        return self.values.get(key)

    async def ttl(self, key):
        if key not in self.values:
            return -2
        return self.expiry.get(key, -1)

    async def set(self, key, value, ex=None):
        self.values[key] = value
        if ex is not None:
            self.expiry[key] = ex
        return True


@pytest.fixture
def sync_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'consentlink.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def engine(sync_engine):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{sync_engine.url.database}",
        poolclass=NullPool,
        connect_args={"timeout": 15},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def recipients(sync_engine) -> dict:
    """Three clients (one without email) and two jobseekers."""
    with Session(sync_engine) as s:
        clients = [
            Client(company_name="Northwind Logistics", email_address1="hr@northwind.example.com"),
            Client(company_name="Contoso Health", email_address1="people@contoso.example.com"),
            Client(company_name="Fabrikam Retail", email_address1=None),
        ]
        jobseekers = [
            JobseekerProfile(first_name="Ada", last_name="Okafor", email="ada@example.com"),
            JobseekerProfile(first_name="Mateo", last_name="Lindqvist", email="mateo@example.com"),
        ]
        s.add_all(clients + jobseekers)
        s.commit()
        return {
            "clients": [c.id for c in clients],
            "jobseekers": [j.id for j in jobseekers],
        }


@pytest.fixture(autouse=True)
def sent_emails():
    """Capture every email handed to the worker instead of touching the broker."""
    with patch("consentlink.services.notifications.send_email.delay") as delay:
        yield delay


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def document_store(tmp_path) -> LocalDocumentStore:
    return LocalDocumentStore(
        root=tmp_path / "storage",
        public_url="http://testserver/api/storage",
        secret="test-secret",
        max_bytes=1024,
    )
