"""
Test configuration and fixtures

Provides an in-memory ContactStore, services wired to it, and
SQLite-backed database managers for the SQLAlchemy store.
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# Set test environment variables before importing app modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DB_ADVISORY_LOCKS", "false")

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from database import DatabaseManager
from models.contact import Contact, LinkPrecedence
from services.contact_store import ContactStore
from services.identity_service import IdentityService


class InMemoryContactStore(ContactStore):
    """
    ContactStore keeping contacts in a dict
    Records every call so tests can assert on store traffic, and can be
    told to raise on a given operation
    """

    def __init__(self):
        self.contacts = {}
        self.calls = []
        self.fail_on = {}
        self._next_id = 1
        self._clock = datetime(2023, 4, 1, tzinfo=timezone.utc)

    def _record(self, operation, *args):
        self.calls.append((operation,) + args)
        if operation in self.fail_on:
            raise self.fail_on[operation]

    @property
    def mutations(self):
        return [call for call in self.calls if call[0] in ("create", "demote_to_secondary")]

    def add(self, email=None, phone=None, link_precedence=LinkPrecedence.PRIMARY, linked_id=None, deleted=False):
        """Seed a contact without recording a call"""
        self._clock += timedelta(seconds=1)
        contact = Contact(
            id=self._next_id,
            email=email,
            phone_number=phone,
            link_precedence=LinkPrecedence(link_precedence).value,
            linked_id=linked_id,
            created_at=self._clock,
            updated_at=self._clock,
            deleted_at=self._clock if deleted else None
        )
        self.contacts[contact.id] = contact
        self._next_id += 1
        return contact

    def _active(self):
        return sorted(
            (c for c in self.contacts.values() if c.deleted_at is None),
            key=lambda c: (c.created_at, c.id)
        )

    async def find_matching(self, email, phone):
        self._record("find_matching", email, phone)
        return [
            c for c in self._active()
            if (email and c.email == email) or (phone and c.phone_number == phone)
        ]

    async def create(self, email, phone, link_precedence, linked_id=None):
        self._record("create", email, phone, LinkPrecedence(link_precedence).value, linked_id)
        return self.add(email, phone, link_precedence, linked_id)

    async def demote_to_secondary(self, ids, new_linked_id):
        ids = set(ids)
        self._record("demote_to_secondary", sorted(ids), new_linked_id)
        for contact in self.contacts.values():
            if contact.id in ids or contact.linked_id in ids:
                contact.link_precedence = LinkPrecedence.SECONDARY.value
                contact.linked_id = new_linked_id

    async def find_cluster(self, primary_id):
        self._record("find_cluster", primary_id)
        return [c for c in self._active() if c.id == primary_id or c.linked_id == primary_id]


@pytest.fixture
def memory_store():
    return InMemoryContactStore()


@pytest.fixture
def memory_service(memory_store):
    @asynccontextmanager
    async def store_factory():
        yield memory_store

    return IdentityService(store_factory=store_factory)


@pytest_asyncio.fixture
async def sqlite_db(tmp_path):
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'contacts.db'}")
    await manager.create_tables()
    try:
        yield manager
    finally:
        await manager.dispose()


@pytest.fixture
def api_client(memory_service):
    from main import app, get_identity_service

    app.dependency_overrides[get_identity_service] = lambda: memory_service
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
