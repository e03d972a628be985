# -*- coding: utf-8 -*-
"""
Shared test fixtures for the ticket-sync test suite.

Provides viewers, settings, a chainable mock Supabase client, an
in-memory change-feed transport and an in-memory repository that applies
the claim write as a compare-and-set, like the database does.
"""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, AsyncMock
from typing import Dict, Any, List, Optional

from ticketsync.models.change_event import ChangeEvent
from ticketsync.models.viewer import Viewer
from ticketsync.utils.constants import Settings

from factories import (
    CUSTOMER_ID,
    OTHER_CUSTOMER_ID,
    STAFF_ID,
    OTHER_STAFF_ID,
    ticket_row,
    message_row,
    profile_row,
)


# =============================================================================
# VIEWERS AND SETTINGS
# =============================================================================

@pytest.fixture
def customer():
    return Viewer(id=CUSTOMER_ID, is_admin=False, email=f"{CUSTOMER_ID}@example.com")


@pytest.fixture
def other_customer():
    return Viewer(id=OTHER_CUSTOMER_ID, is_admin=False)


@pytest.fixture
def staff():
    return Viewer(id=STAFF_ID, is_admin=True)


@pytest.fixture
def other_staff():
    return Viewer(id=OTHER_STAFF_ID, is_admin=True)


@pytest.fixture
def fast_settings():
    """Settings with no retry delays."""
    settings = Settings()
    settings.SENDER_RESOLVE_RETRIES = 3
    settings.SENDER_RESOLVE_BACKOFF = 0
    settings.AUTO_CLAIM = True
    return settings


# =============================================================================
# DATABASE MOCKS
# =============================================================================

@pytest.fixture
def mock_supabase():
    """Create a mock async Supabase client with chained query support."""
    mock = MagicMock()
    tables = {}

    def create_table_mock(table_name):
        if table_name not in tables:
            table = MagicMock()
            # Support full chaining: .select().eq().neq().is_().in_().order().limit().insert().update()
            for method in [
                'select', 'eq', 'neq', 'is_', 'in_', 'order', 'limit', 'insert', 'update',
            ]:
                getattr(table, method).return_value = table
            table.execute = AsyncMock(return_value=MagicMock(data=[]))
            tables[table_name] = table
        return tables[table_name]

    mock.table = MagicMock(side_effect=create_table_mock)
    mock.tables = tables
    return mock


class FakeTransport:
    """In-memory change-feed transport. Delivers pushed events to active channels only."""

    def __init__(self):
        self.channels: Dict[str, Any] = {}
        self.log: List[tuple] = []
        self._counter = 0

    async def subscribe(self, name, bindings, callback):
        await asyncio.sleep(0)
        self._counter += 1
        handle = f"{name}#{self._counter}"
        self.channels[handle] = (name, list(bindings), callback)
        self.log.append(("subscribe", name))
        return handle

    async def unsubscribe(self, handle):
        await asyncio.sleep(0)
        name, _, _ = self.channels.pop(handle)
        self.log.append(("unsubscribe", name))

    @property
    def active_count(self) -> int:
        return len(self.channels)

    def push(self, event: ChangeEvent) -> None:
        for _, _, callback in list(self.channels.values()):
            callback(event)


class FakeRepository:
    """
    In-memory stand-in for TicketRepository.

    Every call yields to the event loop once, like a network round trip.
    claim_ticket checks and sets assigned_to without yielding in between,
    which is the atomicity the database gives the real conditional update.
    """

    def __init__(self):
        self.tickets: Dict[str, Dict[str, Any]] = {}
        self.messages: Dict[str, Dict[str, Any]] = {}
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.calls: List[str] = []
        self.fail: set = set()
        self.gates: Dict[str, asyncio.Event] = {}
        self._clock = datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc)
        self._ids = 0

    def _now(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def _next_id(self, prefix: str) -> str:
        self._ids += 1
        return f"{prefix}-new-{self._ids}"

    async def _io(self, name: str) -> None:
        self.calls.append(name)
        await asyncio.sleep(0)
        if name in self.gates:
            await self.gates[name].wait()
        if name in self.fail:
            raise RuntimeError(f"{name} failed")

    def add_ticket(self, row):
        self.tickets[row["id"]] = dict(row)

    def add_message(self, row):
        self.messages[row["id"]] = dict(row)

    def add_profile(self, row):
        self.profiles[row["id"]] = dict(row)

    async def list_tickets(self, viewer, status=None):
        await self._io("list_tickets")
        return [
            dict(row) for row in self.tickets.values()
            if (viewer.is_admin or row["created_by"] == viewer.id)
            and (status is None or row["status"] == status)
        ]

    async def get_ticket(self, ticket_id, viewer=None):
        await self._io("get_ticket")
        row = self.tickets.get(ticket_id)
        if row is None:
            return None
        if viewer is not None and not viewer.is_admin and row["created_by"] != viewer.id:
            return None
        return dict(row)

    async def list_messages(self, ticket_ids):
        await self._io("list_messages")
        ids = set(ticket_ids)
        return [dict(row) for row in self.messages.values() if row["ticket_id"] in ids]

    async def get_profiles(self, profile_ids):
        await self._io("get_profiles")
        return [dict(self.profiles[pid]) for pid in profile_ids if pid in self.profiles]

    async def get_profile(self, profile_id):
        await self._io("get_profile")
        row = self.profiles.get(profile_id)
        return dict(row) if row else None

    async def insert_ticket(self, subject, created_by):
        await self._io("insert_ticket")
        now = self._now()
        row = ticket_row(self._next_id("t"), created_by=created_by, subject=subject,
                         created_at=now, updated_at=now)
        self.tickets[row["id"]] = row
        return dict(row)

    async def insert_message(self, ticket_id, sender_id, content):
        await self._io("insert_message")
        row = message_row(self._next_id("m"), ticket_id=ticket_id, sender_id=sender_id,
                          content=content, created_at=self._now())
        self.messages[row["id"]] = row
        return dict(row)

    async def update_ticket(self, ticket_id, changes):
        await self._io("update_ticket")
        row = self.tickets.get(ticket_id)
        if row is None:
            return None
        row.update(changes)
        row["updated_at"] = self._now()
        return dict(row)

    async def claim_ticket(self, ticket_id, staff_id):
        await self._io("claim_ticket")
        row = self.tickets.get(ticket_id)
        if row is None or row["assigned_to"] is not None:
            return []
        row["assigned_to"] = staff_id
        row["updated_at"] = self._now()
        return [dict(row)]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def repository():
    repo = FakeRepository()
    repo.add_profile(profile_row(CUSTOMER_ID, "Casey Customer"))
    repo.add_profile(profile_row(OTHER_CUSTOMER_ID, "Olive Other"))
    repo.add_profile(profile_row(STAFF_ID, "Sam Staff", is_admin=True))
    repo.add_profile(profile_row(OTHER_STAFF_ID, "Alex Agent", is_admin=True))
    return repo


@pytest.fixture
def make_session(repository, transport, fast_settings):
    """Factory fixture that builds a ViewSession on the shared fakes."""
    from ticketsync.sync.view_session import ViewSession

    def make(viewer, ticket_id=None, **kwargs):
        return ViewSession(repository, transport, viewer, ticket_id=ticket_id,
                           settings=fast_settings, **kwargs)

    return make
