"""
Change-feed events.

Normalizes Supabase realtime postgres_changes payloads (and rows confirmed
by our own writes) into one ChangeEvent shape that the reconciler consumes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any


class EventKind(Enum):
    INSERT = "insert"
    UPDATE = "update"


class EventTable(Enum):
    TICKETS = "tickets"
    MESSAGES = "messages"


class EventOrigin(Enum):
    FEED = "feed"          # pushed by the realtime channel
    WRITE = "write"        # row returned by one of our own writes
    SNAPSHOT = "snapshot"  # row returned by a full load


# Singular names used by some callers
_TABLE_ALIASES = {
    "ticket": "tickets",
    "message": "messages",
}


@dataclass
class ChangeEvent:
    """
    One row change. kind and table are kept as lower-case strings so that
    kinds or tables the core does not handle can still be represented (and
    ignored by the reconciler).
    """
    kind: str
    table: str
    new_row: Dict[str, Any] = field(default_factory=dict)
    old_row: Optional[Dict[str, Any]] = None
    event_id: Optional[str] = None
    commit_timestamp: Optional[str] = None
    origin: EventOrigin = EventOrigin.FEED

    def __post_init__(self):
        self.kind = (self.kind or "").lower()
        table = (self.table or "").lower()
        self.table = _TABLE_ALIASES.get(table, table)
        self.new_row = self.new_row or {}

    @property
    def row_id(self) -> Optional[str]:
        return self.new_row.get("id")

    @property
    def is_ticket(self) -> bool:
        return self.table == EventTable.TICKETS.value

    @property
    def is_message(self) -> bool:
        return self.table == EventTable.MESSAGES.value

    @property
    def key(self) -> str:
        """
        Identity of the event for deduplication. Redeliveries of the same
        change carry the same row id and row timestamp.
        """
        if self.event_id:
            return str(self.event_id)
        stamp = self.new_row.get("updated_at") or self.new_row.get("created_at") or self.commit_timestamp
        return f"{self.table}:{self.kind}:{self.row_id}:{stamp}"

    @classmethod
    def from_realtime_payload(cls, payload: Dict[str, Any]) -> "ChangeEvent":
        """
        Build an event from a realtime postgres_changes callback payload.

        Accepts the realtime-py shape ({"data": {"type", "table", "record",
        "old_record", "commit_timestamp"}, "ids": [...]}) as well as the flat
        supabase-js shape ({"eventType", "table", "new", "old"}).
        """
        data = payload.get("data", payload) if isinstance(payload, dict) else {}
        kind = data.get("type") or data.get("eventType") or ""
        new_row = data.get("record") or data.get("new") or {}
        old_row = data.get("old_record") or data.get("old") or None
        return cls(
            kind=kind,
            table=data.get("table", ""),
            new_row=dict(new_row),
            old_row=dict(old_row) if old_row else None,
            commit_timestamp=data.get("commit_timestamp"),
            origin=EventOrigin.FEED,
        )

    @classmethod
    def confirmation(
        cls,
        table: str,
        row: Dict[str, Any],
        kind: EventKind = EventKind.UPDATE,
        old_row: Optional[Dict[str, Any]] = None,
    ) -> "ChangeEvent":
        """Event for a row returned by one of our own writes."""
        return cls(
            kind=kind.value,
            table=table,
            new_row=dict(row),
            old_row=dict(old_row) if old_row else None,
            origin=EventOrigin.WRITE,
        )

    @classmethod
    def snapshot(cls, table: str, row: Dict[str, Any]) -> "ChangeEvent":
        """Event for a row returned by a full load."""
        return cls(
            kind=EventKind.INSERT.value,
            table=table,
            new_row=dict(row),
            origin=EventOrigin.SNAPSHOT,
        )
