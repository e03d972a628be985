from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple

from ticketsync.models.profile import Profile


class OwnWriteLog:
    """
    Status writes made by one viewer.

    Shared by every view the viewer has open, so the echo of a write made
    in one view stays silent in all of them. A write is matched by
    (ticket, status) while it is in flight and by (ticket, status,
    updated_at) once the database has confirmed the row.
    """

    # Confirmed row versions remembered per viewer
    MAX_CONFIRMED = 500

    def __init__(self):
        self._pending: Dict[Tuple[str, str], int] = {}
        self._confirmed: "OrderedDict[Tuple[str, str, Optional[datetime]], None]" = OrderedDict()

    def expect(self, ticket_id: str, status: str) -> None:
        key = (ticket_id, status)
        self._pending[key] = self._pending.get(key, 0) + 1

    def forget(self, ticket_id: str, status: str) -> None:
        key = (ticket_id, status)
        remaining = self._pending.get(key, 0) - 1
        if remaining > 0:
            self._pending[key] = remaining
        else:
            self._pending.pop(key, None)

    def confirm(self, ticket_id: str, status: str, updated_at: Optional[datetime]) -> None:
        self._confirmed[(ticket_id, status, updated_at)] = None
        while len(self._confirmed) > self.MAX_CONFIRMED:
            self._confirmed.popitem(last=False)

    def is_pending(self, ticket_id: str, status: str) -> bool:
        return (ticket_id, status) in self._pending

    def matches(self, ticket) -> bool:
        """True when the ticket row is the result of one of our own status writes."""
        if ticket is None:
            return False
        if (ticket.id, ticket.status) in self._pending:
            return True
        return (ticket.id, ticket.status, ticket.updated_at) in self._confirmed


@dataclass(frozen=True)
class Viewer:
    """
    Explicit session context for one viewer: who is looking and in which role.

    Fixed for the lifetime of a view; a change of identity means a new view.
    Pass the same Viewer to every view of that person so they share the
    record of their own writes.
    """
    id: str
    is_admin: bool = False
    email: Optional[str] = None
    writes: OwnWriteLog = field(default_factory=OwnWriteLog, compare=False, repr=False)

    @classmethod
    def from_profile(cls, profile: Profile) -> "Viewer":
        return cls(id=profile.id, is_admin=bool(profile.is_admin), email=profile.email)

    @property
    def role(self) -> str:
        return "staff" if self.is_admin else "customer"

    def can_see_ticket(self, ticket) -> bool:
        """Staff see every ticket; customers only the ones they created."""
        if ticket is None:
            return False
        return self.is_admin or ticket.created_by == self.id
