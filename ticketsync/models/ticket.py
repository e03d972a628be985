from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime

from ticketsync.models.base_model import BaseModel


class TicketStatus(Enum):
    """Lifecycle states of a ticket."""
    OPEN = "open"
    PENDING = "pending"
    CLOSED = "closed"

    @classmethod
    def parse(cls, value) -> "TicketStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            allowed = ", ".join(status.value for status in cls)
            raise ValueError(f"Invalid ticket status {value!r}; expected one of: {allowed}")


class Ticket(BaseModel):
    """
    Represents a customer support ticket.
    Maps to the tickets table.
    """

    STATUS_OPEN = TicketStatus.OPEN.value
    STATUS_PENDING = TicketStatus.PENDING.value
    STATUS_CLOSED = TicketStatus.CLOSED.value

    def __init__(self):
        self.id: str = None
        self.subject: str = None
        self.status: str = self.STATUS_OPEN
        self.created_by: str = None
        self.assigned_to: Optional[str] = None
        self.created_at: Optional[datetime] = None
        self.updated_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status == self.STATUS_OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == self.STATUS_CLOSED

    @property
    def is_assigned(self) -> bool:
        return self.assigned_to is not None

    @property
    def status_display(self) -> str:
        """Get human-readable status."""
        status_map = {
            'open': 'Open',
            'pending': 'Pending',
            'closed': 'Closed',
        }
        return status_map.get(self.status, self.status)

    def same_row(self, other: Optional["Ticket"]) -> bool:
        """True when both objects carry identical column values."""
        return other is not None and self.to_dict() == other.to_dict()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["Ticket"]:
        ticket = super().from_dict(data)
        if ticket is not None and ticket.status:
            ticket.status = TicketStatus.parse(ticket.status).value
        return ticket
