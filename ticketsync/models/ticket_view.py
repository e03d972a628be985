from dataclasses import dataclass
from typing import Optional, Dict, Any

from ticketsync.models.ticket import Ticket
from ticketsync.models.message import Message
from ticketsync.models.profile import Profile


@dataclass
class TicketView:
    """
    Ticket with its resolved profiles and derived fields.

    Never persisted. Always rebuilt from the entity store by the aggregator.
    """
    ticket: Ticket
    creator: Optional[Profile] = None
    assignee: Optional[Profile] = None
    message_count: int = 0
    latest_message: Optional[Message] = None
    unread_count: int = 0

    @property
    def id(self) -> str:
        return self.ticket.id

    @property
    def has_unread(self) -> bool:
        return self.unread_count > 0

    def to_dict(self) -> Dict[str, Any]:
        data = self.ticket.to_dict()
        data["profiles"] = self.creator.to_dict() if self.creator else None
        data["assigned_profile"] = self.assignee.to_dict() if self.assignee else None
        data["message_count"] = self.message_count
        data["latest_message"] = self.latest_message.to_dict() if self.latest_message else None
        data["unread_count"] = self.unread_count
        return data
