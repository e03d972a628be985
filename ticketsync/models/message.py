from typing import Optional, Tuple
from datetime import datetime

from ticketsync.models.base_model import BaseModel


class Message(BaseModel):
    """
    A message posted on a ticket by its customer or by staff.
    Maps to the messages table. Messages are immutable once created.
    """

    DATETIME_FIELDS = ("created_at",)
    RELATED_FIELDS = ("sender",)

    def __init__(self):
        self.id: str = None
        self.ticket_id: str = None
        self.sender_id: str = None
        self.content: str = None
        self.is_read: bool = False
        self.created_at: Optional[datetime] = None

    @property
    def sort_key(self) -> Tuple[datetime, str]:
        """Thread order: created_at, ties broken by id."""
        return (self.timestamp_or_epoch(self.created_at), str(self.id))

    def preview(self, limit: int = 100) -> str:
        content = (self.content or "").strip()
        return content[:limit] + "..." if len(content) > limit else content
