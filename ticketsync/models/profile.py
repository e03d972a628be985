from typing import Optional
from datetime import datetime

from ticketsync.models.base_model import BaseModel


class Profile(BaseModel):
    """
    Identity record for a customer or staff member.
    Maps to the profiles table. Read-only reference data for the sync core.
    """

    def __init__(self):
        self.id: str = None
        self.email: str = None
        self.full_name: Optional[str] = None
        self.is_admin: bool = False
        self.created_at: Optional[datetime] = None
        self.updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        """Full name when set, otherwise the email address."""
        return self.full_name or self.email or "Unknown user"

    @property
    def initials(self) -> str:
        """Up to two initials for avatars ("U" when no name is set)."""
        if not self.full_name:
            return 'U'
        parts = [part for part in self.full_name.split(' ') if part]
        return ''.join(part[0] for part in parts).upper()[:2] or 'U'
