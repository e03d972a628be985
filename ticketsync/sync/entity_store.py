"""
Entity Store - the view's in-memory copy of tickets, messages and profiles.

Pure data: keyed by id, last write wins on the same id, no I/O. Only the
reconciler writes to it; aggregator and notifier read from it.
"""

import logging
from collections import defaultdict
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from ticketsync.models.message import Message
from ticketsync.models.profile import Profile
from ticketsync.models.ticket import Ticket
from ticketsync.models.viewer import Viewer

logger = logging.getLogger(__name__)


class EntityStore:
    def __init__(self):
        self._tickets: Dict[str, Ticket] = {}
        self._messages: Dict[str, Message] = {}
        self._profiles: Dict[str, Profile] = {}
        # ticket_id -> {message_id: Message}
        self._messages_by_ticket: Dict[str, Dict[str, Message]] = defaultdict(dict)

    # =========================================================================
    # Mutation (reconciler only)
    # =========================================================================

    def upsert_ticket(self, ticket: Ticket) -> Optional[Ticket]:
        """Store a ticket, returning the one it replaced."""
        previous = self._tickets.get(ticket.id)
        self._tickets[ticket.id] = ticket
        return previous

    def upsert_message(self, message: Message) -> Optional[Message]:
        """Store a message, returning the one it replaced."""
        previous = self._messages.get(message.id)
        if previous is not None and previous.ticket_id != message.ticket_id:
            self._messages_by_ticket[previous.ticket_id].pop(previous.id, None)
        self._messages[message.id] = message
        self._messages_by_ticket[message.ticket_id][message.id] = message
        return previous

    def upsert_profile(self, profile: Profile) -> Optional[Profile]:
        previous = self._profiles.get(profile.id)
        self._profiles[profile.id] = profile
        return previous

    def remove_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """
        Drop a ticket and its messages. Used only when the viewer lost access
        to the row; the core never deletes tickets otherwise.
        """
        ticket = self._tickets.pop(ticket_id, None)
        for message_id in self._messages_by_ticket.pop(ticket_id, {}):
            self._messages.pop(message_id, None)
        if ticket is not None:
            logger.info(f"[STORE] Removed ticket {ticket_id}")
        return ticket

    def clear(self) -> None:
        self._tickets.clear()
        self._messages.clear()
        self._profiles.clear()
        self._messages_by_ticket.clear()

    # =========================================================================
    # Reads
    # =========================================================================

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        return self._tickets.get(ticket_id)

    def get_message(self, message_id: str) -> Optional[Message]:
        return self._messages.get(message_id)

    def get_profile(self, profile_id: Optional[str]) -> Optional[Profile]:
        if profile_id is None:
            return None
        return self._profiles.get(profile_id)

    def has_profile(self, profile_id: Optional[str]) -> bool:
        return profile_id is not None and profile_id in self._profiles

    @property
    def profiles(self) -> Mapping[str, Profile]:
        """Read-only view of the profile lookup."""
        return MappingProxyType(self._profiles)

    @property
    def ticket_ids(self) -> List[str]:
        return list(self._tickets)

    def tickets_visible_to(self, viewer: Viewer) -> List[Ticket]:
        """
        Tickets the viewer may see. Filters on every read, whatever the feed
        or the reconciler let through.
        """
        return [ticket for ticket in self._tickets.values() if viewer.can_see_ticket(ticket)]

    def can_see(self, viewer: Viewer, ticket_id: Optional[str]) -> bool:
        return viewer.can_see_ticket(self._tickets.get(ticket_id))

    def messages_for(self, ticket_id: str) -> List[Message]:
        """Messages of one ticket ordered by created_at, then id."""
        messages = self._messages_by_ticket.get(ticket_id)
        if not messages:
            return []
        return sorted(messages.values(), key=lambda message: message.sort_key)

    def visible_messages(self, viewer: Viewer, ticket_id: str) -> List[Message]:
        if not self.can_see(viewer, ticket_id):
            return []
        return self.messages_for(ticket_id)

    def __len__(self) -> int:
        return len(self._tickets)
