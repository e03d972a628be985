"""
Ticket Lifecycle Service - status transitions, claim-once assignment,
ticket creation and replies.

Writes go to the database first; the stored row that comes back is fed
through the view's change-feed pipeline like any other event, so the
store is only ever changed by the reconciler.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Set

from ticketsync.models.change_event import ChangeEvent, EventKind
from ticketsync.models.message import Message
from ticketsync.models.ticket import Ticket, TicketStatus
from ticketsync.models.viewer import Viewer
from ticketsync.utils.constants import TICKETS_TABLE, MESSAGES_TABLE
from ticketsync.utils.exceptions import (
    PartialCreateError,
    PermissionDeniedError,
    TicketClosedError,
    TicketNotFoundError,
    WriteError,
)

logger = logging.getLogger(__name__)


# Any status may move to any other status
ALLOWED_TRANSITIONS: Dict[TicketStatus, Set[TicketStatus]] = {
    status: {other for other in TicketStatus if other is not status}
    for status in TicketStatus
}


@dataclass
class ClaimResult:
    """Outcome of a claim attempt."""
    ticket_id: str
    claimed: bool
    assigned_to: Optional[str] = None
    ticket: Optional[Ticket] = None

    @property
    def already_assigned(self) -> bool:
        return not self.claimed


@dataclass
class CreatedTicket:
    ticket: Ticket
    message: Message


class TicketLifecycleService:
    def __init__(self, repository, feed, viewer: Viewer):
        """
        Args:
            repository: TicketRepository issuing the writes
            feed: ChangeFeedClient of the view; write confirmations go through it
            viewer: Who is acting
        """
        self.repository = repository
        self.feed = feed
        self.viewer = viewer

    @property
    def store(self):
        return self.feed.store

    def _require_staff(self, action: str) -> None:
        if not self.viewer.is_admin:
            raise PermissionDeniedError(f"Only staff can {action}")

    async def _current_ticket(self, ticket_id: str) -> Ticket:
        ticket = self.store.get_ticket(ticket_id)
        if ticket is not None:
            return ticket

        row = await self.repository.get_ticket(ticket_id, self.viewer)
        ticket = Ticket.from_dict(row) if row else None
        if ticket is None or not self.viewer.can_see_ticket(ticket):
            raise TicketNotFoundError(ticket_id)
        return ticket

    def _confirm(self, table: str, row: Dict, kind: EventKind = EventKind.UPDATE, old_row: Dict = None):
        """Route a stored row through the view pipeline; returns the store's copy."""
        event = ChangeEvent.confirmation(table, row, kind=kind, old_row=old_row)
        self.feed.handle_event(event)
        if table == TICKETS_TABLE:
            return self.store.get_ticket(row.get("id")) or Ticket.from_dict(row)
        return self.store.get_message(row.get("id")) or Message.from_dict(row)

    # =========================================================================
    # Status
    # =========================================================================

    async def change_status(self, ticket_id: str, status) -> Ticket:
        """
        Move a ticket to another status.

        Requesting the current status is a no-op: no write, no alert.
        """
        self._require_staff("change ticket status")
        target = TicketStatus.parse(status)

        current = await self._current_ticket(ticket_id)
        current_status = TicketStatus.parse(current.status)
        if target is current_status:
            logger.debug(f"[LIFECYCLE] Ticket {ticket_id} already {target.value}, nothing to do")
            return current

        if target not in ALLOWED_TRANSITIONS[current_status]:
            raise ValueError(f"Cannot move ticket from {current_status.value} to {target.value}")

        # Every view of this viewer keeps the echo of this write silent
        writes = self.viewer.writes
        writes.expect(ticket_id, target.value)
        try:
            row = await self.repository.update_ticket(ticket_id, {"status": target.value})
        except Exception as e:
            logger.error(f"[LIFECYCLE] Status change of ticket {ticket_id} failed: {e}")
            raise WriteError(f"Failed to update ticket status: {e}") from e
        else:
            if row is None:
                raise TicketNotFoundError(ticket_id)
            stored = Ticket.from_dict(row)
            writes.confirm(stored.id, stored.status, stored.updated_at)
            logger.info(f"[LIFECYCLE] Ticket {ticket_id} marked as {target.value}")
            return self._confirm(TICKETS_TABLE, row, old_row=current.to_dict())
        finally:
            writes.forget(ticket_id, target.value)

    # =========================================================================
    # Assignment
    # =========================================================================

    async def claim(self, ticket_id: str, staff_id: Optional[str] = None) -> ClaimResult:
        """
        Assign an unassigned ticket, at most once.

        The database decides: the update only matches while assigned_to is
        NULL. Zero affected rows means another staff member got there first;
        the ticket is reloaded and returned with the winner's id.
        """
        self._require_staff("claim tickets")
        staff_id = staff_id or self.viewer.id

        try:
            rows = await self.repository.claim_ticket(ticket_id, staff_id)
        except Exception as e:
            logger.error(f"[LIFECYCLE] Claim of ticket {ticket_id} failed: {e}")
            raise WriteError(f"Failed to claim ticket: {e}") from e

        if rows:
            ticket = self._confirm(TICKETS_TABLE, rows[0])
            logger.info(f"[LIFECYCLE] Ticket {ticket_id} claimed by {staff_id}")
            return ClaimResult(ticket_id=ticket_id, claimed=True, assigned_to=staff_id, ticket=ticket)

        # Lost the race (or the ticket is gone): reload to show who holds it
        try:
            row = await self.repository.get_ticket(ticket_id)
        except Exception as e:
            logger.warning(f"[LIFECYCLE] Reload after lost claim of {ticket_id} failed: {e}")
            row = None

        ticket = self._confirm(TICKETS_TABLE, row) if row else None
        assigned_to = ticket.assigned_to if ticket else None
        logger.warning(f"[LIFECYCLE] Ticket {ticket_id} already assigned to {assigned_to}")
        return ClaimResult(ticket_id=ticket_id, claimed=False, assigned_to=assigned_to, ticket=ticket)

    async def reassign(self, ticket_id: str, staff_id: str) -> Ticket:
        """Explicitly hand a ticket to another staff member."""
        self._require_staff("reassign tickets")
        if not staff_id:
            raise ValueError("staff_id is required for reassignment")

        current = await self._current_ticket(ticket_id)
        if current.assigned_to == staff_id:
            return current

        try:
            row = await self.repository.update_ticket(ticket_id, {"assigned_to": staff_id})
        except Exception as e:
            logger.error(f"[LIFECYCLE] Reassignment of ticket {ticket_id} failed: {e}")
            raise WriteError(f"Failed to reassign ticket: {e}") from e

        if row is None:
            raise TicketNotFoundError(ticket_id)
        logger.info(f"[LIFECYCLE] Ticket {ticket_id} reassigned to {staff_id}")
        return self._confirm(TICKETS_TABLE, row, old_row=current.to_dict())

    # =========================================================================
    # Tickets and messages
    # =========================================================================

    async def create_ticket(self, subject: str, content: str) -> CreatedTicket:
        """
        Open a ticket with its first message.

        Two dependent writes. If the message fails after the ticket was
        stored, PartialCreateError carries the new ticket id so the caller
        can retry send_message() instead of creating a duplicate ticket.
        """
        subject = (subject or "").strip()
        content = (content or "").strip()
        if not subject:
            raise ValueError("Subject is required")
        if not content:
            raise ValueError("Message is required")

        try:
            ticket_row = await self.repository.insert_ticket(subject, self.viewer.id)
        except Exception as e:
            logger.error(f"[LIFECYCLE] Creating ticket failed: {e}")
            raise WriteError(f"Failed to create ticket: {e}") from e

        ticket = self._confirm(TICKETS_TABLE, ticket_row, kind=EventKind.INSERT)
        logger.info(f"[LIFECYCLE] Ticket {ticket.id} created by {self.viewer.id}")

        try:
            message_row = await self.repository.insert_message(ticket.id, self.viewer.id, content)
        except Exception as e:
            logger.error(f"[LIFECYCLE] Ticket {ticket.id} created but first message failed: {e}")
            raise PartialCreateError(ticket.id, e) from e

        message = self._confirm(MESSAGES_TABLE, message_row, kind=EventKind.INSERT)
        return CreatedTicket(ticket=ticket, message=message)

    async def send_message(self, ticket_id: str, content: str) -> Message:
        """Post a reply. Customers cannot post to closed tickets."""
        content = (content or "").strip()
        if not content:
            raise ValueError("Message cannot be empty")

        ticket = await self._current_ticket(ticket_id)
        if ticket.is_closed and not self.viewer.is_admin:
            raise TicketClosedError(ticket_id)

        try:
            row = await self.repository.insert_message(ticket_id, self.viewer.id, content)
        except Exception as e:
            logger.error(f"[LIFECYCLE] Sending message on ticket {ticket_id} failed: {e}")
            raise WriteError(f"Failed to send message: {e}") from e

        return self._confirm(MESSAGES_TABLE, row, kind=EventKind.INSERT)
