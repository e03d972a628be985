"""
Aggregator - derived per-ticket fields.

Pure functions over the entity store: message count, latest message and
unread count are rebuilt from scratch on every call, so there is no
incremental state that could drift from the stored messages.
"""

from typing import Iterable, List, Mapping, Optional

from ticketsync.models.message import Message
from ticketsync.models.profile import Profile
from ticketsync.models.ticket import Ticket
from ticketsync.models.ticket_view import TicketView
from ticketsync.models.viewer import Viewer


def aggregate(
    ticket: Ticket,
    messages: Iterable[Message],
    profiles: Optional[Mapping[str, Profile]] = None,
    viewer_id: Optional[str] = None,
) -> TicketView:
    """
    Build the TicketView for one ticket.

    Args:
        ticket: The stored ticket
        messages: Messages of that ticket (others are ignored)
        profiles: Profile lookup for creator and assignee
        viewer_id: Viewer whose unread count is computed

    Returns:
        TicketView with message_count, latest_message and unread_count
    """
    profiles = profiles or {}

    message_count = 0
    unread_count = 0
    latest: Optional[Message] = None

    for message in messages:
        if message.ticket_id != ticket.id:
            continue
        message_count += 1
        if latest is None or message.sort_key > latest.sort_key:
            latest = message
        if not message.is_read and message.sender_id != viewer_id:
            unread_count += 1

    return TicketView(
        ticket=ticket,
        creator=profiles.get(ticket.created_by),
        assignee=profiles.get(ticket.assigned_to) if ticket.assigned_to else None,
        message_count=message_count,
        latest_message=latest,
        unread_count=unread_count,
    )


def aggregate_ticket(store, ticket_id: str, viewer: Viewer) -> Optional[TicketView]:
    """View for one stored ticket, or None when the viewer cannot see it."""
    ticket = store.get_ticket(ticket_id)
    if not viewer.can_see_ticket(ticket):
        return None
    return aggregate(ticket, store.messages_for(ticket_id), store.profiles, viewer.id)


def aggregate_many(store, viewer: Viewer) -> List[TicketView]:
    """Views for every ticket the viewer can see (full rescan, used after loads)."""
    profiles = store.profiles
    return [
        aggregate(ticket, store.messages_for(ticket.id), profiles, viewer.id)
        for ticket in store.tickets_visible_to(viewer)
    ]
