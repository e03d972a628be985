"""
Notifications Module for ticket-sync.

Alerts surfaced to the current viewer for changes arriving on the feed.
"""

from ticketsync.notifications.ticket_notifier import (
    AlertType,
    TicketAlert,
    TicketNotifier,
)

__all__ = [
    'AlertType',
    'TicketAlert',
    'TicketNotifier',
]
