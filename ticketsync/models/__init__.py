"""
Models package for ticket-sync.
"""

from ticketsync.models.base_model import BaseModel
from ticketsync.models.profile import Profile
from ticketsync.models.ticket import Ticket, TicketStatus
from ticketsync.models.message import Message
from ticketsync.models.ticket_view import TicketView
from ticketsync.models.viewer import OwnWriteLog, Viewer
from ticketsync.models.change_event import ChangeEvent, EventKind, EventTable, EventOrigin

__all__ = [
    # Base
    'BaseModel',
    # Rows
    'Profile',
    'Ticket',
    'TicketStatus',
    'Message',
    # Derived
    'TicketView',
    # Session context
    'Viewer',
    'OwnWriteLog',
    # Change feed
    'ChangeEvent',
    'EventKind',
    'EventTable',
    'EventOrigin',
]
