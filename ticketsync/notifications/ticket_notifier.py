"""
Ticket Notification Service - one-shot alerts for the current viewer.

Decides, for each reconciled change, whether the person looking at the
view should see an alert:

- New message: someone else posted on a ticket the viewer can see
- Status change: a ticket the viewer can see moved to another status

Never alerts on the viewer's own writes, even when the feed echoes them
back, and alerts at most once per change however often it is delivered.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ticketsync.models.change_event import EventOrigin
from ticketsync.models.ticket import Ticket
from ticketsync.models.viewer import Viewer
from ticketsync.sync.entity_store import EntityStore
from ticketsync.sync.reconciler import ReconcileOutcome, ReconcileStatus

logger = logging.getLogger(__name__)


class AlertType(Enum):
    NEW_MESSAGE = "new_message"
    STATUS_CHANGE = "status_change"


@dataclass
class TicketAlert:
    """An alert to surface once to the viewer."""
    alert_type: AlertType
    ticket_id: str
    event_key: str
    title: str
    body: str = ""
    message_id: Optional[str] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None


class TicketNotifier:
    """Evaluate reconciled changes and emit alerts for one viewer."""

    # Remembered event keys for deduplication
    MAX_SEEN_EVENTS = 1000

    def __init__(
        self,
        store: EntityStore,
        viewer: Viewer,
        on_alert: Optional[Callable[[TicketAlert], None]] = None,
    ):
        """
        Args:
            store: The view's entity store (read only)
            viewer: Whose alerts these are
            on_alert: Called once per emitted alert
        """
        self.store = store
        self.viewer = viewer
        self.on_alert = on_alert
        self.alerts: List[TicketAlert] = []

        self._seen: "OrderedDict[str, None]" = OrderedDict()

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(self, outcome: ReconcileOutcome) -> Optional[TicketAlert]:
        """Return (and dispatch) the alert for a reconciled change, if any."""
        if outcome.status is not ReconcileStatus.APPLIED:
            return None

        event = outcome.event
        if event.origin is not EventOrigin.FEED:
            return None

        if event.key in self._seen:
            logger.debug(f"[NOTIFY] Already alerted for {event.key}")
            return None

        if event.is_message:
            alert = self._message_alert(outcome)
        elif event.is_ticket:
            alert = self._status_alert(outcome)
        else:
            alert = None

        if alert is None:
            return None

        self._remember(event.key)
        self.alerts.append(alert)
        logger.info(f"[NOTIFY] {alert.alert_type.value} for viewer {self.viewer.id} on ticket {alert.ticket_id}")

        if self.on_alert is not None:
            try:
                self.on_alert(alert)
            except Exception as e:
                logger.error(f"[NOTIFY] Alert listener failed: {e}")
        return alert

    def _message_alert(self, outcome: ReconcileOutcome) -> Optional[TicketAlert]:
        message = outcome.current
        if message is None or message.sender_id == self.viewer.id:
            return None
        if not self.store.can_see(self.viewer, message.ticket_id):
            return None

        ticket = self.store.get_ticket(message.ticket_id)
        sender = self.store.get_profile(message.sender_id)
        sender_name = sender.display_name if sender else "Support Agent"

        return TicketAlert(
            alert_type=AlertType.NEW_MESSAGE,
            ticket_id=message.ticket_id,
            event_key=outcome.event.key,
            title=f"New message on \"{ticket.subject}\"",
            body=f"{sender_name}: {message.preview()}",
            message_id=message.id,
        )

    def _status_alert(self, outcome: ReconcileOutcome) -> Optional[TicketAlert]:
        ticket: Ticket = outcome.current
        if ticket is None or not self.store.can_see(self.viewer, ticket.id):
            return None

        old_status = self._previous_status(outcome)
        if old_status is None or old_status == ticket.status:
            return None

        if self.viewer.writes.matches(ticket):
            logger.debug(f"[NOTIFY] Suppressed echo of own status change on {ticket.id}")
            return None

        return TicketAlert(
            alert_type=AlertType.STATUS_CHANGE,
            ticket_id=ticket.id,
            event_key=outcome.event.key,
            title=f"Ticket marked as {ticket.status}",
            body=f"\"{ticket.subject}\" moved from {old_status} to {ticket.status}",
            old_status=old_status,
            new_status=ticket.status,
        )

    @staticmethod
    def _previous_status(outcome: ReconcileOutcome) -> Optional[str]:
        if outcome.previous is not None:
            return outcome.previous.status
        old_row = outcome.event.old_row or {}
        return old_row.get("status")

    def _remember(self, key: str) -> None:
        self._seen[key] = None
        while len(self._seen) > self.MAX_SEEN_EVENTS:
            self._seen.popitem(last=False)
