"""
Reconciler - merges change events into the entity store.

Rules:
- Applying the same event twice leaves the store as applying it once.
- Ticket rows: last writer by updated_at wins. An update (or late insert)
  older than the stored row is dropped as stale.
- Message rows: inserted once by id; messages are immutable afterwards.
- A message only becomes visible once its sender profile is known. Until
  then it is held back and the caller is told to resolve the sender.
- Rows the viewer may not read are never stored.
- Unknown tables and event kinds are ignored.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ticketsync.models.base_model import BaseModel
from ticketsync.models.change_event import ChangeEvent, EventKind
from ticketsync.models.message import Message
from ticketsync.models.profile import Profile
from ticketsync.models.ticket import Ticket
from ticketsync.models.viewer import Viewer
from ticketsync.sync.entity_store import EntityStore
from ticketsync.utils.constants import TICKETS_TABLE, MESSAGES_TABLE

logger = logging.getLogger(__name__)


class ReconcileStatus(Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    STALE = "stale"
    HELD = "held"
    REJECTED = "rejected"
    REMOVED = "removed"
    IGNORED = "ignored"


@dataclass
class ReconcileOutcome:
    """What applying one event did to the store."""
    status: ReconcileStatus
    event: ChangeEvent
    ticket_id: Optional[str] = None
    previous: Optional[Any] = None
    current: Optional[Any] = None
    sender_id: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.status in (ReconcileStatus.APPLIED, ReconcileStatus.REMOVED)


class Reconciler:
    def __init__(self, store: EntityStore, viewer: Viewer):
        self.store = store
        self.viewer = viewer
        # sender_id -> {message_id: (message, event)}
        self._held: Dict[str, Dict[str, Tuple[Message, ChangeEvent]]] = defaultdict(dict)

    # =========================================================================
    # Events
    # =========================================================================

    def apply(self, event: ChangeEvent) -> ReconcileOutcome:
        """Merge one change event into the store."""
        if event.kind not in (EventKind.INSERT.value, EventKind.UPDATE.value):
            logger.debug(f"[RECONCILER] Ignoring {event.kind!r} event on {event.table!r}")
            return ReconcileOutcome(ReconcileStatus.IGNORED, event)

        if event.is_ticket:
            return self._apply_ticket(event)
        if event.is_message:
            return self._apply_message(event)

        logger.debug(f"[RECONCILER] Ignoring event for unknown table {event.table!r}")
        return ReconcileOutcome(ReconcileStatus.IGNORED, event)

    def _apply_ticket(self, event: ChangeEvent) -> ReconcileOutcome:
        incoming = Ticket.from_dict(event.new_row)
        if incoming is None or not incoming.id:
            logger.warning(f"[RECONCILER] Ticket event without id dropped: {event.new_row}")
            return ReconcileOutcome(ReconcileStatus.IGNORED, event)

        stored = self.store.get_ticket(incoming.id)

        if stored is not None:
            # Partial payloads keep the stored values of absent columns
            for column, value in vars(stored).items():
                if column not in event.new_row:
                    setattr(incoming, column, value)

        if not self.viewer.can_see_ticket(incoming):
            if stored is not None:
                self.store.remove_ticket(incoming.id)
                return ReconcileOutcome(
                    ReconcileStatus.REMOVED, event, ticket_id=incoming.id, previous=stored
                )
            logger.warning(
                f"[RECONCILER] Ticket {incoming.id} is not visible to viewer {self.viewer.id}, dropped"
            )
            return ReconcileOutcome(ReconcileStatus.REJECTED, event, ticket_id=incoming.id)

        if stored is not None:
            incoming_at = BaseModel.timestamp_or_epoch(incoming.updated_at)
            stored_at = BaseModel.timestamp_or_epoch(stored.updated_at)
            if incoming_at < stored_at:
                logger.debug(
                    f"[RECONCILER] Stale {event.kind} for ticket {incoming.id} "
                    f"({incoming_at.isoformat()} < {stored_at.isoformat()}), dropped"
                )
                return ReconcileOutcome(
                    ReconcileStatus.STALE, event, ticket_id=incoming.id, previous=stored, current=stored
                )

            if incoming.assigned_to is None and stored.assigned_to is not None:
                # Assignment only moves through claim or reassignment
                logger.warning(
                    f"[RECONCILER] Ticket {incoming.id} arrived without assignee; keeping {stored.assigned_to}"
                )
                incoming.assigned_to = stored.assigned_to

            if incoming.same_row(stored):
                return ReconcileOutcome(
                    ReconcileStatus.DUPLICATE, event, ticket_id=incoming.id, previous=stored, current=stored
                )

        self.store.upsert_ticket(incoming)
        return ReconcileOutcome(
            ReconcileStatus.APPLIED, event, ticket_id=incoming.id, previous=stored, current=incoming
        )

    def _apply_message(self, event: ChangeEvent) -> ReconcileOutcome:
        if event.kind != EventKind.INSERT.value:
            logger.debug(f"[RECONCILER] Messages are immutable, ignoring {event.kind} for {event.row_id}")
            return ReconcileOutcome(ReconcileStatus.IGNORED, event)

        message = Message.from_dict(event.new_row)
        if message is None or not message.id or not message.ticket_id:
            logger.warning(f"[RECONCILER] Message event without id or ticket dropped: {event.new_row}")
            return ReconcileOutcome(ReconcileStatus.IGNORED, event)

        ticket = self.store.get_ticket(message.ticket_id)
        if ticket is not None and not self.viewer.can_see_ticket(ticket):
            return ReconcileOutcome(ReconcileStatus.REJECTED, event, ticket_id=message.ticket_id)

        existing = self.store.get_message(message.id)
        if existing is not None:
            return ReconcileOutcome(
                ReconcileStatus.DUPLICATE, event, ticket_id=message.ticket_id, previous=existing, current=existing
            )

        # Joined sender row (select "*, sender:sender_id(*)")
        sender = event.new_row.get("sender")
        if isinstance(sender, dict):
            profile = Profile.from_dict(sender)
            if profile is not None and profile.id:
                self.store.upsert_profile(profile)

        if not self.store.has_profile(message.sender_id):
            held = self._held[message.sender_id]
            if message.id not in held:
                held[message.id] = (message, event)
                logger.warning(
                    f"[RECONCILER] Holding message {message.id}: sender {message.sender_id} not resolved"
                )
            return ReconcileOutcome(
                ReconcileStatus.HELD, event, ticket_id=message.ticket_id, sender_id=message.sender_id
            )

        self.store.upsert_message(message)
        return ReconcileOutcome(
            ReconcileStatus.APPLIED, event, ticket_id=message.ticket_id, current=message
        )

    # =========================================================================
    # Profiles
    # =========================================================================

    def apply_profile(self, profile: Profile) -> List[ReconcileOutcome]:
        """
        Store a resolved profile and release messages held for that sender.

        Returns one APPLIED outcome per released message, in thread order.
        """
        self.store.upsert_profile(profile)

        held = self._held.pop(profile.id, {})
        outcomes = []
        for message, event in sorted(held.values(), key=lambda item: item[0].sort_key):
            if self.store.get_message(message.id) is not None:
                continue
            self.store.upsert_message(message)
            outcomes.append(
                ReconcileOutcome(ReconcileStatus.APPLIED, event, ticket_id=message.ticket_id, current=message)
            )

        if outcomes:
            logger.info(f"[RECONCILER] Released {len(outcomes)} held message(s) from sender {profile.id}")
        return outcomes

    @property
    def held_sender_ids(self) -> List[str]:
        return [sender_id for sender_id, held in self._held.items() if held]

    def held_count(self) -> int:
        return sum(len(held) for held in self._held.values())

    # =========================================================================
    # Full loads
    # =========================================================================

    def load_snapshot(
        self,
        tickets: Iterable[Dict[str, Any]],
        messages: Iterable[Dict[str, Any]],
        profiles: Iterable[Dict[str, Any]] = (),
    ) -> List[ReconcileOutcome]:
        """
        Merge the result of a full load.

        Every row is parsed before anything is stored, so a malformed row
        leaves the store untouched. Rows then go through the same rules as
        feed events, so a newer row already received from the feed is not
        overwritten by an older snapshot.
        """
        tickets = list(tickets)
        messages = list(messages)
        parsed_profiles = [Profile.from_dict(row) for row in profiles]
        for row in tickets:
            Ticket.from_dict(row)
        for row in messages:
            Message.from_dict(row)

        for profile in parsed_profiles:
            if profile is not None and profile.id:
                self.store.upsert_profile(profile)

        outcomes = []
        for row in tickets:
            outcomes.append(self.apply(ChangeEvent.snapshot(TICKETS_TABLE, row)))
        for row in messages:
            outcomes.append(self.apply(ChangeEvent.snapshot(MESSAGES_TABLE, row)))

        # Profiles that arrived with this load may release earlier holds
        for profile in parsed_profiles:
            if profile is not None and profile.id in self._held:
                outcomes.extend(self.apply_profile(profile))

        return outcomes
