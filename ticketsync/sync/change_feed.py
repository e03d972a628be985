"""
Change-Feed Client - one realtime subscription per open view.

Every delivered event runs the same pipeline:
1. Reconciler merges it into the view's entity store
2. The aggregate of the touched ticket (and only that ticket) is rebuilt
3. The notifier decides whether the viewer gets an alert

Rows returned by our own writes enter through the same pipeline, so the
reconciler stays the only writer of the store. Once the view is closed,
late events and late write confirmations are dropped without error.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ticketsync.models.change_event import ChangeEvent
from ticketsync.models.profile import Profile
from ticketsync.models.ticket_view import TicketView
from ticketsync.models.viewer import Viewer
from ticketsync.sync.aggregator import aggregate_ticket, aggregate_many
from ticketsync.sync.entity_store import EntityStore
from ticketsync.sync.realtime_transport import FeedBinding
from ticketsync.sync.reconciler import Reconciler, ReconcileOutcome, ReconcileStatus
from ticketsync.utils.constants import Settings, TICKETS_TABLE, MESSAGES_TABLE

logger = logging.getLogger(__name__)


def feed_bindings(viewer: Viewer, ticket_id: Optional[str] = None) -> List[FeedBinding]:
    """
    Subscription filters for a viewer.

    Customers listen to their own tickets and to messages sent by others
    (their own messages are applied from the write confirmation). Staff
    listen to everything. A ticket detail view narrows both tables to that
    ticket.
    """
    if ticket_id:
        return [
            FeedBinding(TICKETS_TABLE, filter=f"id=eq.{ticket_id}"),
            FeedBinding(MESSAGES_TABLE, events=("INSERT",), filter=f"ticket_id=eq.{ticket_id}"),
        ]
    if viewer.is_admin:
        return [
            FeedBinding(TICKETS_TABLE),
            FeedBinding(MESSAGES_TABLE, events=("INSERT",)),
        ]
    return [
        FeedBinding(TICKETS_TABLE, filter=f"created_by=eq.{viewer.id}"),
        FeedBinding(MESSAGES_TABLE, events=("INSERT",), filter=f"sender_id=neq.{viewer.id}"),
    ]


class ChangeFeedClient:
    def __init__(
        self,
        transport,
        store: EntityStore,
        reconciler: Reconciler,
        notifier,
        viewer: Viewer,
        repository=None,
        ticket_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        on_change: Optional[Callable[[Optional[TicketView], ReconcileOutcome], Any]] = None,
    ):
        """
        Args:
            transport: Object with async subscribe(name, bindings, callback) / unsubscribe(handle)
            store: The view's entity store
            reconciler: Reconciler bound to the same store and viewer
            notifier: TicketNotifier evaluating alerts for the viewer
            viewer: Session context of the view
            repository: TicketRepository used to resolve unknown profiles
            ticket_id: Narrow the subscription to one ticket (detail view)
            settings: Retry settings for profile resolution
            on_change: Called with (view, outcome) after every store change
        """
        self.transport = transport
        self.store = store
        self.reconciler = reconciler
        self.notifier = notifier
        self.viewer = viewer
        self.repository = repository
        self.ticket_id = ticket_id
        self.settings = settings or Settings()
        self.on_change = on_change

        self.views: Dict[str, TicketView] = {}

        self._handle = None
        self._active = False
        self._closed = False
        self._tasks: Set[asyncio.Task] = set()
        # profile_id -> running lookup
        self._resolving: Dict[str, asyncio.Task] = {}

    # =========================================================================
    # Subscription lifecycle
    # =========================================================================

    @property
    def channel_name(self) -> str:
        if self.ticket_id:
            return f"{self.viewer.role}-ticket-{self.ticket_id}-{self.viewer.id}"
        return f"{self.viewer.role}-tickets-{self.viewer.id}"

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Open the view's one subscription."""
        if self._closed:
            raise RuntimeError("Change feed was closed; create a new view")
        if self._handle is not None:
            return

        self._handle = await self.transport.subscribe(
            self.channel_name, feed_bindings(self.viewer, self.ticket_id), self.handle_event
        )
        self._active = True

    async def stop(self) -> None:
        """Release the subscription. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._active = False

        for task in list(self._tasks):
            task.cancel()

        handle, self._handle = self._handle, None
        if handle is not None:
            await self.transport.unsubscribe(handle)
        logger.info(f"[FEED] Closed {self.channel_name}")

    # =========================================================================
    # Event pipeline
    # =========================================================================

    def handle_event(self, event: ChangeEvent) -> Optional[ReconcileOutcome]:
        """
        Process one event from the feed or from a write confirmation.

        Failures are logged and contained so the next event still runs.
        """
        if self._closed:
            logger.debug(f"[FEED] View closed, dropping {event.kind} on {event.table} ({event.row_id})")
            return None

        try:
            outcome = self.reconciler.apply(event)
            self._after_reconcile(outcome)
            return outcome
        except Exception as e:
            logger.error(f"[FEED] Failed to process {event.kind} on {event.table} ({event.row_id}): {e}")
            return None

    def apply_snapshot(
        self,
        tickets: Iterable[Dict[str, Any]],
        messages: Iterable[Dict[str, Any]],
        profiles: Iterable[Dict[str, Any]] = (),
    ) -> List[ReconcileOutcome]:
        """Merge a full load and rebuild every view."""
        if self._closed:
            logger.debug("[FEED] View closed, dropping snapshot")
            return []

        outcomes = self.reconciler.load_snapshot(tickets, messages, profiles)
        for outcome in outcomes:
            if outcome.status is ReconcileStatus.HELD:
                self._schedule_resolution(outcome.sender_id)

        self.views = {view.id: view for view in aggregate_many(self.store, self.viewer)}
        for view in self.views.values():
            self._resolve_ticket_profiles(view.ticket)
        return outcomes

    def _after_reconcile(self, outcome: ReconcileOutcome) -> None:
        if outcome.status is ReconcileStatus.HELD:
            self._schedule_resolution(outcome.sender_id)
            return
        if not outcome.changed:
            return

        view = self.refresh_view(outcome.ticket_id)
        if outcome.event.is_ticket and outcome.current is not None:
            self._resolve_ticket_profiles(outcome.current)

        self.notifier.evaluate(outcome)

        if self.on_change is not None:
            try:
                self.on_change(view, outcome)
            except Exception as e:
                logger.error(f"[FEED] on_change listener failed: {e}")

    def refresh_view(self, ticket_id: Optional[str]) -> Optional[TicketView]:
        """Rebuild the aggregate of one ticket."""
        if ticket_id is None:
            return None
        view = aggregate_ticket(self.store, ticket_id, self.viewer)
        if view is None:
            self.views.pop(ticket_id, None)
        else:
            self.views[ticket_id] = view
        return view

    # =========================================================================
    # Profile resolution
    # =========================================================================

    def _resolve_ticket_profiles(self, ticket) -> None:
        for profile_id in (ticket.created_by, ticket.assigned_to):
            if profile_id and not self.store.has_profile(profile_id):
                self._schedule_resolution(profile_id)

    def _schedule_resolution(self, profile_id: Optional[str]) -> Optional[asyncio.Task]:
        """Start a background lookup for a profile, or return the one already running."""
        if not profile_id or self.repository is None or self._closed:
            return None
        if profile_id in self._resolving:
            return self._resolving[profile_id]
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"[FEED] No running loop, profile {profile_id} left for resolve_pending()")
            return None

        task = loop.create_task(self._resolve_profile(profile_id))
        self._resolving[profile_id] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for background profile resolutions started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def resolve_pending(self) -> None:
        """Resolve every sender whose messages are still held back."""
        tasks = [self._schedule_resolution(sender_id) for sender_id in self.reconciler.held_sender_ids]
        tasks = [task for task in tasks if task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _resolve_profile(self, profile_id: str) -> bool:
        """Fetch one profile with retries, then release anything waiting on it."""
        retries = max(1, self.settings.SENDER_RESOLVE_RETRIES)
        try:
            for attempt in range(1, retries + 1):
                row = None
                try:
                    row = await self.repository.get_profile(profile_id)
                    if row is None:
                        logger.warning(f"[FEED] Profile {profile_id} not found (attempt {attempt}/{retries})")
                except Exception as e:
                    logger.warning(f"[FEED] Profile lookup for {profile_id} failed (attempt {attempt}/{retries}): {e}")

                if self._closed:
                    return False

                if row:
                    profile = Profile.from_dict(row)
                    for outcome in self.reconciler.apply_profile(profile):
                        self._after_reconcile(outcome)
                    for ticket_id, view in list(self.views.items()):
                        if profile.id in (view.ticket.created_by, view.ticket.assigned_to):
                            self.refresh_view(ticket_id)
                    return True

                if attempt < retries:
                    wait_time = self.settings.SENDER_RESOLVE_BACKOFF * attempt
                    await asyncio.sleep(wait_time)

            held = self.reconciler.held_count()
            logger.error(
                f"[FEED] Could not resolve profile {profile_id} after {retries} attempts "
                f"({held} message(s) still held)"
            )
            return False
        finally:
            self._resolving.pop(profile_id, None)
