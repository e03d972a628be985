"""
View Session - everything one open view needs, wired together.

Each view (a dashboard or a ticket detail page) gets its own entity store,
reconciler, notifier, change-feed subscription and lifecycle service.
Nothing is shared between views, and the viewer identity is passed in
explicitly rather than read from global session state.

Usage:
    session = await ViewSession.connect(viewer)
    async with session:
        views = await session.load_dashboard()
        ...
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ticketsync.models.message import Message
from ticketsync.models.ticket import Ticket, TicketStatus
from ticketsync.models.ticket_view import TicketView
from ticketsync.models.viewer import Viewer
from ticketsync.notifications.ticket_notifier import TicketAlert, TicketNotifier
from ticketsync.service.ticket_lifecycle_service import TicketLifecycleService
from ticketsync.sync.change_feed import ChangeFeedClient
from ticketsync.sync.entity_store import EntityStore
from ticketsync.sync.reconciler import Reconciler
from ticketsync.utils.constants import Settings
from ticketsync.utils.exceptions import FetchError, TicketNotFoundError

logger = logging.getLogger(__name__)


class ViewSession:
    def __init__(
        self,
        repository,
        transport,
        viewer: Viewer,
        ticket_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        on_change: Optional[Callable] = None,
        on_alert: Optional[Callable[[TicketAlert], None]] = None,
    ):
        """
        Args:
            repository: TicketRepository for loads and writes
            transport: Change-feed transport (SupabaseChangeFeedTransport)
            viewer: Who is looking
            ticket_id: Scope the view to one ticket (detail page)
            settings: Runtime settings
            on_change: Called with (view, outcome) after every store change
            on_alert: Called once per alert for this viewer
        """
        self.repository = repository
        self.transport = transport
        self.ticket_id = ticket_id
        self.settings = settings or Settings()
        self.on_change = on_change
        self.on_alert = on_alert
        self._build(viewer)

    @classmethod
    async def connect(cls, viewer: Viewer, ticket_id: Optional[str] = None, **kwargs) -> "ViewSession":
        """Session bound to the shared Supabase client."""
        from ticketsync.database.supabase_client import SupabaseClientSingleton
        from ticketsync.database.ticket_repository import TicketRepository
        from ticketsync.sync.realtime_transport import SupabaseChangeFeedTransport

        settings = kwargs.pop("settings", None) or Settings()
        client = await SupabaseClientSingleton.get_instance()
        return cls(
            TicketRepository(client),
            SupabaseChangeFeedTransport(client, schema=settings.SCHEMA),
            viewer,
            ticket_id=ticket_id,
            settings=settings,
            **kwargs,
        )

    def _build(self, viewer: Viewer) -> None:
        self.viewer = viewer
        self.store = EntityStore()
        self.reconciler = Reconciler(self.store, viewer)
        self.notifier = TicketNotifier(self.store, viewer, on_alert=self.on_alert)
        self.feed = ChangeFeedClient(
            self.transport,
            self.store,
            self.reconciler,
            self.notifier,
            viewer,
            repository=self.repository,
            ticket_id=self.ticket_id,
            settings=self.settings,
            on_change=self.on_change,
        )
        self.lifecycle = TicketLifecycleService(self.repository, self.feed, viewer)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        await self.feed.start()

    async def close(self) -> None:
        await self.feed.stop()

    async def switch_viewer(self, viewer: Viewer) -> None:
        """
        Rebind the view to another identity. The old subscription is fully
        released before the new one opens, and the new identity starts from
        an empty store.
        """
        was_started = self.feed.is_active
        await self.feed.stop()
        logger.info(f"[SESSION] Switching view from {self.viewer.id} to {viewer.id}")
        self._build(viewer)
        if was_started:
            await self.feed.start()

    async def __aenter__(self) -> "ViewSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_closed(self) -> bool:
        return self.feed.is_closed

    # =========================================================================
    # Loads
    # =========================================================================

    async def load_dashboard(self) -> List[TicketView]:
        """
        Load the viewer's ticket list with profiles and messages.

        All reads happen before anything is applied. Any failure, including
        a malformed row, raises FetchError and leaves the store as it was.
        """
        try:
            tickets = await self.repository.list_tickets(self.viewer)
            ticket_ids = [row["id"] for row in tickets]
            messages = await self.repository.list_messages(ticket_ids)
            profiles = await self.repository.get_profiles(self._profile_ids(tickets, messages))
            self.feed.apply_snapshot(tickets, messages, profiles)
        except Exception as e:
            logger.error(f"[SESSION] Error loading tickets for {self.viewer.id}: {e}")
            raise FetchError("Failed to load tickets") from e

        await self.feed.resolve_pending()
        return self.ticket_views()

    async def open_ticket(self, ticket_id: str) -> TicketView:
        """
        Load one ticket with its thread. Staff opening an unassigned ticket
        claim it through the regular claim-once write.
        """
        try:
            row = await self.repository.get_ticket(ticket_id, self.viewer)
            messages = await self.repository.list_messages([ticket_id]) if row else []
            profiles = await self.repository.get_profiles(self._profile_ids([row], messages)) if row else []
            if row is not None:
                self.feed.apply_snapshot([row], messages, profiles)
        except Exception as e:
            logger.error(f"[SESSION] Error loading ticket {ticket_id}: {e}")
            raise FetchError("Failed to load ticket") from e

        if row is None:
            raise TicketNotFoundError(ticket_id)

        await self.feed.resolve_pending()

        ticket = self.store.get_ticket(ticket_id)
        if ticket is None or not self.viewer.can_see_ticket(ticket):
            raise TicketNotFoundError(ticket_id)

        if self.viewer.is_admin and self.settings.AUTO_CLAIM and not ticket.is_assigned:
            try:
                await self.lifecycle.claim(ticket_id)
            except Exception as e:
                logger.warning(f"[SESSION] Auto-claim of ticket {ticket_id} failed: {e}")

        return self.feed.refresh_view(ticket_id)

    def _profile_ids(self, tickets: List[Dict[str, Any]], messages: List[Dict[str, Any]]) -> List[str]:
        ids = [self.viewer.id]
        for row in tickets:
            ids.append(row.get("created_by"))
            ids.append(row.get("assigned_to"))
        for row in messages:
            ids.append(row.get("sender_id"))
        return [pid for pid in dict.fromkeys(ids) if pid]

    # =========================================================================
    # Reads
    # =========================================================================

    def ticket_view(self, ticket_id: str) -> Optional[TicketView]:
        view = self.feed.views.get(ticket_id)
        if view is None or not self.viewer.can_see_ticket(view.ticket):
            return None
        return view

    def ticket_views(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        descending: bool = True,
    ) -> List[TicketView]:
        """
        Ticket list as shown on a dashboard.

        Args:
            status: Only tickets with this status
            search: Case-insensitive substring of the subject
            descending: Newest first (default) or oldest first
        """
        wanted = TicketStatus.parse(status).value if status else None
        needle = (search or "").strip().lower()

        views = [
            view for view in self.feed.views.values()
            if self.viewer.can_see_ticket(view.ticket)
            and (wanted is None or view.ticket.status == wanted)
            and (not needle or needle in (view.ticket.subject or "").lower())
        ]
        views.sort(
            key=lambda view: (Ticket.timestamp_or_epoch(view.ticket.created_at), view.ticket.id),
            reverse=descending,
        )
        return views

    def status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in TicketStatus}
        for ticket in self.store.tickets_visible_to(self.viewer):
            if ticket.status in counts:
                counts[ticket.status] += 1
        return counts

    def messages(self, ticket_id: str) -> List[Message]:
        """Thread of one ticket in created_at order."""
        return self.store.visible_messages(self.viewer, ticket_id)

    @property
    def alerts(self) -> List[TicketAlert]:
        return list(self.notifier.alerts)
