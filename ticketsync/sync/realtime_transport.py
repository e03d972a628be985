"""
Supabase realtime transport for the change feed.

One realtime channel per subscription; each FeedBinding becomes one
postgres_changes listener per event kind on that channel.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from supabase import AsyncClient

from ticketsync.models.change_event import ChangeEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedBinding:
    """One table the subscription listens to, with its row filter."""
    table: str
    events: Tuple[str, ...] = ("INSERT", "UPDATE")
    filter: Optional[str] = None


class SupabaseChangeFeedTransport:
    def __init__(self, client: AsyncClient, schema: str = "public"):
        self.supabase = client
        self.schema = schema

    async def subscribe(
        self,
        name: str,
        bindings: Iterable[FeedBinding],
        callback: Callable[[ChangeEvent], Any],
    ):
        """Open a channel delivering ChangeEvents to callback. Returns the channel handle."""

        def on_change(payload: Dict[str, Any]) -> None:
            callback(ChangeEvent.from_realtime_payload(payload))

        channel = self.supabase.channel(name)
        for binding in bindings:
            for event in binding.events:
                channel.on_postgres_changes(
                    event,
                    callback=on_change,
                    table=binding.table,
                    schema=self.schema,
                    filter=binding.filter,
                )

        await channel.subscribe()
        logger.info(f"[FEED] Subscribed channel {name}")
        return channel

    async def unsubscribe(self, handle) -> None:
        await self.supabase.remove_channel(handle)
        logger.info("[FEED] Channel removed")
