"""
Storage/query access for profiles, tickets and messages.

Every call runs under the signed-in viewer's row-level security policies,
so customers only ever get their own tickets back. Errors from PostgREST
propagate to the caller, which decides whether they are fetch or write
failures.

Ticket writes never send updated_at. The database stamps it with a BEFORE
UPDATE trigger (updated_at = now()).
"""

import logging
from typing import List, Dict, Any, Optional, Iterable

from supabase import AsyncClient

from ticketsync.models.viewer import Viewer
from ticketsync.utils.constants import PROFILES_TABLE, TICKETS_TABLE, MESSAGES_TABLE

logger = logging.getLogger(__name__)


class TicketRepository:
    def __init__(self, client: AsyncClient):
        self.supabase = client

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_tickets(self, viewer: Viewer, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """Tickets the viewer may see, oldest first."""
        query = self.supabase.table(TICKETS_TABLE).select("*")
        if not viewer.is_admin:
            query = query.eq("created_by", viewer.id)
        if status:
            query = query.eq("status", status)

        result = await query.order("created_at", desc=False).execute()
        return result.data or []

    async def get_ticket(self, ticket_id: str, viewer: Optional[Viewer] = None) -> Optional[Dict[str, Any]]:
        query = self.supabase.table(TICKETS_TABLE).select("*").eq("id", ticket_id)
        if viewer is not None and not viewer.is_admin:
            query = query.eq("created_by", viewer.id)

        result = await query.limit(1).execute()
        if result.data and len(result.data) > 0:
            return result.data[0]
        return None

    async def list_messages(self, ticket_ids: Iterable[str]) -> List[Dict[str, Any]]:
        """Messages for the given tickets, ordered by created_at."""
        ids = list(dict.fromkeys(ticket_ids))
        if not ids:
            return []

        result = await (
            self.supabase.table(MESSAGES_TABLE)
            .select("*")
            .in_("ticket_id", ids)
            .order("created_at", desc=False)
            .execute()
        )
        return result.data or []

    async def get_profiles(self, profile_ids: Iterable[str]) -> List[Dict[str, Any]]:
        ids = [pid for pid in dict.fromkeys(profile_ids) if pid]
        if not ids:
            return []

        result = await self.supabase.table(PROFILES_TABLE).select("*").in_("id", ids).execute()
        return result.data or []

    async def get_profile(self, profile_id: str) -> Optional[Dict[str, Any]]:
        result = await (
            self.supabase.table(PROFILES_TABLE)
            .select("*")
            .eq("id", profile_id)
            .limit(1)
            .execute()
        )
        if result.data and len(result.data) > 0:
            return result.data[0]
        return None

    # =========================================================================
    # Writes
    # =========================================================================

    async def insert_ticket(self, subject: str, created_by: str) -> Dict[str, Any]:
        """Insert a ticket and return the stored row."""
        data = {
            "subject": subject,
            "created_by": created_by,
        }
        result = await self.supabase.table(TICKETS_TABLE).insert(data).execute()
        if not result.data:
            raise RuntimeError("Ticket insert returned no row")
        return result.data[0]

    async def insert_message(self, ticket_id: str, sender_id: str, content: str) -> Dict[str, Any]:
        """Insert a message and return the stored row."""
        data = {
            "ticket_id": ticket_id,
            "sender_id": sender_id,
            "content": content,
        }
        result = await self.supabase.table(MESSAGES_TABLE).insert(data).execute()
        if not result.data:
            raise RuntimeError("Message insert returned no row")
        return result.data[0]

    async def update_ticket(self, ticket_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Unconditional update by id. Returns the stored row, None if no row matched."""
        data = {key: value for key, value in changes.items() if key != "updated_at"}

        result = await self.supabase.table(TICKETS_TABLE).update(data).eq("id", ticket_id).execute()
        if result.data and len(result.data) > 0:
            return result.data[0]
        return None

    async def claim_ticket(self, ticket_id: str, staff_id: str) -> List[Dict[str, Any]]:
        """
        Conditional update: set assigned_to only while it is still NULL.

        The database decides the race. Returns the updated rows; an empty
        list means someone else already holds the ticket.
        """
        data = {"assigned_to": staff_id}
        result = await (
            self.supabase.table(TICKETS_TABLE)
            .update(data)
            .eq("id", ticket_id)
            .is_("assigned_to", "null")
            .execute()
        )
        rows = result.data or []
        logger.debug(f"[REPOSITORY] Claim of ticket {ticket_id} by {staff_id} affected {len(rows)} row(s)")
        return rows
