"""
Database module for ticket-sync.

Provides the Supabase client and the ticket repository.
"""

from ticketsync.database.supabase_client import SupabaseClientSingleton
from ticketsync.database.ticket_repository import TicketRepository


async def get_ticket_repository() -> TicketRepository:
    """Repository bound to the shared Supabase client."""
    client = await SupabaseClientSingleton.get_instance()
    return TicketRepository(client)


__all__ = [
    'SupabaseClientSingleton',
    'TicketRepository',
    'get_ticket_repository',
]
