"""
Real-time synchronization core.

Entity store, reconciler, aggregator, change-feed client and the view
session (ticketsync.sync.view_session) that wires them together for one
open view.
"""

from ticketsync.sync.entity_store import EntityStore
from ticketsync.sync.reconciler import Reconciler, ReconcileOutcome, ReconcileStatus
from ticketsync.sync.aggregator import aggregate, aggregate_ticket, aggregate_many
from ticketsync.sync.realtime_transport import FeedBinding, SupabaseChangeFeedTransport
from ticketsync.sync.change_feed import ChangeFeedClient, feed_bindings

__all__ = [
    'EntityStore',
    'Reconciler',
    'ReconcileOutcome',
    'ReconcileStatus',
    'aggregate',
    'aggregate_ticket',
    'aggregate_many',
    'FeedBinding',
    'SupabaseChangeFeedTransport',
    'ChangeFeedClient',
    'feed_bindings',
]
