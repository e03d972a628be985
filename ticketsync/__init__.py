"""
ticket-sync: real-time synchronization core for a Supabase-backed support desk.

Keeps each open view's copy of tickets and messages consistent with the
Supabase realtime change feed, derives per-ticket aggregates and enforces
ticket lifecycle rules.
"""

__version__ = "0.1.0"
