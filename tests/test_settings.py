# -*- coding: utf-8 -*-
"""
Settings, Errors and Client Tests.

Run with: pytest tests/test_settings.py -v
"""

import asyncio
import logging
import pytest
from unittest.mock import AsyncMock, patch

from ticketsync.database.supabase_client import SupabaseClientSingleton
from ticketsync.utils.constants import Settings
from ticketsync.utils.exceptions import (
    FetchError,
    PartialCreateError,
    TicketClosedError,
    TicketSyncError,
    WriteError,
)
from ticketsync.utils.logging_config import configure_logging


# =============================================================================
# SETTINGS
# =============================================================================

class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("TICKETSYNC_SENDER_RESOLVE_RETRIES", "TICKETSYNC_SENDER_RESOLVE_BACKOFF",
                     "TICKETSYNC_AUTO_CLAIM", "TICKETSYNC_SCHEMA", "TICKETSYNC_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings()

        assert settings.SENDER_RESOLVE_RETRIES == 3
        assert settings.SENDER_RESOLVE_BACKOFF == 2.0
        assert settings.AUTO_CLAIM is True
        assert settings.SCHEMA == "public"
        assert settings.LOG_LEVEL == "INFO"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("TICKETSYNC_SENDER_RESOLVE_RETRIES", "5")
        monkeypatch.setenv("TICKETSYNC_AUTO_CLAIM", "off")
        monkeypatch.setenv("TICKETSYNC_LOG_LEVEL", "debug")

        settings = Settings()

        assert settings.SENDER_RESOLVE_RETRIES == 5
        assert settings.AUTO_CLAIM is False
        assert settings.get("LOG_LEVEL") == "DEBUG"
        assert settings.get("MISSING", "fallback") == "fallback"

    def test_anon_key_fallback(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_KEY", raising=False)
        monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")

        assert Settings().SUPABASE_KEY == "anon-key"

    def test_validate_reports_missing_variables(self, monkeypatch):
        for name in ("SUPABASE_URL", "SUPABASE_KEY", "SUPABASE_ANON_KEY"):
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(EnvironmentError, match="SUPABASE_URL, SUPABASE_KEY"):
            Settings().validate()


# =============================================================================
# ERRORS
# =============================================================================

class TestErrors:

    def test_categories_and_retryability(self):
        assert FetchError().category == "fetch"
        assert FetchError().retryable
        assert WriteError("boom").retryable
        assert not TicketClosedError("t-1").retryable
        assert isinstance(TicketClosedError("t-1"), TicketSyncError)

    def test_partial_create_carries_ticket_id(self):
        cause = RuntimeError("insert failed")
        error = PartialCreateError("t-1", cause)

        assert error.ticket_id == "t-1"
        assert error.cause is cause
        assert error.category == "partial"
        assert "t-1" in str(error)


# =============================================================================
# CLIENT AND LOGGING
# =============================================================================

class TestSupabaseClient:

    @pytest.fixture(autouse=True)
    def reset_client(self):
        SupabaseClientSingleton.reset_instance()
        yield
        SupabaseClientSingleton.reset_instance()

    @pytest.mark.asyncio
    async def test_client_is_created_once(self, monkeypatch, mock_supabase):
        monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "anon-key")
        create = AsyncMock(return_value=mock_supabase)

        with patch("ticketsync.database.supabase_client.acreate_client", create):
            first = await SupabaseClientSingleton.get_instance()
            second = await SupabaseClientSingleton.get_instance()

        assert first is second is mock_supabase
        create.assert_awaited_once_with("https://example.supabase.co", "anon-key")

    def test_concurrent_creation_on_separate_event_loops(self, monkeypatch, mock_supabase):
        monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "anon-key")

        async def slow_create(url, key):
            await asyncio.sleep(0)
            return mock_supabase

        async def contended():
            return await asyncio.gather(
                SupabaseClientSingleton.get_instance(),
                SupabaseClientSingleton.get_instance(),
            )

        create = AsyncMock(side_effect=slow_create)
        with patch("ticketsync.database.supabase_client.acreate_client", create):
            first = asyncio.run(contended())
            # New client on a new loop, lock left over from the first one
            SupabaseClientSingleton._instance = None
            second = asyncio.run(contended())

        assert list(first) == list(second) == [mock_supabase, mock_supabase]
        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_configuration_raises(self, monkeypatch):
        for name in ("SUPABASE_URL", "SUPABASE_KEY", "SUPABASE_ANON_KEY"):
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(EnvironmentError):
            await SupabaseClientSingleton.get_instance()


class TestLogging:

    def test_realtime_logger_is_quieted(self):
        configure_logging("debug")

        assert logging.getLogger("realtime").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
