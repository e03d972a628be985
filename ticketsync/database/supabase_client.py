import asyncio
from typing import Optional

from supabase import acreate_client, AsyncClient

from ticketsync.utils.constants import Settings


class SupabaseClientSingleton:
    _instance: Optional[AsyncClient] = None
    # Created on first use, per event loop
    _lock: Optional[asyncio.Lock] = None
    _lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    def _get_lock(cls) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if cls._lock is None or cls._lock_loop is not loop:
            cls._lock = asyncio.Lock()
            cls._lock_loop = loop
        return cls._lock

    @classmethod
    async def get_instance(cls) -> AsyncClient:
        if cls._instance is None:
            async with cls._get_lock():
                if cls._instance is None:
                    settings = Settings()
                    settings.validate()
                    cls._instance = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)

        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None
        cls._lock = None
        cls._lock_loop = None
