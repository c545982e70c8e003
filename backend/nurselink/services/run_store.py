"""
Run Status Store - last known state of each mission's matching run

The orchestrator records every state transition here so the status
endpoint can answer "where is matching for mission X" without querying the
worker. Entries expire after a TTL (default 24h).

Implementations (selected by Settings.run_status_backend):
    - RedisRunStatusStore: shared between API and workers, SETEX per write
    - InMemoryRunStatusStore: single process, explicit TTL eviction

Key Pattern:
    - matching:run:{mission_id}

Both implementations degrade gracefully: a store failure is logged and
never fails a matching run.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from nurselink.config import get_settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "matching:run:"


class RunStatusStore(ABC):
    @abstractmethod
    async def get(self, mission_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def set(self, mission_id: str, status: Dict[str, Any]) -> bool:
        pass

    async def close(self) -> None:
        pass


class InMemoryRunStatusStore(RunStatusStore):
    """
    Process-local store with TTL eviction.

    Expired entries are evicted on read and swept on every write, so the
    map never grows past the set of missions touched within one TTL.
    """

    def __init__(self, ttl_seconds: int = 86400, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    async def get(self, mission_id: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(mission_id)
        if entry is None:
            return None
        expires_at, status = entry
        if expires_at <= self._clock():
            del self._entries[mission_id]
            return None
        return dict(status)

    async def set(self, mission_id: str, status: Dict[str, Any]) -> bool:
        self.evict_expired()
        self._entries[mission_id] = (self._clock() + self.ttl_seconds, dict(status))
        return True

    def evict_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class RedisRunStatusStore(RunStatusStore):
    """
    Redis-backed run status store.

    Attributes:
        redis: Async Redis client, created lazily
        ttl_seconds: Expiry applied on every write
    """

    def __init__(self, redis_url: str, ttl_seconds: int = 86400):
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.redis: Optional[redis.Redis] = None

    async def _ensure_connected(self) -> Optional[redis.Redis]:
        if self.redis is None:
            try:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True
                )
            except Exception as e:
                logger.warning(f"Failed to connect to Redis: {e}")
                return None
        return self.redis

    async def get(self, mission_id: str) -> Optional[Dict[str, Any]]:
        try:
            client = await self._ensure_connected()
            if not client:
                return None

            cached = await client.get(f"{KEY_PREFIX}{mission_id}")
            return json.loads(cached) if cached else None

        except Exception as e:
            logger.warning(f"Redis get error (run status): {e}")
            return None

    async def set(self, mission_id: str, status: Dict[str, Any]) -> bool:
        try:
            client = await self._ensure_connected()
            if not client:
                return False

            await client.setex(
                f"{KEY_PREFIX}{mission_id}",
                self.ttl_seconds,
                json.dumps(status, default=str),
            )
            return True

        except Exception as e:
            logger.warning(f"Redis set error (run status): {e}")
            return False

    async def close(self) -> None:
        if self.redis:
            await self.redis.close()
            self.redis = None


@lru_cache
def _process_memory_store(ttl_seconds: int) -> InMemoryRunStatusStore:
    return InMemoryRunStatusStore(ttl_seconds=ttl_seconds)


def get_run_store(redis_url: Optional[str] = None, backend: Optional[str] = None) -> RunStatusStore:
    """
    Build the configured run status store.

    The memory backend is one store per process, shared by every caller in
    it; the redis backend gives each caller its own lazily connected client.
    """
    settings = get_settings()
    backend = (backend or settings.run_status_backend).lower()
    if backend == "memory":
        return _process_memory_store(settings.run_status_ttl_seconds)
    if backend != "redis":
        raise ValueError(f"Unknown run status backend: {backend}")

    return RedisRunStatusStore(
        redis_url=redis_url or settings.redis_url,
        ttl_seconds=settings.run_status_ttl_seconds,
    )
