"""
Redis caching for schedule search results.

CACHING STRATEGY
================

What we cache:
  - Schedule search responses (origin/destination/date), JSON-serialized
  - Key pattern: "schedules:search:origin={o}&destination={d}&date={date}"

Invalidation:
  - Any seat reservation or release changes available_seats, and any admin
    edit can change what a search returns, so all search keys are dropped
  - TTL-based expiry as a safety net

The cache is advisory. Booking never reads seat counts from it, and every
Redis failure degrades to a database read instead of an error.
"""

import json
import time
from typing import Optional

import redis.asyncio as redis

from bus_booking.core.logging import get_logger

logger = get_logger(__name__)

SEARCH_KEY_PREFIX = "schedules:search:"


class ScheduleCache:
    """Per-application Redis handle; disabled when constructed without a URL."""

    def __init__(self, url: Optional[str] = None, ttl: int = 300, reconnect_backoff: float = 30):
        self.url = url
        self.ttl = ttl
        self.reconnect_backoff = reconnect_backoff
        self._client: Optional[redis.Redis] = None
        self._next_attempt = 0.0

    @property
    def enabled(self) -> bool:
        return self.url is not None

    async def client(self) -> Optional[redis.Redis]:
        if not self.enabled:
            return None

        if self._client is None:
            # after a failed connect, requests skip Redis until the back-off expires
            if time.monotonic() < self._next_attempt:
                return None
            try:
                client = redis.from_url(
                    self.url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                )
                await client.ping()
                self._client = client
                logger.info("redis_connected", url=self.url)
            except Exception as e:
                self._next_attempt = time.monotonic() + self.reconnect_backoff
                logger.error("redis_connection_failed", error=str(e), retry_in=self.reconnect_backoff)
                return None

        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def search_key(origin: str, destination: str, date: str) -> str:
        return f"{SEARCH_KEY_PREFIX}origin={origin.lower()}&destination={destination.lower()}&date={date}"

    async def get_search(self, origin: str, destination: str, date: str) -> Optional[dict]:
        client = await self.client()
        if not client:
            return None

        key = self.search_key(origin, destination, date)
        try:
            data = await client.get(key)
            if data:
                logger.debug("cache_hit", key=key)
                return json.loads(data)
            logger.debug("cache_miss", key=key)
        except Exception as e:
            logger.error("cache_get_error", key=key, error=str(e))

        return None

    async def set_search(self, origin: str, destination: str, date: str, data: dict) -> None:
        client = await self.client()
        if not client:
            return

        key = self.search_key(origin, destination, date)
        try:
            await client.setex(key, self.ttl, json.dumps(data, default=str))
            logger.debug("cache_set", key=key, ttl=self.ttl)
        except Exception as e:
            logger.error("cache_set_error", key=key, error=str(e))

    async def invalidate_schedules(self) -> None:
        client = await self.client()
        if not client:
            return

        try:
            deleted = 0
            async for key in client.scan_iter(match=f"{SEARCH_KEY_PREFIX}*", count=100):
                await client.delete(key)
                deleted += 1
            logger.info("cache_invalidated", keys_deleted=deleted)
        except Exception as e:
            logger.error("cache_invalidation_error", error=str(e))

    async def stats(self) -> dict:
        client = await self.client()
        if not client:
            return {"status": "unavailable" if self.enabled else "disabled"}

        try:
            info = await client.info("stats")
            hits = info.get("keyspace_hits", 0)
            misses = info.get("keyspace_misses", 0)
            return {
                "status": "connected",
                "hits": hits,
                "misses": misses,
                "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
            }
        except Exception as e:
            return {"status": "error", "error": str(e)}
