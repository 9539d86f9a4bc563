# backend/utils/cache.py
"""Redis backed cache for derived read models (stock alerts).

Entries live under a generation number kept in Redis. ``clear()`` bumps the
generation, so every worker sharing the Redis instance stops reading the old
entries at once. Without ``REDIS_URL`` nothing is cached.
"""
import json
import logging
from typing import Any, Callable, Optional

import redis

from config import settings

logger = logging.getLogger(__name__)


class AlertCache:
    def __init__(self, client: Optional[redis.Redis], ttl_seconds: int, key_prefix: str = "stock:"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    @classmethod
    def from_settings(cls) -> "AlertCache":
        client = None
        if settings.REDIS_URL:
            client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
        return cls(client, settings.ALERT_CACHE_TTL_SECONDS, settings.CACHE_KEY_PREFIX)

    @property
    def enabled(self) -> bool:
        return self.client is not None and self.ttl_seconds > 0

    def _generation_key(self) -> str:
        return f"{self.key_prefix}alerts:generation"

    def _build_key(self, generation: int, key: str) -> str:
        return f"{self.key_prefix}alerts:{generation}:{key}"

    def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Any],
        *,
        encode: Callable[[Any], Any] = lambda value: value,
        decode: Callable[[Any], Any] = lambda data: data,
    ) -> Any:
        """Return the cached value for ``key`` or compute and store it.

        ``encode`` turns the computed value into something JSON can hold and
        ``decode`` reverses it on a hit. Redis errors fall through to ``compute``.
        """
        if not self.enabled:
            return compute()
        try:
            generation = int(self.client.get(self._generation_key()) or 0)
            cached = self.client.get(self._build_key(generation, key))
        except redis.RedisError as exc:
            logger.warning("Alert cache read failed: %s", exc)
            return compute()
        if cached is not None:
            return decode(json.loads(cached))

        value = compute()
        # Stored under the generation read before computing; a clear() in
        # between leaves this entry unreachable
        try:
            self.client.setex(
                self._build_key(generation, key), self.ttl_seconds, json.dumps(encode(value), default=str)
            )
        except redis.RedisError as exc:
            logger.warning("Alert cache write failed: %s", exc)
        return value

    def clear(self) -> None:
        if self.client is None:
            return
        try:
            self.client.incr(self._generation_key())
        except redis.RedisError as exc:
            logger.error("Alert cache invalidation failed: %s", exc)


# Cleared on every committed stock movement and threshold change
alert_cache = AlertCache.from_settings()
