"""Redis-backed fixed window rate limiter."""

from __future__ import annotations

from typing import Final

from redis.asyncio import Redis
from redis.exceptions import ResponseError


class RedisFixedWindowRateLimiter:
    """Distributed fixed window limiter implemented with an expiring Redis counter."""

    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local window_ms = tonumber(ARGV[1])

    local current = redis.call('INCR', key)
    if current == 1 then
        redis.call('PEXPIRE', key, window_ms)
    end
    return current
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "rate"
    ) -> None:
        """Initialise the Redis client, window configuration, and Lua script cache."""
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._script = client.register_script(self._LUA_SCRIPT)

    async def allow(self, key: str) -> bool:
        """Count a request for ``key`` and return ``True`` while it is within the shared limit."""
        redis_key = f"{self._key_prefix}:{key}"
        try:
            current = await self._script(keys=[redis_key], args=[self._window_ms])
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command `evalsha`" in message or "unknown command `eval`" in message:
                current = await self._incr_fallback(redis_key)
            else:
                raise
        return int(current) <= self._max_requests

    async def _incr_fallback(self, redis_key: str) -> int:
        """Fallback used when Lua is unavailable; the NX expiry keeps the window fixed."""
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.incr(redis_key)
            pipe.pexpire(redis_key, self._window_ms, nx=True)
            current, _ = await pipe.execute()
        return int(current)
