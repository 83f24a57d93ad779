"""Thin adapter that exposes a redis client as a rate limiter storer."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from redis.exceptions import RedisError

from .errors import KeyNotExistsError, NilRedisClientError
from .rate_limiter import NO_EXPIRY

_PONG_VALUES = ("PONG", b"PONG")
_TTL_KEY_MISSING = -2
_TTL_NO_EXPIRY = -1


class RedisClientWrapper:
    """Implements the storer operations on top of a redis-py client."""

    def __init__(self, client: Any) -> None:
        if client is None:
            raise NilRedisClientError()
        self._client = client

    def increment(self, key: str) -> int:
        """Increment the counter stored at ``key`` and return its new value."""
        return int(self._client.incr(key))

    def decrement(self, key: str) -> int:
        """Decrement the counter stored at ``key`` and return its new value."""
        return int(self._client.decr(key))

    def set_expire(self, key: str, ttl: timedelta) -> bool:
        """Set the TTL of ``key``; true if the key exists."""
        return bool(self._client.expire(key, ttl))

    def set_expire_if_not_exists(self, key: str, ttl: timedelta) -> bool:
        """Set the TTL of ``key`` only if it has none yet."""
        return bool(self._client.expire(key, ttl, nx=True))

    def set_persist(self, key: str) -> bool:
        """Remove the TTL of ``key``; true if a TTL was removed."""
        return bool(self._client.persist(key))

    def set_greater_expire_ttl(self, key: str, ttl: timedelta) -> bool:
        """Set the TTL of ``key`` only if it is greater than the current one."""
        return bool(self._client.expire(key, ttl, gt=True))

    def reset_counter_and_keep_ttl(self, key: str) -> None:
        """Set the counter at ``key`` to zero without touching its TTL."""
        self._client.set(key, 0, keepttl=True)

    def expire_time(self, key: str) -> timedelta:
        """Remaining TTL of ``key``; ``NO_EXPIRY`` if it never expires."""
        ttl = int(self._client.ttl(key))
        if ttl == _TTL_KEY_MISSING:
            raise KeyNotExistsError()
        if ttl == _TTL_NO_EXPIRY:
            return NO_EXPIRY
        return timedelta(seconds=ttl)

    def is_connected(self) -> bool:
        """True if the server answers a ping."""
        try:
            pong = self._client.ping()
        except (RedisError, OSError):
            return False
        return pong is True or pong in _PONG_VALUES