"""Failure-counting rate limiter backed by a key/TTL store."""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

from .errors import InvalidValueError, NilRedisClientWrapperError

log = logging.getLogger(__name__)

NO_EXPIRY = timedelta(seconds=-1)
"""TTL reported by a storer for a key that exists but never expires."""

_MIN_LIMIT_PERIOD_IN_SEC = 1
_MIN_MAX_FAILURES = 1
_MIN_OPERATION_TIMEOUT_IN_SEC = 1


class Mode(enum.IntEnum):
    """Which failure configuration a check applies."""

    NORMAL = 0
    SECURITY = 1


@dataclass(frozen=True)
class RateLimiterResult:
    """Outcome of a rate limit check."""

    allowed: bool
    remaining: int
    reset_after: timedelta


@dataclass(frozen=True)
class FailureConfig:
    """Maximum number of failures allowed within a period."""

    max_failures: int
    limit_period_in_sec: int


class RedisStorer(Protocol):
    """Operations the rate limiter needs from its backing store."""

    def increment(self, key: str) -> int: ...

    def decrement(self, key: str) -> int: ...

    def set_expire(self, key: str, ttl: timedelta) -> bool: ...

    def set_expire_if_not_exists(self, key: str, ttl: timedelta) -> bool: ...

    def set_persist(self, key: str) -> bool: ...

    def set_greater_expire_ttl(self, key: str, ttl: timedelta) -> bool: ...

    def reset_counter_and_keep_ttl(self, key: str) -> None: ...

    def expire_time(self, key: str) -> timedelta: ...

    def is_connected(self) -> bool: ...


@dataclass(frozen=True)
class _Limits:
    max_failures: int
    limit_period: timedelta


def _check_minimum(name: str, value: int, minimum: int) -> None:
    if value < minimum:
        raise InvalidValueError(
            f"for {name}, received {value}, min expected {minimum}"
        )


class RateLimiter:
    """Counts failed attempts per key and blocks once a limit is reached."""

    def __init__(
        self,
        operation_timeout_in_sec: int,
        freeze_failure_config: FailureConfig,
        security_mode_failure_config: FailureConfig,
        storer: RedisStorer,
    ) -> None:
        _check_minimum(
            "OperationTimeoutInSec", operation_timeout_in_sec, _MIN_OPERATION_TIMEOUT_IN_SEC
        )
        _check_minimum(
            "LimitPeriodInSec",
            freeze_failure_config.limit_period_in_sec,
            _MIN_LIMIT_PERIOD_IN_SEC,
        )
        _check_minimum(
            "FreezeMaxFailures", freeze_failure_config.max_failures, _MIN_MAX_FAILURES
        )
        _check_minimum(
            "SecurityModeMaxFailures",
            security_mode_failure_config.max_failures,
            _MIN_MAX_FAILURES,
        )
        _check_minimum(
            "SecurityModeLimitPeriod",
            security_mode_failure_config.limit_period_in_sec,
            _MIN_LIMIT_PERIOD_IN_SEC,
        )
        if storer is None:
            raise NilRedisClientWrapperError()

        self.operation_timeout = timedelta(seconds=operation_timeout_in_sec)
        self._freeze = _Limits(
            freeze_failure_config.max_failures,
            timedelta(seconds=freeze_failure_config.limit_period_in_sec),
        )
        self._security = _Limits(
            security_mode_failure_config.max_failures,
            timedelta(seconds=security_mode_failure_config.limit_period_in_sec),
        )
        self._storer = storer
        self._lock = threading.Lock()

    def _limits(self, mode: Mode) -> _Limits:
        return self._security if mode == Mode.SECURITY else self._freeze

    def check_allowed_and_increase_trials(self, key: str, mode: Mode) -> RateLimiterResult:
        """Record one more trial for ``key`` and report whether it is allowed."""
        with self._lock:
            try:
                current_ttl = self._storer.expire_time(key)
            except Exception:
                current_ttl = None
            if current_ttl == NO_EXPIRY:
                return RateLimiterResult(allowed=False, remaining=0, reset_after=NO_EXPIRY)

            total_retries = self._storer.increment(key)
            limits = self._limits(mode)
            if total_retries == 1:
                self._storer.set_expire(key, limits.limit_period)
                return RateLimiterResult(
                    allowed=True,
                    remaining=limits.max_failures - 1,
                    reset_after=limits.limit_period,
                )

            allowed = total_retries <= limits.max_failures
            remaining = limits.max_failures - total_retries if allowed else 0
            reset_after = self._storer.expire_time(key)
            return RateLimiterResult(
                allowed=allowed, remaining=remaining, reset_after=reset_after
            )

    def set_security_mode_no_expire(self, key: str) -> None:
        """Make the key persistent so that security mode never expires."""
        with self._lock:
            if not self._storer.set_persist(key):
                log.debug("security mode was not set")

    def unset_security_mode_no_expire(self, key: str) -> None:
        """Give a persistent key the security-mode expiry again."""
        with self._lock:
            self._storer.set_expire_if_not_exists(key, self._security.limit_period)

    def reset(self, key: str) -> None:
        """Reset the failure counter for ``key`` while keeping its TTL."""
        with self._lock:
            try:
                self._storer.reset_counter_and_keep_ttl(key)
            except Exception as exc:
                log.error("Delete key=%s err=%s", key, exc)
                raise

    def decrement_security_failed_trials(self, key: str) -> None:
        """Take one trial off the counter for ``key``."""
        with self._lock:
            self._storer.decrement(key)

    def period(self, mode: Mode) -> timedelta:
        """Limit period for the given mode."""
        return self._limits(mode).limit_period

    def rate(self, mode: Mode) -> int:
        """Maximum number of failures for the given mode."""
        return self._limits(mode).max_failures

    def extend_security_mode(self, key: str) -> None:
        """Extend the key's TTL to the security period if that is longer."""
        with self._lock:
            self._storer.set_greater_expire_ttl(key, self._security.limit_period)