"""Builds redis clients and the redis backed rate limiter from configuration."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

import redis
from redis.sentinel import Sentinel

from .errors import InvalidRedisConnTypeError, RedisConnectionFailedError
from .rate_limiter import FailureConfig, RateLimiter
from .redis_client import RedisClientWrapper

log = logging.getLogger(__name__)

_DEFAULT_SENTINEL_PORT = 26379


class ConnectionType(str, enum.Enum):
    """How the service reaches redis."""

    INSTANCE = "instance"
    SENTINEL = "sentinel"


@dataclass
class RedisConfig:
    """Connection settings for redis."""

    url: str = ""
    sentinel_url: str = ""
    master_name: str = ""
    connection_type: str = ConnectionType.INSTANCE.value
    operation_timeout_in_sec: int = 1


@dataclass
class TwoFactorConfig:
    """Failure limits for normal and security mode."""

    max_failures: int = 3
    backoff_time_in_seconds: int = 60
    security_mode_max_failures: int = 100
    security_mode_backoff_time_in_seconds: int = 86400


def _connection_type(value: str | ConnectionType) -> ConnectionType:
    try:
        return ConnectionType(value)
    except ValueError:
        raise InvalidRedisConnTypeError(f"{value!r}") from None


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, _DEFAULT_SENTINEL_PORT
    return host, int(port)


def create_redis_client(config: RedisConfig) -> redis.Redis:
    """Create a redis client for a single instance or a sentinel setup."""
    conn_type = _connection_type(config.connection_type)
    if conn_type is ConnectionType.INSTANCE:
        client = redis.Redis.from_url(config.url)
        log.debug("created redis instance connection type, url=%s", config.url)
        return client

    sentinel = Sentinel([_split_address(config.sentinel_url)])
    client = sentinel.master_for(config.master_name)
    log.debug(
        "created redis sentinel connection type, url=%s master=%s",
        config.sentinel_url,
        config.master_name,
    )
    return client


def create_redis_rate_limiter(
    config: RedisConfig, two_factor_config: TwoFactorConfig
) -> RateLimiter:
    """Connect to redis and build a rate limiter on top of it."""
    client = create_redis_client(config)
    storer = RedisClientWrapper(client)
    if not storer.is_connected():
        raise RedisConnectionFailedError()

    return RateLimiter(
        operation_timeout_in_sec=config.operation_timeout_in_sec,
        freeze_failure_config=FailureConfig(
            max_failures=two_factor_config.max_failures,
            limit_period_in_sec=two_factor_config.backoff_time_in_seconds,
        ),
        security_mode_failure_config=FailureConfig(
            max_failures=two_factor_config.security_mode_max_failures,
            limit_period_in_sec=two_factor_config.security_mode_backoff_time_in_seconds,
        ),
        storer=storer,
    )