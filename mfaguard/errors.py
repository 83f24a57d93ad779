"""Exceptions raised by the rate limiter and the storage clients."""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for every error raised by this package."""

    message = "service error"

    def __init__(self, detail: str | None = None) -> None:
        text = self.message if not detail else f"{self.message} {detail}"
        super().__init__(text)


class InvalidValueError(ServiceError, ValueError):
    """A configuration or argument value is out of its allowed range."""

    message = "invalid value"


class NilMetricsHandlerError(ServiceError):
    """No metrics handler was provided."""

    message = "nil metrics handler"


class KeyNotFoundError(ServiceError, LookupError):
    """The requested key is not present in storage."""

    message = "key not found"


class NilRedisClientError(ServiceError):
    """No redis client was provided."""

    message = "nil redis client"


class InvalidKeyPrefixError(ServiceError):
    """An invalid key prefix was provided."""

    message = "invalid key prefix"


class NoExpirationTimeForKeyError(ServiceError):
    """The key has no expiration time."""

    message = "key has no expiration time"


class KeyNotExistsError(ServiceError, LookupError):
    """The key does not exist."""

    message = "key does not exist"


class NilRedisClientWrapperError(ServiceError):
    """No redis storer was provided."""

    message = "nil redis client wrapper"


class RedisConnectionFailedError(ServiceError, ConnectionError):
    """The connection to redis could not be established."""

    message = "error connecting to redis"


class InvalidRedisConnTypeError(ServiceError, ValueError):
    """The configured redis connection type is not supported."""

    message = "invalid redis connection type"


class NilMongoDBClientError(ServiceError):
    """No mongodb client was provided."""

    message = "nil mongodb client"


class EmptyMongoDBNameError(ServiceError, ValueError):
    """An empty database name was provided."""

    message = "empty db name"


class CollectionNotFoundError(ServiceError, LookupError):
    """The requested mongodb collection is not available."""

    message = "mongodb collection not found"


class EmptyMongoURIError(ServiceError, ValueError):
    """An empty mongodb URI was provided."""

    message = "empty mongo uri"