"""Redis-backed rate limiting and sharded MongoDB storage for multi-factor authentication services."""

__version__ = "0.1.0"
__all__ = ["errors", "rate_limiter", "redis_client", "redis_factory", "mongo_client"]