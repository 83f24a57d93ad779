# mfaguard

Building blocks for a multi-factor authentication service:

- **Rate limiting of one-time-password checks**, kept in Redis. Each key
  counts failed attempts within a time window. There are two modes: a
  short "freeze" window for normal use, and a long "security mode" window.
  A security-mode key can be made persistent, made to expire again, or
  have its expiry extended.
- **A sharded key-value store on MongoDB.** Data is spread over a fixed
  number of collections named `users_0`, `users_1`, and so on. Each
  operation is timed and the timing is passed to a metrics handler.

## Installation

```
pip install mfaguard
```

## Rate limiting

```python
from mfaguard.redis_factory import (
    ConnectionType,
    RedisConfig,
    TwoFactorConfig,
    create_redis_rate_limiter,
)
from mfaguard.rate_limiter import Mode

limiter = create_redis_rate_limiter(
    RedisConfig(
        url="redis://localhost:6379/0",
        connection_type=ConnectionType.INSTANCE,
        operation_timeout_in_sec=10,
    ),
    TwoFactorConfig(
        max_failures=3,
        backoff_time_in_seconds=60,
        security_mode_max_failures=100,
        security_mode_backoff_time_in_seconds=86400,
    ),
)

result = limiter.check_allowed_and_increase_trials("user:addr0", Mode.NORMAL)
if not result.allowed:
    print("locked, try again in", result.reset_after)
else:
    print(result.remaining, "attempts left")

limiter.reset("user:addr0")
```

### Connecting to Redis

`mfaguard.redis_factory` builds clients from configuration.

- `RedisConfig.connection_type` is either `ConnectionType.INSTANCE` or
  `ConnectionType.SENTINEL`. Their string values `"instance"` and
  `"sentinel"` are accepted too.
- With `INSTANCE`, the client is built from `url`.
- With `SENTINEL`, the client goes through the sentinel at `sentinel_url`,
  given as `host:port`. If no port is given, port 26379 is used. The client
  talks to the master named by `master_name`.
- `create_redis_client(config)` returns the `redis.Redis` client. Any other
  connection type raises `InvalidRedisConnTypeError`.
- `create_redis_rate_limiter(config, two_factor_config)` builds the client
  and pings the server. If the ping fails it raises
  `RedisConnectionFailedError`. Otherwise it returns a `RateLimiter`.

### The rate limiter

You can also build a `mfaguard.rate_limiter.RateLimiter` yourself. It takes:

- an operation timeout in seconds,
- a `FailureConfig(max_failures, limit_period_in_sec)` for each mode,
- a storer.

The storer is any object that meets the `RedisStorer` protocol, for
example `mfaguard.redis_client.RedisClientWrapper` around a `redis.Redis`
client. The timeout, every failure count and every period must be at
least 1, or `InvalidValueError` is raised. A missing storer raises
`NilRedisClientWrapperError`.

`RateLimiter` methods:

- `check_allowed_and_increase_trials(key, mode)` counts one more trial and
  returns a `RateLimiterResult` with `allowed`, `remaining` and
  `reset_after` (a `timedelta`).
  - On the first trial the key gets the mode's period as its expiry.
  - Once the count passes the mode's maximum, `allowed` is false and
    `remaining` is 0.
  - A key that has been made persistent is not counted. The result is
    not allowed, and `reset_after` is `NO_EXPIRY` (minus one second).
- `reset(key)` sets the counter back to zero and keeps its expiry.
- `set_security_mode_no_expire(key)` makes a key persistent.
- `unset_security_mode_no_expire(key)` gives a key with no expiry the
  security-mode period again.
- `decrement_security_failed_trials(key)` takes one failed attempt off the
  count.
- `extend_security_mode(key)` raises the expiry to the security-mode period
  if that is longer than the time left.
- `period(mode)` returns the configured window for the mode, and
  `rate(mode)` returns its maximum number of failures.

Errors raised by the storer are passed on to the caller.

## MongoDB storage

```python
from mfaguard.mongo_client import MongoDBConfig, create_mongodb_client

client = create_mongodb_client(
    MongoDBConfig(
        uri="mongodb://localhost:27017",
        db_name="mfa",
        num_users_collections=4,
        connect_timeout_in_sec=5,
        operation_timeout_in_sec=5,
    ),
    metrics_handler,  # any object with add_request_data(path, duration, status)
)

with client:
    coll = client.get_all_collections_ids()[0]
    client.put(coll, b"key1", b"data")
    assert client.get(coll, b"key1") == b"data"
    client.increment_index(coll, b"counter")
```

### Creating a client

`create_mongodb_client` checks the configuration first:

- An empty `uri` raises `EmptyMongoURIError`.
- A connect or operation timeout below one second raises
  `InvalidValueError`.

The client writes with majority write concern and reads with the
secondary-preferred read preference.

You can also wrap an existing `pymongo.MongoClient` with
`MongoDBClient(client, db_name, num_users_colls, metrics_handler)`. It
raises an error in these cases:

- no client: `NilMongoDBClientError`
- an empty database name: `EmptyMongoDBNameError`
- fewer than one collection: `InvalidValueError`
- no metrics handler: `NilMetricsHandlerError`

### `MongoDBClient` methods

Keys may be `bytes` or `str`. A collection id that is not one of
`get_all_collections_ids()` raises `CollectionNotFoundError`.

- `put(coll_id, key, data)` stores or replaces a value.
- `get(coll_id, key)` returns the stored bytes. It raises
  `KeyNotFoundError` if the key is missing.
- `has(coll_id, key)` returns whether the key exists.
- `remove(coll_id, key)` deletes the key.
- `get_index(coll_id, key)` returns an integer counter. It raises
  `KeyNotFoundError` if the key is missing.
- `put_index_if_not_exists(coll_id, key, index)` sets a counter only if the
  key is not there yet.
- `increment_index(coll_id, key)` adds one to a counter and returns the new
  value. The counter is created if it is missing.
- `close()` closes the client. The client can also be used as a context
  manager.

Each successful put, find, remove, get-index and increment is reported to
the metrics handler. The report names the operation, for example
`"MongoDB-UpdateOne"`, gives its duration as a `timedelta`, and gives
status `200`.

## Errors

All errors derive from `mfaguard.errors.ServiceError`. Where it fits, they
also derive from a built-in exception: `ValueError`, `LookupError` or
`ConnectionError`.

## What this package does not do

This package provides components only. It does not include:

- an HTTP API or server,
- one-time-password generation or verification,
- a command-line program.

Those are left to the application that uses it.

## Running the tests

```
pip install "mfaguard[test]"
pytest
```