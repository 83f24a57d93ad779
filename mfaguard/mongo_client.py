"""Key/value and counter storage on top of sharded mongodb user collections."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Protocol

import pymongo
from pymongo import ReturnDocument

from .errors import (
    CollectionNotFoundError,
    EmptyMongoDBNameError,
    EmptyMongoURIError,
    InvalidValueError,
    KeyNotFoundError,
    NilMetricsHandlerError,
    NilMongoDBClientError,
)

log = logging.getLogger(__name__)

USERS_COLLECTION_ID = "users"
NON_ERROR_CODE = 200

_METRIC_PREFIX = "MongoDB"
_GET_INDEX_METRIC = "GetIndex"
_DELETE_METRIC = "DeleteOne"
_FIND_METRIC = "FindOne"
_UPDATE_METRIC = "UpdateOne"
_INCREMENT_METRIC = "Increment"

_INCREMENT_INDEX_STEP = 1
_MIN_NUM_USERS_COLLS = 1
_MIN_TIMEOUT_IN_SEC = 1


class MetricsHandler(Protocol):
    """Receives timing data for completed storage operations."""

    def add_request_data(self, path: str, duration: timedelta, status: int) -> None: ...


@dataclass
class MongoDBConfig:
    """Connection settings for mongodb."""

    uri: str = ""
    db_name: str = ""
    num_users_collections: int = 1
    connect_timeout_in_sec: int = 60
    operation_timeout_in_sec: int = 60


def _op_id(operation: str) -> str:
    return f"{_METRIC_PREFIX}-{operation}"


def _key_text(key: bytes | str) -> str:
    return key.decode() if isinstance(key, (bytes, bytearray)) else str(key)


class MongoDBClient:
    """Stores values and counters in a fixed set of user collections."""

    def __init__(
        self,
        client: Any,
        db_name: str,
        num_users_colls: int,
        metrics_handler: MetricsHandler,
    ) -> None:
        if client is None:
            raise NilMongoDBClientError()
        if not db_name:
            raise EmptyMongoDBNameError()
        if num_users_colls < _MIN_NUM_USERS_COLLS:
            raise InvalidValueError(
                f"for number of users collections: provided {num_users_colls}, "
                f"minimum {_MIN_NUM_USERS_COLLS}"
            )
        if metrics_handler is None:
            raise NilMetricsHandlerError()

        self._client = client
        self._db = client.get_database(db_name)
        self._metrics = metrics_handler
        self._collection_ids = [
            f"{USERS_COLLECTION_ID}_{index}" for index in range(num_users_colls)
        ]
        self._collections = {
            coll_id: self._db.get_collection(coll_id) for coll_id in self._collection_ids
        }

    def _collection(self, coll_id: str) -> Any:
        try:
            return self._collections[coll_id]
        except KeyError:
            raise CollectionNotFoundError(repr(coll_id)) from None

    def _record(self, operation: str, started: float) -> None:
        duration = timedelta(seconds=time.monotonic() - started)
        self._metrics.add_request_data(_op_id(operation), duration, NON_ERROR_CODE)

    def _find_one(self, coll_id: str, key: bytes | str) -> dict | None:
        coll = self._collection(coll_id)
        started = time.monotonic()
        entry = coll.find_one({"_id": _key_text(key)})
        if entry is not None:
            self._record(_FIND_METRIC, started)
        return entry

    def get_all_collections_ids(self) -> list[str]:
        """Names of all user collections, in creation order."""
        return list(self._collection_ids)

    def put(self, coll_id: str, key: bytes | str, data: bytes) -> None:
        """Store ``data`` under ``key``, replacing any previous value."""
        coll = self._collection(coll_id)
        key_text = _key_text(key)
        started = time.monotonic()
        coll.update_one(
            {"_id": key_text},
            {"$set": {"_id": key_text, "value": data}},
            upsert=True,
        )
        self._record(_UPDATE_METRIC, started)

    def get(self, coll_id: str, key: bytes | str) -> bytes:
        """Value stored under ``key``; raises KeyNotFoundError if absent."""
        entry = self._find_one(coll_id, key)
        if entry is None:
            raise KeyNotFoundError(repr(_key_text(key)))
        return bytes(entry["value"])

    def has(self, coll_id: str, key: bytes | str) -> bool:
        """True if ``key`` exists in the collection."""
        return self._find_one(coll_id, key) is not None

    def remove(self, coll_id: str, key: bytes | str) -> None:
        """Delete ``key`` from the collection."""
        coll = self._collection(coll_id)
        started = time.monotonic()
        coll.delete_one({"_id": _key_text(key)})
        self._record(_DELETE_METRIC, started)

    def get_index(self, coll_id: str, key: bytes | str) -> int:
        """Counter value stored under ``key``; raises KeyNotFoundError if absent."""
        coll = self._collection(coll_id)
        started = time.monotonic()
        entry = coll.find_one({"_id": _key_text(key)})
        if entry is None:
            raise KeyNotFoundError(repr(_key_text(key)))
        self._record(_GET_INDEX_METRIC, started)
        return int(entry["value"])

    def put_index_if_not_exists(self, coll_id: str, key: bytes | str, index: int) -> None:
        """Set the counter under ``key`` to ``index`` unless it already exists."""
        coll = self._collection(coll_id)
        key_text = _key_text(key)
        result = coll.update_one(
            {"_id": key_text},
            {"$setOnInsert": {"_id": key_text, "value": index}},
            upsert=True,
        )
        log.debug(
            "put_index_if_not_exists coll=%s key=%s value=%s modified=%s upserted=%s",
            coll_id,
            key_text,
            index,
            getattr(result, "modified_count", None),
            getattr(result, "upserted_id", None),
        )

    def increment_index(self, coll_id: str, key: bytes | str) -> int:
        """Increment the counter under ``key`` and return its new value."""
        coll = self._collection(coll_id)
        key_text = _key_text(key)
        started = time.monotonic()
        entry = coll.find_one_and_update(
            {"_id": key_text},
            {"$inc": {"value": _INCREMENT_INDEX_STEP}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        if entry is None:
            raise KeyNotFoundError(repr(key_text))
        self._record(_INCREMENT_METRIC, started)
        value = int(entry["value"])
        log.debug("increment_index coll=%s key=%s value=%s", coll_id, key_text, value)
        return value

    def close(self) -> None:
        """Close the underlying mongodb client."""
        self._client.close()

    def __enter__(self) -> MongoDBClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _check_config(config: MongoDBConfig) -> None:
    if not config.uri:
        raise EmptyMongoURIError()
    if config.connect_timeout_in_sec < _MIN_TIMEOUT_IN_SEC:
        raise InvalidValueError(
            f"for mongo connect timeout: provided {config.connect_timeout_in_sec}, "
            f"minimum {_MIN_TIMEOUT_IN_SEC}"
        )
    if config.operation_timeout_in_sec < _MIN_TIMEOUT_IN_SEC:
        raise InvalidValueError(
            f"for mongo operation timeout: provided {config.operation_timeout_in_sec}, "
            f"minimum {_MIN_TIMEOUT_IN_SEC}"
        )


def create_mongodb_client(
    config: MongoDBConfig, metrics_handler: MetricsHandler
) -> MongoDBClient:
    """Validate the configuration and build a storage client from it."""
    _check_config(config)
    client = pymongo.MongoClient(
        config.uri,
        connectTimeoutMS=config.connect_timeout_in_sec * 1000,
        timeoutMS=config.operation_timeout_in_sec * 1000,
        w="majority",
        readPreference="secondaryPreferred",
    )
    try:
        return MongoDBClient(
            client, config.db_name, config.num_users_collections, metrics_handler
        )
    except Exception:
        client.close()
        raise