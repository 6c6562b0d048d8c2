"""
Database layer for Redis operations with in-memory fallback for development.
Handles share records, the expiry index and health checks.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from pydantic import ValidationError
from redis import Redis
from redis.exceptions import ConnectionError, RedisError

from shareit.errors import Conflict, NotFound, StorageFailure
from shareit.models import Share

logger = logging.getLogger(__name__)

MEMORY_URL = "memory://"
RECORD_PREFIX = "share:"
EXPIRY_INDEX = "share-expiry"


def _parse_bound(raw: Any) -> tuple:
    """Parse a Redis score bound into (value, exclusive)."""
    raw = str(raw)
    exclusive = raw.startswith("(")
    if exclusive:
        raw = raw[1:]
    # float() understands "-inf" and "+inf" as well.
    return float(raw), exclusive


class InMemoryStore:
    """Simple in-memory store for development/testing (when Redis unavailable)."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.sorted_sets: Dict[str, Dict[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self.store.get(key)

    def mget(self, keys: List[str]) -> List[Optional[str]]:
        with self._lock:
            return [self.store.get(key) for key in keys]

    def set(self, key: str, value: str, nx: bool = False, xx: bool = False) -> Optional[bool]:
        """Store a value; with nx/xx only if the key is absent/present."""
        with self._lock:
            if nx and key in self.store:
                return None
            if xx and key not in self.store:
                return None
            self.store[key] = value
            return True

    def delete(self, *keys: str) -> int:
        with self._lock:
            return sum(self.store.pop(key, None) is not None for key in keys)

    def exists(self, *keys: str) -> int:
        with self._lock:
            return sum(key in self.store for key in keys)

    def zadd(self, key: str, mapping: Dict[str, float]) -> int:
        with self._lock:
            members = self.sorted_sets.setdefault(key, {})
            added = sum(member not in members for member in mapping)
            members.update(mapping)
            return added

    def zrem(self, key: str, *members: str) -> int:
        with self._lock:
            scores = self.sorted_sets.get(key, {})
            return sum(scores.pop(member, None) is not None for member in members)

    def _in_range(self, score: float, low: tuple, high: tuple) -> bool:
        low_value, low_exclusive = low
        high_value, high_exclusive = high
        above = score > low_value if low_exclusive else score >= low_value
        below = score < high_value if high_exclusive else score <= high_value
        return above and below

    def zrangebyscore(self, key: str, min: Any, max: Any) -> List[str]:
        low, high = _parse_bound(min), _parse_bound(max)
        with self._lock:
            scores = self.sorted_sets.get(key, {})
            matches = [(s, m) for m, s in scores.items() if self._in_range(s, low, high)]
        return [member for _, member in sorted(matches)]

    def zremrangebyscore(self, key: str, min: Any, max: Any) -> int:
        low, high = _parse_bound(min), _parse_bound(max)
        with self._lock:
            scores = self.sorted_sets.get(key, {})
            doomed = [m for m, s in scores.items() if self._in_range(s, low, high)]
            for member in doomed:
                del scores[member]
            return len(doomed)

    def ping(self):
        """Health check."""
        return True


def _record_key(name: str) -> str:
    return f"{RECORD_PREFIX}{name}"


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        raise StorageFailure(f"Database error while {action}: {type(e).__name__}: {e}") from e


class ShareDatabase:
    """
    Share records on Redis.

    Each share is a JSON document under ``share:<name>``. Shares with an
    expiry are also indexed in the ``share-expiry`` sorted set, scored by
    their expiry as epoch seconds, which serves the expired-share queries.
    """

    def __init__(self, redis, url: str = MEMORY_URL, using_fallback: bool = False):
        self.redis = redis
        self.url = url
        self.using_fallback = using_fallback

    @classmethod
    def connect(cls, url: str) -> "ShareDatabase":
        """Initialize Redis connection, fallback to in-memory store."""
        if url == MEMORY_URL:
            logger.info("Using in-memory share store")
            return cls(InMemoryStore(), url, using_fallback=True)
        try:
            logger.info(f"Attempting to connect to Redis: {url[:30]}...")
            redis = Redis.from_url(url, decode_responses=True)
            # Test connection
            redis.ping()
            logger.info("Redis connected successfully")
            return cls(redis, url)
        except ConnectionError as e:
            logger.error(f"ConnectionError connecting to Redis: {type(e).__name__}: {str(e)}")
        except RedisError as e:
            logger.error(f"Unexpected error connecting to Redis: {type(e).__name__}: {str(e)}")
        logger.warning(
            "Using in-memory fallback for development. Data will NOT persist across restarts."
        )
        return cls(InMemoryStore(), url, using_fallback=True)

    def clone(self) -> "ShareDatabase":
        """
        An independent handle on the same data.

        Opens a new Redis connection; the in-memory store can only be shared.
        """
        if self.using_fallback:
            return ShareDatabase(self.redis, self.url, using_fallback=True)
        return ShareDatabase(Redis.from_url(self.url, decode_responses=True), self.url)

    def close(self) -> None:
        if not self.using_fallback:
            self.redis.close()

    def is_healthy(self) -> bool:
        """Check if database connection is alive."""
        try:
            self.redis.ping()
            return True
        except RedisError as e:
            logger.error(f"Health check failed: {e}")
        return False

    def _load(self, raw: str) -> Share:
        try:
            return Share.model_validate_json(raw)
        except ValidationError as e:
            raise StorageFailure(f"Corrupt share record: {e}") from e

    def _index_expiry(self, share: Share) -> None:
        if share.expiry is None:
            self.redis.zrem(EXPIRY_INDEX, share.name)
        else:
            self.redis.zadd(EXPIRY_INDEX, {share.name: share.expiry.timestamp()})

    def insert(self, share: Share) -> None:
        """
        Insert a new share.

        Raises:
            Conflict: If a share with the same name already exists
        """
        with _storage_errors(f"inserting share {share.name}"):
            created = self.redis.set(_record_key(share.name), share.model_dump_json(), nx=True)
            if not created:
                raise Conflict("Name is already taken.")
            try:
                self._index_expiry(share)
            except RedisError:
                self.redis.delete(_record_key(share.name))
                raise
        logger.info(f"Share {share.name} saved successfully")

    def find_by_name(self, name: str) -> Optional[Share]:
        """
        Fetch a share record, expired or not.

        Returns:
            The share, or None if there is no record under that name
        """
        with _storage_errors(f"fetching share {name}"):
            raw = self.redis.get(_record_key(name))
        if raw is None:
            return None
        return self._load(raw)

    def update(self, share: Share) -> None:
        """
        Replace an existing share record.

        Raises:
            NotFound: If the record was deleted in the meantime
        """
        with _storage_errors(f"updating share {share.name}"):
            replaced = self.redis.set(_record_key(share.name), share.model_dump_json(), xx=True)
            if not replaced:
                raise NotFound("Share not found.")
            self._index_expiry(share)

    def delete(self, name: str) -> bool:
        """
        Delete a share record. Deleting a missing record is not an error.

        Returns:
            Whether a record was removed
        """
        with _storage_errors(f"deleting share {name}"):
            removed = self.redis.delete(_record_key(name))
            self.redis.zrem(EXPIRY_INDEX, name)
        if removed:
            logger.info(f"Share {name} deleted")
        return bool(removed)

    def exists(self, name: str) -> bool:
        with _storage_errors(f"checking share {name}"):
            return bool(self.redis.exists(_record_key(name)))

    def _expired_names(self, cutoff: datetime) -> List[str]:
        return self.redis.zrangebyscore(EXPIRY_INDEX, "-inf", f"({cutoff.timestamp()}")

    def find_expired(self, cutoff: datetime) -> List[Share]:
        """
        All shares whose expiry is strictly before ``cutoff``.

        Index entries left behind by a record that no longer exists are
        dropped on the way.
        """
        with _storage_errors("finding expired shares"):
            names = self._expired_names(cutoff)
            if not names:
                return []
            raws = self.redis.mget([_record_key(name) for name in names])
            orphans = [name for name, raw in zip(names, raws) if raw is None]
            if orphans:
                self.redis.zrem(EXPIRY_INDEX, *orphans)
                logger.info(f"Dropped {len(orphans)} expiry entries without a record")
        return [self._load(raw) for raw in raws if raw is not None]

    def delete_expired(self, cutoff: datetime) -> int:
        """
        Delete every share whose expiry is strictly before ``cutoff``.

        Returns:
            Number of records removed
        """
        with _storage_errors("deleting expired shares"):
            names = self._expired_names(cutoff)
            if not names:
                return 0
            removed = self.redis.delete(*[_record_key(name) for name in names])
            self.redis.zremrangebyscore(EXPIRY_INDEX, "-inf", f"({cutoff.timestamp()}")
        return removed
