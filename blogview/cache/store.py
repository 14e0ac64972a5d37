"""
Expiry-based key/value cache with an optional durable backing store.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from .backends import MemoryBackend
from .core import CacheEntry, OperationCategory, StorageError
from .ttl_policies import get_ttl_for

logger = logging.getLogger("cache.store")


class CacheStore:
    """
    Cache store with per-entry expiry.

    Storage duality:
    - With a durable backend, writes go there first and land in the in-process
      map only when the durable write raises StorageError
    - Reads prefer the in-process map, which only holds a key while its latest
      write could not reach the durable backend, then the durable backend
    - Without a durable backend the in-process map is authoritative

    Callers never see StorageError; any other exception propagates.

    Usage:
        store = CacheStore()
        store.set("posts:limit=12", posts, ttl=3600)
        store.get("posts:limit=12")
    """

    def __init__(
        self,
        backend=None,
        namespace: str = "hygraph:",
        clock: Callable[[], float] = time.time,
        ttl_config: Optional[Dict[OperationCategory, int]] = None,
    ):
        """
        Initialize the store.

        Args:
            backend: Durable backend (e.g. SQLiteBackend), or None for memory only
            namespace: Prefix applied to every key this store owns
            clock: Time source returning epoch seconds
            ttl_config: Category -> TTL table, defaults to the configured TTL_CONFIG

        Raises:
            ValueError: If ttl_config holds a non-positive TTL
        """
        if ttl_config is not None:
            invalid = {category.name: ttl for category, ttl in ttl_config.items() if ttl <= 0}
            if invalid:
                raise ValueError(f"TTLs must be positive: {invalid}")
        self._durable = backend
        self._memory = MemoryBackend()
        self._namespace = namespace
        self._clock = clock
        self._ttl_config = ttl_config

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def is_durable(self) -> bool:
        return self._durable is not None

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def _read_entry(self, key: str) -> Optional[CacheEntry]:
        """Load the raw entry for a namespaced key, valid or not."""
        record = self._memory.get(key)
        if record is None and self._durable is not None:
            try:
                record = self._durable.get(key)
            except StorageError as e:
                logger.warning(f"Durable cache read failed: {e}")
        if record is None:
            return None
        return CacheEntry.from_record(record)

    def _valid_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._read_entry(self._key(key))
        if entry is None or not entry.is_valid(self._clock()):
            return None
        return entry

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value if a valid entry exists, else None."""
        entry = self._valid_entry(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any, ttl: float) -> None:
        """
        Store a value for ``ttl`` seconds, overwriting any previous entry.

        Raises:
            ValueError: If ttl is not positive
        """
        if ttl <= 0:
            raise ValueError(f"TTL must be positive, got {ttl}")

        now = self._clock()
        record = CacheEntry(value=value, stored_at=now, expires_at=now + ttl).to_record()
        full_key = self._key(key)

        if self._durable is None:
            self._memory.set(full_key, record)
            return

        try:
            self._durable.set(full_key, record)
        except StorageError as e:
            logger.warning(f"Durable cache write failed, using memory cache for {key}: {e}")
            self._memory.set(full_key, record)
            # The memory copy now wins on read; the older durable copy is dead weight
            try:
                self._durable.delete(full_key)
            except StorageError:
                logger.debug(f"Could not drop stale durable copy of {key}")
            return

        self._memory.delete(full_key)

    def has(self, key: str) -> bool:
        """True iff a valid entry exists for key."""
        return self._valid_entry(key) is not None

    def delete(self, key: str) -> None:
        full_key = self._key(key)
        if self._durable is not None:
            try:
                self._durable.delete(full_key)
            except StorageError as e:
                logger.warning(f"Durable cache delete failed for {key}: {e}")
        self._memory.delete(full_key)

    def clear(self) -> int:
        """
        Remove every entry owned by this store.

        Returns:
            Number of entries removed
        """
        removed = 0
        if self._durable is not None:
            try:
                removed += self._durable.clear(self._namespace)
            except StorageError as e:
                logger.warning(f"Durable cache clear failed: {e}")
        removed += self._memory.clear(self._namespace)
        logger.info(f"Cleared {removed} cache entries")
        return removed

    def _scan(self) -> List[Tuple[str, str, CacheEntry]]:
        """All namespaced entries as (source, key, entry)."""
        entries = []
        if self._durable is not None:
            try:
                for key, record in self._durable.items(self._namespace):
                    entries.append(("durable", key, CacheEntry.from_record(record)))
            except StorageError as e:
                logger.warning(f"Durable cache scan failed: {e}")
        for key, record in self._memory.items(self._namespace):
            entries.append(("memory", key, CacheEntry.from_record(record)))
        return entries

    def prune(self) -> int:
        """
        Evict all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        removed = 0
        for source, key, entry in self._scan():
            if entry.is_valid(now):
                continue
            if source == "durable":
                try:
                    if self._durable.delete(key):
                        removed += 1
                except StorageError as e:
                    logger.warning(f"Durable cache prune failed for {key}: {e}")
            elif self._memory.delete(key):
                removed += 1
        if removed:
            logger.info(f"Pruned {removed} expired cache entries")
        return removed

    def stats(self) -> Dict[str, Any]:
        """Point-in-time statistics computed by scanning all entries (ages in seconds)."""
        now = self._clock()
        entries = self._scan()
        ages = [entry.age_seconds(now) for _, _, entry in entries]
        valid = sum(1 for _, _, entry in entries if entry.is_valid(now))

        return {
            "totalEntries": len(entries),
            "validEntries": valid,
            "expiredEntries": len(entries) - valid,
            "durableEntries": sum(1 for source, _, _ in entries if source == "durable"),
            "memoryEntries": sum(1 for source, _, _ in entries if source == "memory"),
            "averageAge": round(sum(ages) / len(ages), 3) if ages else 0,
            "oldestEntry": round(max(ages), 3) if ages else 0,
            "newestEntry": round(min(ages), 3) if ages else 0,
        }

    def get_ttl_for(self, category: OperationCategory) -> int:
        """TTL in seconds for a category (pure lookup)."""
        return get_ttl_for(category, self._ttl_config)
