"""In-process key/value cache with optional per-entry lifetime."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Generic, MutableMapping, TypeVar

K = TypeVar("K")
V = TypeVar("V")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class _CacheEntry(Generic[V]):
    value: V
    expires_at: datetime | None

    def is_valid(self, now: datetime) -> bool:
        return self.expires_at is None or now < self.expires_at


class ExpiringCache(Generic[K, V]):
    """Dictionary-backed cache whose entries expire ``ttl`` after insertion.

    ``ttl=None`` keeps entries until invalidated. Expired entries are evicted
    lazily when read. Every write replaces the whole entry in one assignment, so
    concurrent fills resolve as last-writer-wins without locking.
    """

    def __init__(self, *, ttl: timedelta | None = None, clock: Clock | None = None) -> None:
        if ttl is not None and ttl < timedelta(0):
            raise ValueError("Cache TTL must not be negative")
        self._ttl = ttl
        self._clock = clock or utcnow
        self._entries: MutableMapping[K, _CacheEntry[V]] = {}

    def now(self) -> datetime:
        return self._clock()

    def get(self, key: K) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            self._entries.pop(key, None)
            return None
        return entry.value

    def set(self, key: K, value: V) -> None:
        now = self._clock()
        expires_at = now + self._ttl if self._ttl is not None else None
        self._entries[key] = _CacheEntry(value=value, expires_at=expires_at)

    def invalidate(self, key: K | None = None) -> None:
        """Drop one key, or everything when ``key`` is ``None``."""

        if key is None:
            self._entries.clear()
            return
        self._entries.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["Clock", "ExpiringCache", "utcnow"]
