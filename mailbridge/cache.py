"""ConversationCache: bounded, time-windowed memory of recently seen mail.

Serves two call paths: the ingestion task inserts (with dedup) and the
reply path looks up the original mail item for a conversation key.  The
two may run on different threads, so every operation holds one lock; no
I/O ever happens under it.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable

import structlog

from .models import CacheEntry, MailItem

logger = structlog.get_logger()


class ConversationCache:
    """Dedup-on-insert cache gated by both capacity and age.

    Parameters
    ----------
    capacity:
        Maximum number of entries retained regardless of age.
    window_seconds:
        Age after which an entry is unreachable by :meth:`lookup`.
    clock:
        Monotonic clock used for ``inserted_at``; injectable for tests.
    """

    def __init__(
        self,
        capacity: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")
        self._capacity = capacity
        self._window = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # Insertion order == inserted_at order, oldest first.
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def window_seconds(self) -> float:
        return self._window

    def insert(self, item: MailItem) -> bool:
        """Remember *item*; return ``False`` if its id was already present."""
        with self._lock:
            if item.id in self._entries:
                return False
            now = self._clock()
            self._entries[item.id] = CacheEntry(
                conversation_key=item.id,
                item=item,
                inserted_at=now,
            )
            expired = self._evict_expired(now)
            overflow = self._evict_overflow()
            size = len(self._entries)

        if expired or overflow:
            logger.debug(
                "cache_evicted",
                expired=expired,
                overflow=overflow,
                size=size,
            )
        return True

    def lookup(self, key: str) -> MailItem | None:
        """Return the mail item for *key*, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._is_expired(entry, self._clock()):
                return None
            return entry.item

    def keys(self) -> list[str]:
        """Conversation keys currently held, oldest first (expired included)."""
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    # ------------------------------------------------------------------
    # Eviction (caller holds the lock)
    # ------------------------------------------------------------------

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at > self._window

    def _evict_expired(self, now: float) -> int:
        removed = 0
        while self._entries:
            oldest = next(iter(self._entries.values()))
            if not self._is_expired(oldest, now):
                break
            self._entries.popitem(last=False)
            removed += 1
        return removed

    def _evict_overflow(self) -> int:
        removed = 0
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)
            removed += 1
        return removed
