# Overview: In-process TTL cache for expensive aggregate reads (analytics, summaries).

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)

"""
Cache invariants (authoritative)

- Advisory only: never consulted for stock, availability, or validation decisions.
- Entries expire after their TTL; expired entries are dropped on read.
- A failed write is logged and ignored; callers always get the computed value.
"""

_MISSING = object()


class TTLCache:
    def __init__(self, prefix: str = "tablestore", default_ttl: int = 300):
        self.prefix = prefix
        self.default_ttl = default_ttl
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str, default: Any = None) -> Any:
        full_key = self._key(key)
        with self._lock:
            entry = self._entries.get(full_key)
            if entry is None:
                return default
            expires_at, value = entry
            if expires_at <= time.monotonic():
                del self._entries[full_key]
                return default
            return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            return
        with self._lock:
            self._entries[self._key(key)] = (time.monotonic() + ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(self._key(key), None)

    def delete_prefix(self, key_prefix: str) -> int:
        full_prefix = self._key(key_prefix)
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(full_prefix)]
            for k in doomed:
                del self._entries[k]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_or_compute(self, key: str, compute: Callable[[], Any], ttl: int | None = None) -> Any:
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        value = compute()
        try:
            self.set(key, value, ttl)
        except Exception:
            logger.exception("Cache write failed for %s", key)
        return value

    @staticmethod
    def column_values_key(table_id: int, column_name: str) -> str:
        return f"table:{table_id}:column:{column_name}:values"
