"""In-memory cache whose entries expire after a fixed time-to-live."""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

SHORT_TTL_S = 60.0
MEDIUM_TTL_S = 300.0
LONG_TTL_S = 3600.0

Clock = Callable[[], float]


@dataclass
class _Entry:
    value: Any
    stored_at: float
    ttl_s: float


def cache_key(user_id: str, kind: str, params: Optional[dict[str, Any]] = None) -> str:
    params_str = json.dumps(params, sort_keys=True, default=str) if params else ""
    return f"{user_id}:{kind}:{params_str}"


class TTLCache:
    """Entries are valid while ``clock() - stored_at <= ttl``.

    Expired entries are dropped when read. One instance is created per
    process and handed to whoever needs it.
    """

    def __init__(self, default_ttl_s: float = MEDIUM_TTL_S, clock: Clock = time.monotonic) -> None:
        self._default_ttl_s = default_ttl_s
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at > entry.ttl_s:
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        with self._lock:
            self._entries[key] = _Entry(
                value=value,
                stored_at=self._clock(),
                ttl_s=self._default_ttl_s if ttl_s is None else ttl_s,
            )

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if now - e.stored_at > e.ttl_s]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
