from __future__ import annotations

import time
from typing import Any, Dict, Optional


class TTLMap:
    """In-memory TTL map for small caches (identity-provider key sets).

    - get(key) -> Optional[Any]
    - set(key, value, ttl_seconds)
    - pop(key)
    """

    def __init__(self, maxsize: int = 64):
        self.maxsize = maxsize
        self._data: Dict[str, Any] = {}
        self._exp: Dict[str, float] = {}

    def get(self, key: str) -> Optional[Any]:
        exp = self._exp.get(key)
        if exp is None:
            return None
        if time.monotonic() >= exp:
            self.pop(key)
            return None
        return self._data.get(key)

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if key not in self._data and len(self._data) >= self.maxsize:
            try:
                self.pop(next(iter(self._data)))
            except StopIteration:
                pass
        self._data[key] = value
        self._exp[key] = time.monotonic() + ttl_seconds

    def pop(self, key: str) -> None:
        self._data.pop(key, None)
        self._exp.pop(key, None)
