from __future__ import annotations

from collections import OrderedDict
from threading import Lock


class SignatureCache:
    """Bounded LRU set of recently generated draft signatures."""

    def __init__(self, max_size: int = 64) -> None:
        self.max_size = max(1, int(max_size))
        self._lock = Lock()
        self._entries: OrderedDict[str, None] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, signature: object) -> bool:
        with self._lock:
            return signature in self._entries

    def remember(self, signature: str) -> None:
        with self._lock:
            self._entries.pop(signature, None)
            self._entries[signature] = None
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def last(self) -> str | None:
        with self._lock:
            return next(reversed(self._entries), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
