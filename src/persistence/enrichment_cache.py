"""Bounded LRU cache for page enrichment results."""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, Mapping, Optional

from core.config import DEFAULT_ENRICHMENT_CACHE_SIZE
from persistence.hashing import hash_payload


def enrichment_fingerprint(payload: Mapping[str, Any]) -> str:
    """Stable content fingerprint of the raw evidence used for enrichment."""
    return hash_payload({"stage": "enrichment", "payload": dict(payload)})


class EnrichmentCache:
    """Strict LRU keyed by content fingerprint; no time-based expiry."""

    def __init__(self, capacity: int = DEFAULT_ENRICHMENT_CACHE_SIZE) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self._capacity = capacity
        self._entries: OrderedDict[str, Dict[str, Any]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._entries

    def get(self, fingerprint: str) -> Optional[Dict[str, Any]]:
        value = self._entries.get(fingerprint)
        if value is None:
            self.misses += 1
            return None
        self._entries.move_to_end(fingerprint)
        self.hits += 1
        return value

    def put(self, fingerprint: str, value: Dict[str, Any]) -> None:
        if self._capacity == 0:
            return
        self._entries[fingerprint] = value
        self._entries.move_to_end(fingerprint)
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()


__all__ = ["EnrichmentCache", "enrichment_fingerprint"]
