"""Hashing helpers for checkpoints and cache keys."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Sequence


def sha256_bytes(data: bytes) -> str:
    """Return hex sha256 of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def stable_json_dumps(payload: object) -> str:
    """Dump JSON with stable ordering for hashing."""
    return json.dumps(
        payload,
        ensure_ascii=True,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_default,
    )


def hash_payload(payload: object) -> str:
    """Return sha256 hash of a JSON-serializable payload."""
    return sha256_bytes(stable_json_dumps(payload).encode("utf-8"))


def criteria_fingerprint(criteria_ids: Sequence[str]) -> str:
    """Order-sensitive identity of a criteria list."""
    return hash_payload({"stage": "criteria", "ids": list(criteria_ids)})


def _json_default(value: object) -> str:
    if isinstance(value, Path):
        return value.as_posix()
    return str(value)


__all__ = [
    "criteria_fingerprint",
    "hash_payload",
    "sha256_bytes",
    "stable_json_dumps",
]
