"""Snapshot collector backed by pre-captured JSON files."""

from __future__ import annotations

import asyncio
import json
import re
from pathlib import Path
from typing import Any, Dict
from urllib.parse import urlparse

from core.errors import PageFailure
from pipelines.audit.cancellation import CancellationToken

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def page_slug(page: str) -> str:
    """``https://example.com/a/b?x=1`` -> ``example-com-a-b-x-1``."""
    parsed = urlparse(page)
    raw = page
    if parsed.scheme and parsed.netloc:
        raw = parsed.netloc + parsed.path + (f"?{parsed.query}" if parsed.query else "")
    slug = _SLUG_RE.sub("-", raw.lower()).strip("-")
    return slug or "index"


class DirectorySnapshotCollector:
    """Reads ``<slug>.json`` for each page from a directory.

    An optional ``index.json`` maps page URLs to file names and wins over the
    slug. A missing or malformed file is reported as a page failure.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self._index = self._load_index()

    def _load_index(self) -> Dict[str, str]:
        path = self.directory / "index.json"
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid snapshot index: {path}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Snapshot index must be an object: {path}")
        return {str(key): str(value) for key, value in data.items()}

    def path_for(self, page: str) -> Path:
        name = self._index.get(page) or f"{page_slug(page)}.json"
        return self.directory / name

    async def collect(self, page: str, *, token: CancellationToken) -> Dict[str, Any]:
        token.raise_if_cancelled()
        return await asyncio.to_thread(self._read, page)

    def _read(self, page: str) -> Dict[str, Any]:
        path = self.path_for(page)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise PageFailure(f"No snapshot for {page}", diagnostics=f"looked for {path}") from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PageFailure(
                f"Invalid snapshot JSON for {page}", diagnostics=f"{path}: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise PageFailure(f"Snapshot for {page} is not an object")
        data.setdefault("url", page)
        return data


__all__ = ["DirectorySnapshotCollector", "page_slug"]
