"""Shared helpers for CLI commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

import typer


def emit_json(data: Any) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def split_pages(values: Iterable[str] | None) -> list[str]:
    """Flatten repeated/comma separated ``--pages`` values."""
    pages: list[str] = []
    for value in values or []:
        pages.extend(part.strip() for part in str(value).split(",") if part.strip())
    return pages


def load_pages_file(path: Path) -> list[str]:
    if not path.exists():
        raise typer.BadParameter(f"Pages file not found: {path}")
    pages: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            pages.append(stripped)
    return pages


def collect_pages(values: Iterable[str] | None, pages_file: Path | None) -> list[str]:
    """Merge both page sources, dropping duplicates while keeping order."""
    merged = split_pages(values)
    if pages_file is not None:
        merged.extend(load_pages_file(pages_file))
    seen: set[str] = set()
    unique: list[str] = []
    for page in merged:
        if page not in seen:
            seen.add(page)
            unique.append(page)
    return unique


def configure_logging(debug_log: Path | None = None) -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    if debug_log is None:
        return
    debug_log.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(debug_log, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    for existing in root.handlers:
        if existing is not handler and existing.level == logging.NOTSET:
            existing.setLevel(logging.WARNING)
