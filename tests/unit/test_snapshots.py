from __future__ import annotations

import json
from pathlib import Path

import pytest

from core.errors import PageFailure
from pipelines.audit.cancellation import CancellationToken
from services.snapshots import DirectorySnapshotCollector, page_slug

pytestmark = pytest.mark.anyio


def test_page_slug() -> None:
    assert page_slug("https://Example.com/a/b?x=1") == "example-com-a-b-x-1"
    assert page_slug("https://example.com/") == "example-com"
    assert page_slug("///") == "index"


async def test_collect_reads_slug_file_and_sets_url(tmp_path: Path) -> None:
    (tmp_path / "example-com-contact.json").write_text(json.dumps({"title": "Contact"}), encoding="utf-8")
    collector = DirectorySnapshotCollector(tmp_path)

    snapshot = await collector.collect("https://example.com/contact", token=CancellationToken())

    assert snapshot == {"title": "Contact", "url": "https://example.com/contact"}


async def test_index_file_overrides_slug(tmp_path: Path) -> None:
    (tmp_path / "home.json").write_text(json.dumps({"title": "Home"}), encoding="utf-8")
    (tmp_path / "index.json").write_text(json.dumps({"https://example.com/": "home.json"}), encoding="utf-8")
    collector = DirectorySnapshotCollector(tmp_path)

    assert collector.path_for("https://example.com/") == tmp_path / "home.json"
    snapshot = await collector.collect("https://example.com/", token=CancellationToken())
    assert snapshot["title"] == "Home"


async def test_missing_or_invalid_snapshot_is_page_failure(tmp_path: Path) -> None:
    (tmp_path / "example-com-bad.json").write_text("{oops", encoding="utf-8")
    (tmp_path / "example-com-list.json").write_text("[]", encoding="utf-8")
    collector = DirectorySnapshotCollector(tmp_path)
    token = CancellationToken()

    with pytest.raises(PageFailure, match="No snapshot") as missing:
        await collector.collect("https://example.com/none", token=token)
    assert "example-com-none.json" in (missing.value.diagnostics or "")
    with pytest.raises(PageFailure, match="Invalid snapshot JSON"):
        await collector.collect("https://example.com/bad", token=token)
    with pytest.raises(PageFailure, match="not an object"):
        await collector.collect("https://example.com/list", token=token)


def test_malformed_index_rejected(tmp_path: Path) -> None:
    (tmp_path / "index.json").write_text("[]", encoding="utf-8")

    with pytest.raises(ValueError, match="must be an object"):
        DirectorySnapshotCollector(tmp_path)
