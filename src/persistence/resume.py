"""Resume checkpoint load, validation and atomic persistence."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from core.errors import ResumeIncompatibilityError
from persistence.hashing import criteria_fingerprint
from schemas.internal.evaluations import CrossPageEvidence, PageMeta, PageResult
from schemas.internal.resume import RESUME_STATE_VERSION, ResumeState

logger = logging.getLogger(__name__)


def default_state_path(out_path: Path | str) -> Path:
    """Checkpoint file placed beside the report (``report.xlsx`` -> ``report.state.json``)."""
    out = Path(out_path)
    return out.with_name(f"{out.stem}.state.json")


def load_resume_state(path: Path) -> ResumeState:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ResumeIncompatibilityError(f"Checkpoint unreadable: {path} ({exc})") from exc
    if not isinstance(data, dict):
        raise ResumeIncompatibilityError(f"Checkpoint is not a JSON object: {path}")
    if data.get("version") != RESUME_STATE_VERSION:
        raise ResumeIncompatibilityError(
            f"Checkpoint version {data.get('version')!r} is not supported "
            f"(expected {RESUME_STATE_VERSION}): {path}"
        )
    try:
        return ResumeState.model_validate(data)
    except ValidationError as exc:
        raise ResumeIncompatibilityError(f"Checkpoint has an invalid shape: {path} ({exc})") from exc


def assert_resume_compatible(
    state: ResumeState,
    *,
    criteria_ids: Sequence[str],
    pages: Sequence[str],
) -> None:
    """Refuse checkpoints written for another criteria list or page list."""
    expected = list(criteria_ids)
    if list(state.criteria_ids) != expected:
        raise ResumeIncompatibilityError(
            "Checkpoint criteria do not match this run "
            f"(checkpoint {len(state.criteria_ids)} ids, "
            f"fingerprint {criteria_fingerprint(state.criteria_ids)[:12]}; "
            f"current {len(expected)} ids, fingerprint {criteria_fingerprint(expected)[:12]}). "
            "Start without --resume to run from scratch."
        )

    completed = [page.url for page in state.completed_pages]
    if len(completed) > len(pages):
        raise ResumeIncompatibilityError(
            f"Checkpoint has {len(completed)} completed pages but only {len(pages)} pages were given."
        )
    mismatched = [
        f"{index + 1}: {done} != {current}"
        for index, (done, current) in enumerate(zip(completed, pages))
        if done != current
    ]
    if mismatched:
        raise ResumeIncompatibilityError(
            "Checkpoint pages do not match the current page list: " + "; ".join(mismatched)
        )

    for page in state.completed_pages:
        ids = [result.criterion.id for result in page.results]
        if ids != expected:
            raise ResumeIncompatibilityError(
                f"Checkpoint page {page.url} does not hold one result per criterion."
            )


class ResumeStateManager:
    """Owns the checkpoint file for one session."""

    def __init__(self, path: Path | None) -> None:
        self.path = path
        self.state: Optional[ResumeState] = None
        self.writes = 0

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def load_existing(self) -> Optional[ResumeState]:
        if self.path is None or not self.path.exists():
            return None
        return load_resume_state(self.path)

    def begin(
        self,
        *,
        pages: Sequence[str],
        criteria_ids: Sequence[str],
        report_lang: str,
        out_path: Optional[str],
        existing: Optional[ResumeState] = None,
    ) -> ResumeState:
        if existing is not None:
            assert_resume_compatible(existing, criteria_ids=criteria_ids, pages=pages)
            state = existing.model_copy(deep=True)
            state.pages = list(pages)
            state.report_lang = report_lang
            state.out_path = out_path
            logger.info(
                "Resuming from checkpoint with %d completed page(s)", len(state.completed_pages)
            )
        else:
            state = ResumeState(
                pages=list(pages),
                report_lang=report_lang,
                out_path=out_path,
                criteria_ids=list(criteria_ids),
            )
        self.state = state
        return state

    @property
    def completed_pages(self) -> List[PageResult]:
        return list(self.state.completed_pages) if self.state else []

    @property
    def cross_page_evidence(self) -> List[CrossPageEvidence]:
        return list(self.state.cross_page_evidence) if self.state else []

    @property
    def page_meta(self) -> Dict[str, PageMeta]:
        return dict(self.state.page_meta) if self.state else {}

    def record_page(
        self,
        result: PageResult,
        *,
        evidence: Optional[CrossPageEvidence],
        meta: PageMeta,
    ) -> None:
        if self.state is None:
            raise RuntimeError("ResumeStateManager.begin() must be called first")
        self.state.completed_pages.append(result.model_copy(deep=True))
        if evidence is not None:
            self.state.cross_page_evidence.append(evidence)
        self.state.page_meta[result.url] = meta
        self.save()

    def save(self) -> None:
        if self.path is None or self.state is None:
            return
        self.state.touch()
        payload = self.state.model_dump(mode="json", by_alias=True)
        _write_checkpoint(self.path, payload)
        self.writes += 1
        logger.debug("Checkpoint written: %s", self.path)

    def discard(self) -> None:
        if self.path is not None and self.path.exists():
            self.path.unlink()
            logger.info("Checkpoint removed after successful run: %s", self.path)


def _write_checkpoint(path: Path, payload: Dict[str, object]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp = path.with_suffix(path.suffix + ".tmp")
    temp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    temp.replace(path)


__all__ = [
    "ResumeStateManager",
    "assert_resume_compatible",
    "default_state_path",
    "load_resume_state",
]
