"""Resume checkpoint schema."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from schemas.internal.evaluations import CrossPageEvidence, PageMeta, PageResult

RESUME_STATE_VERSION = 1


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ResumeState(BaseModel):
    """Durable session progress, rewritten after every page."""

    version: int = RESUME_STATE_VERSION
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)
    pages: List[str] = Field(default_factory=list)
    report_lang: str = "fr"
    out_path: Optional[str] = None
    criteria_ids: List[str] = Field(default_factory=list)
    completed_pages: List[PageResult] = Field(default_factory=list)
    cross_page_evidence: List[CrossPageEvidence] = Field(default_factory=list)
    page_meta: Dict[str, PageMeta] = Field(default_factory=dict)

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def touch(self) -> None:
        self.updated_at = _now_iso()


__all__ = ["RESUME_STATE_VERSION", "ResumeState"]
