"""RGAA criterion and theme schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Theme(BaseModel):
    """One RGAA theme (e.g. 1 Images)."""

    number: int = Field(ge=1)
    name_fr: str
    name_en: str

    model_config = ConfigDict(extra="forbid", frozen=True)

    def label(self, lang: str) -> str:
        return self.name_en if lang == "en" else self.name_fr


class Criterion(BaseModel):
    """Immutable criterion identity; list order defines reporting order."""

    id: str
    theme: str
    title: str
    theme_number: Optional[int] = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("criterion id must not be empty")
        return value


class CriteriaSet(BaseModel):
    """Ordered list of criteria loaded once per session."""

    version: str
    themes: List[Theme] = Field(default_factory=list)
    criteria: List[Criterion]

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _validate_unique_ids(self) -> "CriteriaSet":
        seen: set[str] = set()
        duplicates = []
        for criterion in self.criteria:
            if criterion.id in seen:
                duplicates.append(criterion.id)
            seen.add(criterion.id)
        if duplicates:
            raise ValueError(f"Duplicate criterion ids: {duplicates}")
        return self

    @property
    def ids(self) -> List[str]:
        return [criterion.id for criterion in self.criteria]

    def get(self, criterion_id: str) -> Optional[Criterion]:
        for criterion in self.criteria:
            if criterion.id == criterion_id:
                return criterion
        return None


__all__ = ["CriteriaSet", "Criterion", "Theme"]
