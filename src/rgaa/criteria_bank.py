"""Load the RGAA criteria bank from YAML."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import yaml

from core.config import normalize_report_lang
from schemas.internal.criteria import CriteriaSet

DEFAULT_CRITERIA_BANK = Path(__file__).resolve().parent / "rgaa_criteria.yaml"


def load_criteria_bank(path: Path | str | None = None, *, lang: str = "fr") -> CriteriaSet:
    """Load and validate the criteria bank, labelling themes in ``lang``."""
    resolved = Path(path) if path else DEFAULT_CRITERIA_BANK
    if not resolved.exists():
        raise FileNotFoundError(f"Criteria bank not found: {resolved}")

    raw = yaml.safe_load(resolved.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Criteria bank must be a YAML mapping")

    criteria = raw.get("criteria")
    if not isinstance(criteria, list):
        raise ValueError("Criteria bank must include a criteria list")

    report_lang = normalize_report_lang(lang)
    themes = {
        int(item["number"]): item
        for item in raw.get("themes") or []
        if isinstance(item, dict) and "number" in item
    }
    for item in criteria:
        if not isinstance(item, dict):
            continue
        item["id"] = str(item.get("id", ""))
        if "theme" in item:
            continue
        number = _theme_number(item["id"])
        theme = themes.get(number) if number is not None else None
        if theme is None:
            raise ValueError(f"Criterion {item['id']!r} has no theme")
        item["theme_number"] = number
        item["theme"] = theme["name_en"] if report_lang == "en" else theme["name_fr"]

    return CriteriaSet.model_validate(
        {
            "version": str(raw.get("version") or ""),
            "themes": list(themes.values()),
            "criteria": criteria,
        }
    )


@lru_cache(maxsize=4)
def get_criteria_bank(path: str | None = None, lang: str = "fr") -> CriteriaSet:
    """Return cached criteria bank for reuse across sessions."""
    resolved: Path | None = Path(path) if path else None
    return load_criteria_bank(resolved, lang=lang)


def _theme_number(criterion_id: str) -> int | None:
    head, _, _ = criterion_id.partition(".")
    try:
        return int(head)
    except ValueError:
        return None


__all__ = ["DEFAULT_CRITERIA_BANK", "get_criteria_bank", "load_criteria_bank"]
