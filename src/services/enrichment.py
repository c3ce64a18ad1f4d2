"""Local enrichment: colour contrast and markup hints derived from snapshot samples."""

from __future__ import annotations

import asyncio
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from pipelines.audit.cancellation import CancellationToken

RGB = Tuple[float, float, float]

_HEX_RE = re.compile(r"^#([0-9a-f]{3,4}|[0-9a-f]{6}|[0-9a-f]{8})$", re.IGNORECASE)
_RGB_RE = re.compile(r"^rgba?\(\s*([^)]*)\)$", re.IGNORECASE)
_NAMED_COLORS = {
    "black": (0, 0, 0),
    "white": (255, 255, 255),
    "red": (255, 0, 0),
    "green": (0, 128, 0),
    "blue": (0, 0, 255),
    "gray": (128, 128, 128),
    "grey": (128, 128, 128),
    "silver": (192, 192, 192),
    "yellow": (255, 255, 0),
    "orange": (255, 165, 0),
    "navy": (0, 0, 128),
}

TEXT_CONTRAST_MIN = 4.5
UI_CONTRAST_MIN = 3.0


def parse_color(value: object) -> Optional[Tuple[RGB, float]]:
    """Parse hex, rgb()/rgba() or a basic named colour into ((r, g, b), alpha)."""
    raw = str(value or "").strip().lower()
    if not raw:
        return None
    if raw == "transparent":
        return (0.0, 0.0, 0.0), 0.0
    if raw in _NAMED_COLORS:
        r, g, b = _NAMED_COLORS[raw]
        return (float(r), float(g), float(b)), 1.0

    match = _HEX_RE.match(raw)
    if match:
        digits = match.group(1)
        if len(digits) in (3, 4):
            digits = "".join(ch * 2 for ch in digits)
        r, g, b = (int(digits[i : i + 2], 16) for i in (0, 2, 4))
        alpha = int(digits[6:8], 16) / 255 if len(digits) == 8 else 1.0
        return (float(r), float(g), float(b)), alpha

    match = _RGB_RE.match(raw)
    if match:
        parts = [p for p in re.split(r"[\s,/]+", match.group(1).strip()) if p]
        if len(parts) < 3:
            return None
        try:
            channels = [_channel(part) for part in parts[:3]]
            alpha = _alpha(parts[3]) if len(parts) > 3 else 1.0
        except ValueError:
            return None
        return (channels[0], channels[1], channels[2]), alpha
    return None


def _channel(token: str) -> float:
    if token.endswith("%"):
        return max(0.0, min(255.0, float(token[:-1]) * 2.55))
    return max(0.0, min(255.0, float(token)))


def _alpha(token: str) -> float:
    if token.endswith("%"):
        return max(0.0, min(1.0, float(token[:-1]) / 100))
    return max(0.0, min(1.0, float(token)))


def relative_luminance(rgb: RGB) -> float:
    def linear(channel: float) -> float:
        c = channel / 255
        return c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4

    r, g, b = (linear(c) for c in rgb)
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_ratio(first: RGB, second: RGB) -> float:
    lighter, darker = sorted((relative_luminance(first), relative_luminance(second)), reverse=True)
    return (lighter + 0.05) / (darker + 0.05)


def _font_size_px(value: object) -> Optional[float]:
    match = re.search(r"([0-9.]+)", str(value or ""))
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def _is_bold(weight: object) -> bool:
    raw = str(weight or "").strip()
    if "bold" in raw.lower():
        return True
    return raw.isdigit() and int(raw) >= 700


def classify_contrast(ratio: float, font_size: object = None, font_weight: object = None) -> Dict[str, bool]:
    size = _font_size_px(font_size)
    large = size is not None and (size >= 24 or (size >= 18.66 and _is_bold(font_weight)))
    return {
        "aa": ratio >= (3 if large else 4.5),
        "aaa": ratio >= (4.5 if large else 7),
        "largeText": large,
    }


def analyze_contrast(samples: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    results: List[Dict[str, Any]] = []
    for sample in samples or []:
        fg = parse_color(sample.get("color"))
        bg = parse_color(sample.get("backgroundColor"))
        if fg is None or bg is None:
            continue
        results.append(
            {
                "text": sample.get("text"),
                "selector": sample.get("selector"),
                "ratio": round(contrast_ratio(fg[0], bg[0]), 2),
                "color": sample.get("color"),
                "backgroundColor": sample.get("backgroundColor"),
                "fontSize": sample.get("fontSize"),
                "fontWeight": sample.get("fontWeight"),
            }
        )
    worst = min(results, key=lambda item: item["ratio"]) if results else None
    return {
        "sampleCount": len(results),
        "failingCount": sum(1 for item in results if item["ratio"] < TEXT_CONTRAST_MIN),
        "worstSample": worst,
        "worstClassification": (
            classify_contrast(worst["ratio"], worst.get("fontSize"), worst.get("fontWeight"))
            if worst
            else None
        ),
    }


def analyze_ui_contrast(samples: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    results: List[Dict[str, Any]] = []
    for sample in samples or []:
        parent = parse_color(sample.get("parentBackgroundColor"))
        if parent is None:
            continue
        component: Optional[Tuple[RGB, float]] = None
        source = ""
        for key, label in (("backgroundColor", "background"), ("borderColor", "border"), ("color", "text")):
            parsed = parse_color(sample.get(key))
            if parsed is not None and parsed[1] > 0:
                component, source = parsed, label
                break
        if component is None:
            continue
        results.append(
            {
                "text": sample.get("text"),
                "selector": sample.get("selector"),
                "role": sample.get("role"),
                "ratio": round(contrast_ratio(component[0], parent[0]), 2),
                "source": source,
            }
        )
    worst = min(results, key=lambda item: item["ratio"]) if results else None
    return {
        "sampleCount": len(results),
        "failingCount": sum(1 for item in results if item["ratio"] < UI_CONTRAST_MIN),
        "worstSample": worst,
    }


def analyze_html_hints(html_snippet: str) -> Optional[Dict[str, int]]:
    if not html_snippet:
        return None
    soup = BeautifulSoup(html_snippet, "html.parser")
    animated = [
        tag
        for tag in soup.find_all(style=True)
        if "animation" in tag["style"] or "transition" in tag["style"]
    ]
    return {
        "marqueeCount": len(soup.find_all("marquee")),
        "blinkCount": len(soup.find_all("blink")),
        "inlineAnimationCount": len(animated),
        "targetBlankLinks": len(soup.find_all("a", target="_blank")),
        "downloadLinks": len(soup.find_all("a", download=True)),
        "autoplayMedia": len(soup.find_all(["video", "audio"], autoplay=True)),
    }


def build_enrichment(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "contrast": analyze_contrast(payload.get("styleSamples") or []),
        "uiContrast": analyze_ui_contrast(payload.get("uiSamples") or []),
        "htmlHints": analyze_html_hints(str(payload.get("htmlSnippet") or "")),
    }


class LocalEnricher:
    """Enricher that computes everything in-process off the event loop."""

    def __init__(self) -> None:
        self.calls = 0

    async def enrich(
        self, payload: Mapping[str, Any], *, url: str, token: CancellationToken
    ) -> Dict[str, Any]:
        token.raise_if_cancelled()
        self.calls += 1
        return await asyncio.to_thread(build_enrichment, dict(payload))


__all__ = [
    "LocalEnricher",
    "analyze_contrast",
    "analyze_html_hints",
    "analyze_ui_contrast",
    "build_enrichment",
    "classify_contrast",
    "contrast_ratio",
    "parse_color",
]
