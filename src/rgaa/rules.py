"""Deterministic RGAA checks over a page snapshot.

Only a subset of criteria can be decided from static evidence. Everything else
is either ``Non applicable`` (the theme has no matching elements on the page) or
flagged as an AI candidate with a ``Review`` status.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Mapping

from rgaa.i18n import Translator, get_translator
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import (
    STATUS_CONFORM,
    STATUS_ERROR,
    STATUS_NON_APPLICABLE,
    STATUS_NOT_CONFORM,
    STATUS_REVIEW,
    Evaluation,
)

logger = logging.getLogger(__name__)

Snapshot = Mapping[str, Any]
Rule = Callable[[Snapshot, Translator], Evaluation]

_GENERIC_LINK_TEXTS = {
    "cliquez ici",
    "ici",
    "lire la suite",
    "lire plus",
    "en savoir plus",
    "plus",
    "voir plus",
    "voir",
    "découvrir",
    "decouvrir",
    "suite",
    "details",
    "détails",
    "accéder",
    "acceder",
    "click here",
    "read more",
    "learn more",
    "more",
    "here",
}
_GENERIC_LINK_SYMBOLS = {"+", "→", ">>", ">"}
_PUNCTUATION_RE = re.compile(r"[’'\".,:;!?()\[\]{}]")
_LANG_CODE_RE = re.compile(r"^[A-Za-z]{2,3}(?:-[A-Za-z0-9]{2,8})*$")
_LIST_PARENTS = {"ul", "ol", "menu"}


def _normalize_text(text: object) -> str:
    cleaned = _PUNCTUATION_RE.sub("", str(text or "").lower())
    return " ".join(cleaned.split())


def _clip(text: object, limit: int = 80) -> str:
    cleaned = " ".join(str(text or "").split())
    if len(cleaned) <= limit:
        return cleaned
    return cleaned[: max(0, limit - 1)] + "…"


def _examples(items: Iterable[Any], formatter: Callable[[Any], str], limit: int = 3) -> List[str]:
    out: List[str] = []
    for item in items:
        if len(out) >= limit:
            break
        text = formatter(item)
        if text:
            out.append(text)
    return out


def _items(snapshot: Snapshot, key: str) -> List[Dict[str, Any]]:
    value = snapshot.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def is_valid_lang_code(lang: str) -> bool:
    return bool(lang) and bool(_LANG_CODE_RE.match(lang.strip()))


def _conform(notes: str = "") -> Evaluation:
    return Evaluation(status=STATUS_CONFORM, notes=notes, automated=True)


def _not_conform(notes: str, examples: List[str] | None = None) -> Evaluation:
    return Evaluation(
        status=STATUS_NOT_CONFORM, notes=notes, examples=examples or [], automated=True
    )


def _not_applicable(notes: str) -> Evaluation:
    return Evaluation(status=STATUS_NON_APPLICABLE, notes=notes, automated=True)


def images_have_alt(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    images = _items(snapshot, "images")
    if not images:
        visual = snapshot.get("visual") or {}
        counts = {
            "background-image CSS": int(visual.get("cssBackgroundImages") or 0),
            "<svg>": int(visual.get("svg") or 0),
            "<canvas>": int(visual.get("canvas") or 0),
            "<picture>": int(visual.get("picture") or 0),
        }
        parts = [f"{count} {label}" for label, count in counts.items() if count > 0]
        if parts:
            joined = ", ".join(parts)
            return Evaluation(
                status=STATUS_REVIEW,
                notes=i18n.t(
                    f"Aucune balise <img> détectée, mais des visuels non-<img> existent ({joined}).",
                    f"No <img> found, but non-<img> visuals exist ({joined}).",
                ),
                automated=False,
                ai_candidate=True,
            )
        return _not_applicable(
            i18n.t(
                'Aucune balise <img> (ou role="img") détectée dans le DOM.',
                'No <img> or role="img" found in the DOM.',
            )
        )

    missing = [
        img
        for img in images
        if img.get("tag") == "img" and img.get("alt") is None and not img.get("ariaHidden")
    ]
    if missing:
        return _not_conform(
            i18n.t(
                f"{len(missing)} <img> sans attribut alt.",
                f"{len(missing)} <img> without alt attribute.",
            ),
            _examples(
                missing,
                lambda img: f"img alt=(missing) role={img.get('role') or '(none)'} "
                f"name={_clip(img.get('name'), 40) or '(empty)'}",
            ),
        )

    empty = [
        img
        for img in images
        if img.get("tag") == "img"
        and isinstance(img.get("alt"), str)
        and not img["alt"].strip()
        and not img.get("ariaHidden")
        and img.get("role") != "presentation"
    ]
    if empty:
        return _not_conform(
            i18n.t(
                f"{len(empty)} <img> avec alt vide (vérifier décoratif vs informatif).",
                f"{len(empty)} <img> with empty alt (verify decorative vs informative).",
            ),
            _examples(empty, lambda img: f'img alt="" name={_clip(img.get("name"), 50) or "(empty)"}'),
        )

    unnamed = [
        img
        for img in images
        if img.get("tag") != "img" and img.get("role") == "img" and not img.get("name")
    ]
    if unnamed:
        return _not_conform(
            i18n.t(
                f'{len(unnamed)} role="img" sans nom accessible.',
                f'{len(unnamed)} role="img" without accessible name.',
            ),
            _examples(unnamed, lambda _img: 'role="img" name=(empty)'),
        )
    return _conform()


def frames_have_title(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    frames = _items(snapshot, "frames")
    if not frames:
        return _not_applicable(i18n.t("Aucun cadre (frame/iframe) détecté.", "No frames/iframes found."))
    missing = [
        frame
        for frame in frames
        if not frame.get("title") and not frame.get("ariaLabel") and not frame.get("ariaLabelledby")
    ]
    if missing:
        return _not_conform(
            i18n.t(
                f"{len(missing)} frame(s) sans title (ou nom ARIA).",
                f"{len(missing)} frame(s) missing title.",
            ),
            _examples(missing, lambda frame: f"iframe src={_clip(frame.get('src'), 50) or '(none)'}", 2),
        )
    return _conform()


def links_are_explicit(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    links = _items(snapshot, "links")
    if not links:
        return _not_applicable(i18n.t("Aucun lien détecté.", "No links found."))
    generic = []
    for link in links:
        name = _normalize_text(link.get("name"))
        if name and (name in _GENERIC_LINK_TEXTS or name in _GENERIC_LINK_SYMBOLS):
            generic.append(link)
    if generic:
        return _not_conform(
            i18n.t(
                f"{len(generic)} lien(s) avec libellé générique (vérifier explicitation).",
                f"{len(generic)} link(s) with generic label (review explicitness).",
            ),
            _examples(
                generic,
                lambda link: f'"{_clip(link.get("name"), 28)}" → {_clip(link.get("href"), 46) or "(missing href)"}',
            ),
        )
    return _conform()


def links_have_name(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    links = _items(snapshot, "links")
    if not links:
        return _not_applicable(i18n.t("Aucun lien détecté.", "No links found."))
    missing = [link for link in links if not link.get("name")]
    if missing:
        return _not_conform(
            i18n.t(
                f"{len(missing)} lien(s) sans nom accessible.",
                f"{len(missing)} link(s) without accessible name.",
            ),
            _examples(missing, lambda link: f"a href={_clip(link.get('href'), 50) or '(missing)'} text=(empty)"),
        )
    return _conform()


def doctype_present(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    if snapshot.get("doctype"):
        return _conform()
    return _not_conform(
        i18n.t("Doctype du document manquant.", "Missing document doctype."),
        ["<!doctype html>"],
    )


def default_lang_present(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    if str(snapshot.get("lang") or "").strip():
        return _conform()
    return _not_conform(
        i18n.t("Attribut lang manquant sur <html>.", "Missing lang attribute on <html>."),
        [i18n.t('Ex: <html lang="fr">…</html>', 'E.g.: <html lang="en">…</html>')],
    )


def default_lang_valid(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    lang = str(snapshot.get("lang") or "").strip()
    if not lang:
        return _not_applicable(i18n.t("Aucune langue par défaut déclarée.", "No default lang declared."))
    if is_valid_lang_code(lang):
        return _conform()
    return _not_conform(i18n.t(f"Code lang invalide : {lang}", f"Invalid lang code: {lang}"))


def title_present(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    if str(snapshot.get("title") or "").strip():
        return _conform()
    return _not_conform(i18n.t("<title> manquant.", "Missing <title>."))


def _lang_changes(snapshot: Snapshot) -> List[str]:
    value = snapshot.get("langChanges")
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def lang_changes_declared(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    if not _lang_changes(snapshot):
        return _not_applicable(i18n.t("Aucun changement de langue détecté.", "No language changes detected."))
    return _conform(
        i18n.t(
            "Changements de langue déclarés via des attributs lang (vérification manuelle recommandée).",
            "Language changes are declared via lang attributes (manual verification recommended).",
        )
    )


def lang_changes_valid(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    changes = _lang_changes(snapshot)
    if not changes:
        return _not_applicable(i18n.t("Aucun changement de langue détecté.", "No language changes detected."))
    invalid = [lang for lang in changes if not is_valid_lang_code(lang)]
    if invalid:
        joined = ", ".join(invalid)
        return _not_conform(i18n.t(f"Codes lang invalides : {joined}", f"Invalid lang codes: {joined}"))
    return _conform()


def heading_structure(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    headings = _items(snapshot, "headings")
    if not headings:
        return _not_conform(i18n.t("Aucun titre (Hn) détecté.", "No headings found."))

    levels = [int(heading.get("level") or 0) for heading in headings]
    h1_count = levels.count(1)
    if h1_count == 0:
        return _not_conform(
            i18n.t("H1 manquant.", "Missing H1."),
            _examples(headings[:4], lambda h: f"h{h.get('level')}: {_clip(h.get('text'), 40) or '(empty)'}"),
        )
    if h1_count > 1:
        return _not_conform(i18n.t(f"Plusieurs H1 ({h1_count}).", f"Multiple H1 ({h1_count})."))

    for previous, current in zip(levels, levels[1:]):
        if current - previous > 1:
            return _not_conform(
                i18n.t("Sauts de niveaux de titres détectés.", "Heading level jumps detected."),
                _examples(headings[:6], lambda h: f"h{h.get('level')}: {_clip(h.get('text'), 34) or '(empty)'}"),
            )
    return _conform()


def list_structure(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    items = _items(snapshot, "listItems")
    if not items:
        return _not_applicable(i18n.t("Aucun élément de liste détecté.", "No list items found."))
    invalid = [item for item in items if item.get("parent") not in _LIST_PARENTS]
    if invalid:
        return _not_conform(
            i18n.t(
                f"{len(invalid)} élément(s) <li> hors liste.",
                f"{len(invalid)} list item(s) not in a list.",
            ),
            _examples(invalid, lambda item: f"li parent=<{item.get('parent') or 'unknown'}>"),
        )
    return _conform()


def form_labels(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    controls = _items(snapshot, "formControls")
    if not controls:
        return _not_applicable(i18n.t("Aucun champ de formulaire détecté.", "No form controls found."))
    missing = [control for control in controls if not control.get("label")]
    if missing:
        return _not_conform(
            i18n.t(
                f"{len(missing)} champ(s) sans libellé.",
                f"{len(missing)} form control(s) without label.",
            ),
            _examples(missing, _describe_control),
        )
    return _conform()


def _describe_control(control: Mapping[str, Any]) -> str:
    tag = control.get("tag") or "input"
    kind = f"[type={control['type']}]" if control.get("type") else ""
    ident = f"#{control['id']}" if control.get("id") else ""
    name = f"[name={control['name']}]" if control.get("name") else ""
    return f'{tag}{kind}{ident}{name} label=""'


def skip_link(snapshot: Snapshot, i18n: Translator) -> Evaluation:
    links = _items(snapshot, "links")
    for link in links:
        href = str(link.get("href") or "")
        name = _normalize_text(link.get("name"))
        if href.startswith("#") and any(token in name for token in ("contenu", "skip", "principal", "content")):
            return _conform()
    anchors = [link for link in links if str(link.get("href") or "").startswith("#")]
    examples = (
        _examples(anchors, lambda link: f'"{_clip(link.get("name"), 24) or "(empty)"}" → {_clip(link.get("href"), 40)}')
        if anchors
        else [i18n.t('Ex: "Aller au contenu" → #main', 'E.g.: "Skip to content" → #main')]
    )
    return _not_conform(
        i18n.t(
            "Aucun lien d'évitement vers le contenu principal détecté.",
            "No skip link to main content detected.",
        ),
        examples,
    )


RULES: Dict[str, Rule] = {
    "1.1": images_have_alt,
    "2.1": frames_have_title,
    "6.1": links_are_explicit,
    "6.2": links_have_name,
    "8.1": doctype_present,
    "8.3": default_lang_present,
    "8.4": default_lang_valid,
    "8.5": title_present,
    "8.7": lang_changes_declared,
    "8.8": lang_changes_valid,
    "9.1": heading_structure,
    "9.3": list_structure,
    "11.1": form_labels,
    "12.7": skip_link,
}


def _has_media(snapshot: Snapshot) -> bool:
    media = snapshot.get("media") or {}
    return sum(int(media.get(key) or 0) for key in ("video", "audio", "object")) > 0


def _has_scripts(snapshot: Snapshot) -> bool:
    scripts = snapshot.get("scripts") or {}
    return int(scripts.get("scriptTags") or 0) > 0 or bool(scripts.get("hasInlineHandlers"))


THEME_APPLICABILITY: Dict[int, Callable[[Snapshot], bool]] = {
    1: lambda snapshot: bool(_items(snapshot, "images")),
    2: lambda snapshot: bool(_items(snapshot, "frames")),
    4: _has_media,
    5: lambda snapshot: bool(_items(snapshot, "tables")),
    6: lambda snapshot: bool(_items(snapshot, "links")),
    7: _has_scripts,
    11: lambda snapshot: bool(_items(snapshot, "formControls")),
}


class RgaaRuleEvaluator:
    """Default rule evaluator; pure and never raises."""

    def __init__(self, lang: str = "fr", rules: Mapping[str, Rule] | None = None) -> None:
        self._i18n = get_translator(lang)
        self._rules = dict(RULES if rules is None else rules)

    def evaluate(self, criterion: Criterion, snapshot: Snapshot) -> Evaluation:
        rule = self._rules.get(criterion.id)
        if rule is not None:
            try:
                return rule(snapshot, self._i18n)
            except Exception as exc:
                logger.exception("Rule %s crashed", criterion.id)
                return Evaluation(
                    status=STATUS_ERROR,
                    notes=f"Rule {criterion.id} failed: {exc}",
                    automated=True,
                )

        applies = THEME_APPLICABILITY.get(criterion.theme_number or 0)
        if applies is not None and not applies(snapshot):
            return Evaluation(
                status=STATUS_NON_APPLICABLE,
                notes=self._i18n.t("Non applicable pour cette page.", "Not applicable for this page."),
            )
        return Evaluation(
            status=STATUS_REVIEW,
            notes=self._i18n.t("Revue requise.", "Review required."),
            ai_candidate=True,
        )


__all__ = ["RULES", "RgaaRuleEvaluator", "THEME_APPLICABILITY", "is_valid_lang_code"]
