"""French/English labels for report notes and spreadsheet headers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from core.config import ReportLang, normalize_report_lang

_STATUS_LABELS: dict[str, dict[str, str]] = {
    "fr": {
        "Conform": "Conforme",
        "Not conform": "Non conforme",
        "Non applicable": "Non applicable",
        "Error": "Erreur",
        "Review": "Revue IA",
    },
    "en": {
        "Conform": "Conform",
        "Not conform": "Not conform",
        "Non applicable": "Non applicable",
        "Error": "Error",
        "Review": "AI review",
    },
}


@dataclass(frozen=True)
class Translator:
    lang: ReportLang

    def t(self, fr: str, en: str) -> str:
        return en if self.lang == "en" else fr

    def status_label(self, status: str) -> str:
        return _STATUS_LABELS[self.lang].get(status, status)

    # notes
    def ai_review_label(self) -> str:
        return self.t("Revue IA", "AI review")

    def ai_failed(self) -> str:
        return self.t("Revue IA échouée", "AI review failed")

    def ai_note(self, confidence: float, rationale: str) -> str:
        return f"{self.ai_review_label()} ({confidence:.2f}): {rationale}"

    def missing_evaluation(self) -> str:
        return self.t("Évaluation manquante.", "Missing evaluation.")

    def cross_page_pending(self) -> str:
        return self.t(
            "Revue requise : nécessite une seconde passe inter-pages.",
            "Review required: requires a second, cross-page pass.",
        )

    def multi_page_manual(self) -> str:
        return self.t(
            "Revue requise : critère multi-pages à vérifier manuellement sur l'ensemble du site.",
            "Review required: multi-page criterion to check manually across the site.",
        )

    def single_page_only(self) -> str:
        return self.t(
            "Revue requise : critère multi-pages évalué sur une seule page.",
            "Review required: multi-page criterion evaluated on a single page.",
        )

    def cross_page_failed(self) -> str:
        return self.t("Revue inter-pages échouée", "Cross-page review failed")

    # spreadsheet
    def matrix_header(self) -> list[str]:
        return ["ID", self.t("Thème", "Theme"), self.t("Critère", "Criterion")]

    def summary_title(self) -> str:
        return self.t("Synthèse audit RGAA", "RGAA Audit Summary")

    def generated_at(self) -> str:
        return self.t("Généré le", "Generated at")

    def pages_audited(self) -> str:
        return self.t("Pages auditées", "Pages audited")

    def global_score(self) -> str:
        return self.t("Score global (C / (C+NC))", "Global score (C / (C+NC))")

    def pages_failed(self) -> str:
        return self.t("Pages en échec", "Pages failed")

    def ai_failures(self) -> str:
        return self.t("Échecs IA", "AI failures")

    def global_status(self) -> str:
        return self.t("Statut global", "Global status")

    def url_label(self) -> str:
        return "URL"

    def evidence_label(self) -> str:
        return self.t("Preuves :", "Evidence:")

    def examples_label(self) -> str:
        return self.t("Exemples :", "Examples:")

    def legend(self) -> str:
        return self.t("Légende", "Legend")


@lru_cache(maxsize=2)
def get_translator(lang: str | None = None) -> Translator:
    return Translator(lang=normalize_report_lang(lang))


__all__ = ["Translator", "get_translator"]
