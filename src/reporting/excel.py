"""XLSX audit report: per-page status matrix plus a summary sheet."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.comments import Comment
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from pipelines.audit.summary import compute_error_summary
from rgaa.i18n import Translator, get_translator
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import (
    STATUS_CONFORM,
    STATUS_ERROR,
    STATUS_NON_APPLICABLE,
    STATUS_NOT_CONFORM,
    STATUS_REVIEW,
    CriterionResult,
    PageResult,
)
from schemas.internal.summary import GlobalSummary

logger = logging.getLogger(__name__)

MATRIX_SHEET = "Matrix"
SUMMARY_SHEET = "Summary"
NOTE_MAX_CHARS = 800
_NOTE_MAX_EXAMPLES = 3

_STATUS_VALUES = {
    STATUS_CONFORM: 1,
    STATUS_NON_APPLICABLE: 0,
    STATUS_NOT_CONFORM: -1,
    STATUS_REVIEW: -1,
    STATUS_ERROR: -2,
}

_STATUS_FILLS = {
    STATUS_CONFORM: "FFDCFCE7",
    STATUS_NOT_CONFORM: "FFFEE2E2",
    STATUS_NON_APPLICABLE: "FFF1F5F9",
    STATUS_ERROR: "FFFFEDD5",
    STATUS_REVIEW: "FFEDE9FE",
}
_HEADER_FILL = PatternFill("solid", fgColor="FF0F172A")
_HEADER_FONT = Font(bold=True, color="FFFFFFFF")


def status_value(status: Optional[str]) -> int:
    """C=1, NA=0, NC and Review=-1, Error or missing=-2."""
    if status is None:
        return -2
    return _STATUS_VALUES.get(status, -1)


def build_cell_note(result: Optional[CriterionResult], i18n: Translator) -> str:
    if result is None:
        return ""
    evaluation = result.evaluation
    summary = " ".join(evaluation.notes.split())
    if evaluation.ai is not None and evaluation.ai.rationale:
        summary = i18n.ai_note(evaluation.ai.confidence, " ".join(evaluation.ai.rationale.split()))

    label = i18n.status_label(evaluation.status)
    lines = [f"{label}: {summary}" if summary else label]
    evidence = [" ".join(item.split()) for item in (evaluation.ai.evidence if evaluation.ai else [])]
    evidence = [item for item in evidence if item]
    if evidence:
        lines.append(i18n.evidence_label())
        lines.extend(f"- {item}" for item in evidence)
    examples = [" ".join(item.split()) for item in evaluation.examples]
    examples = [item for item in examples if item]
    if examples:
        lines.append(i18n.examples_label())
        lines.extend(f"- {item}" for item in examples[:_NOTE_MAX_EXAMPLES])
    return "\n".join(lines)[:NOTE_MAX_CHARS]


class ExcelReportWriter:
    """ReportWriter that rewrites the workbook after every page and at the end."""

    def __init__(self, out_path: Path, *, lang: str = "fr", pages: Sequence[str] = ()) -> None:
        self.out_path = Path(out_path)
        self.pages = list(pages)
        self._i18n = get_translator(lang)
        self.writes = 0

    def write(
        self,
        page_results: Sequence[PageResult],
        criteria: Sequence[Criterion],
        summary: GlobalSummary,
        *,
        final: bool,
    ) -> None:
        workbook = Workbook()
        workbook.remove(workbook.active)
        self._write_matrix(workbook.create_sheet(title=MATRIX_SHEET), page_results, criteria, summary)
        self._write_summary(workbook.create_sheet(title=SUMMARY_SHEET), page_results, summary, final=final)
        self._save(workbook)
        self.writes += 1
        logger.debug("Report written to %s (final=%s)", self.out_path, final)

    def _write_matrix(
        self,
        sheet: Worksheet,
        page_results: Sequence[PageResult],
        criteria: Sequence[Criterion],
        summary: GlobalSummary,
    ) -> None:
        i18n = self._i18n
        labels = [f"P{index + 1}" for index in range(len(page_results))]
        header = [*i18n.matrix_header(), *labels, i18n.global_status()]
        sheet.append(header)
        sheet.append(["", "", i18n.url_label(), *(page.url for page in page_results), ""])
        for cell in sheet[1]:
            cell.fill = _HEADER_FILL
            cell.font = _HEADER_FONT
        sheet.freeze_panes = "D3"
        sheet.auto_filter.ref = f"A1:{get_column_letter(len(header))}1"

        by_page: List[Dict[str, CriterionResult]] = [
            {item.criterion.id: item for item in page.results} for page in page_results
        ]
        global_status = summary.status_by_id()

        for criterion in criteria:
            row_results = [lookup.get(criterion.id) for lookup in by_page]
            folded = global_status.get(criterion.id)
            sheet.append(
                [
                    criterion.id,
                    criterion.theme,
                    criterion.title,
                    *(status_value(res.status if res else None) for res in row_results),
                    i18n.status_label(folded) if folded else "",
                ]
            )
            row_index = sheet.max_row
            for offset, res in enumerate(row_results):
                cell = sheet.cell(row=row_index, column=4 + offset)
                status = res.status if res else STATUS_ERROR
                cell.fill = PatternFill("solid", fgColor=_STATUS_FILLS[status])
                note = build_cell_note(res, i18n)
                if note:
                    cell.comment = Comment(note, "rgaa-audit")

        _set_widths(sheet, [7, 22, 64, *([6] * len(labels)), 18])

    def _write_summary(
        self,
        sheet: Worksheet,
        page_results: Sequence[PageResult],
        summary: GlobalSummary,
        *,
        final: bool,
    ) -> None:
        i18n = self._i18n
        errors = compute_error_summary(page_results)
        counts = summary.counts
        sheet.append([i18n.summary_title()])
        sheet["A1"].font = Font(bold=True, size=14)
        rows: Iterable[List[Any]] = [
            [i18n.generated_at(), datetime.now(timezone.utc).isoformat(timespec="seconds")],
            [i18n.pages_audited(), _pages_label(len(page_results), len(self.pages), final)],
            [i18n.global_score(), summary.score],
            [i18n.pages_failed(), errors.pages_failed],
            [i18n.ai_failures(), errors.ai_failed],
            [],
            [i18n.global_status()],
            [i18n.status_label(STATUS_CONFORM), counts.conform],
            [i18n.status_label(STATUS_NOT_CONFORM), counts.not_conform],
            [i18n.status_label(STATUS_NON_APPLICABLE), counts.non_applicable],
            [i18n.status_label(STATUS_REVIEW), counts.review],
            [i18n.status_label(STATUS_ERROR), counts.error],
            [],
            [i18n.legend()],
            [1, i18n.status_label(STATUS_CONFORM)],
            [0, i18n.status_label(STATUS_NON_APPLICABLE)],
            [-1, f"{i18n.status_label(STATUS_NOT_CONFORM)} / {i18n.status_label(STATUS_REVIEW)}"],
            [-2, i18n.status_label(STATUS_ERROR)],
        ]
        for row in rows:
            sheet.append(row)
        _set_widths(sheet, [36, 28])

    def _save(self, workbook: Workbook) -> None:
        self.out_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.out_path.with_name(f".{self.out_path.name}.tmp")
        workbook.save(tmp_path)
        os.replace(tmp_path, self.out_path)


def _pages_label(done: int, planned: int, final: bool) -> Any:
    if final or not planned:
        return done
    return f"{done}/{planned}"


def _set_widths(sheet: Worksheet, widths: Sequence[float]) -> None:
    for index, width in enumerate(widths, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = width


__all__ = [
    "ExcelReportWriter",
    "MATRIX_SHEET",
    "NOTE_MAX_CHARS",
    "SUMMARY_SHEET",
    "build_cell_note",
    "status_value",
]
