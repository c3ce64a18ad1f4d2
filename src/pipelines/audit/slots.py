"""Per-page result slots with exactly-once reporting."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence

from rgaa.i18n import get_translator
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import STATUS_ERROR, CriterionResult, Evaluation

ReportHook = Callable[[str, Criterion, Evaluation], None]


class ResultSlots:
    """One mutable slot per criterion, in session order.

    Slots may be overwritten any number of times (batch, fallback, retry) but a
    criterion is handed to the report hook at most once.
    """

    def __init__(
        self,
        url: str,
        criteria: Sequence[Criterion],
        on_report: Optional[ReportHook] = None,
        *,
        lang: str = "fr",
    ) -> None:
        self.url = url
        self.criteria = list(criteria)
        self._index: Dict[str, int] = {c.id: i for i, c in enumerate(self.criteria)}
        self._slots: List[Optional[Evaluation]] = [None] * len(self.criteria)
        self._reported: set[int] = set()
        self._on_report = on_report
        self._missing_note = get_translator(lang).missing_evaluation()
    def __len__(self) -> int:
        return len(self._slots)

    def get(self, criterion_id: str) -> Optional[Evaluation]:
        return self._slots[self._index[criterion_id]]

    def set(self, criterion_id: str, evaluation: Evaluation) -> None:
        self._slots[self._index[criterion_id]] = evaluation

    def is_reported(self, criterion_id: str) -> bool:
        return self._index[criterion_id] in self._reported

    @property
    def reported_count(self) -> int:
        return len(self._reported)

    def report(self, criterion_id: str) -> bool:
        index = self._index[criterion_id]
        evaluation = self._slots[index]
        if evaluation is None or index in self._reported:
            return False
        self._reported.add(index)
        if self._on_report is not None:
            self._on_report(self.url, self.criteria[index], evaluation)
        return True

    def set_and_report(self, criterion_id: str, evaluation: Evaluation) -> bool:
        self.set(criterion_id, evaluation)
        return self.report(criterion_id)

    def sweep(self) -> int:
        """Fill gaps with Error rows and report everything not yet reported."""
        reported = 0
        for index, criterion in enumerate(self.criteria):
            if self._slots[index] is None:
                self._slots[index] = Evaluation(status=STATUS_ERROR, notes=self._missing_note)
            if self.report(criterion.id):
                reported += 1
        return reported

    def to_results(self) -> List[CriterionResult]:
        results = []
        for criterion, evaluation in zip(self.criteria, self._slots):
            if evaluation is None:
                evaluation = Evaluation(status=STATUS_ERROR, notes=self._missing_note)
            results.append(CriterionResult(criterion=criterion, evaluation=evaluation))
        return results


__all__ = ["ReportHook", "ResultSlots"]
