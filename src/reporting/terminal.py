"""Rich console rendering of audit lifecycle events."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from rich.console import Console
from rich.table import Table

from pipelines.audit.contracts import TerminalReporter
from rgaa.i18n import get_translator
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import (
    STATUS_CONFORM,
    STATUS_ERROR,
    STATUS_NON_APPLICABLE,
    STATUS_NOT_CONFORM,
    STATUS_REVIEW,
    Evaluation,
    PageResult,
)

if TYPE_CHECKING:
    from services.audit_session import AuditOutcome

_STATUS_STYLES = {
    STATUS_CONFORM: "green",
    STATUS_NOT_CONFORM: "red",
    STATUS_NON_APPLICABLE: "dim",
    STATUS_ERROR: "yellow",
    STATUS_REVIEW: "magenta",
}


class RichTerminalReporter(TerminalReporter):
    def __init__(
        self,
        console: Optional[Console] = None,
        *,
        lang: str = "fr",
        verbose: bool = False,
    ) -> None:
        self.console = console or Console(stderr=True)
        self._i18n = get_translator(lang)
        self._verbose = verbose
        self._page_label = ""

    def on_session_start(
        self, pages: Sequence[str], criteria: Sequence[Criterion], *, resumed: int
    ) -> None:
        self.console.print(
            f"[bold]RGAA audit[/bold]: {len(pages)} page(s), {len(criteria)} criteria"
        )
        if resumed:
            self.console.print(f"Resuming after {resumed} completed page(s)")

    def on_page_start(self, index: int, total: int, url: str) -> None:
        self._page_label = f"[{index + 1}/{total}]"
        self.console.rule(f"{self._page_label} {url}")

    def on_stage_start(self, url: str, stage: str) -> None:
        if self._verbose:
            self.console.print(f"  [dim]{stage}[/dim]")

    def on_criterion(self, url: str, criterion: Criterion, evaluation: Evaluation) -> None:
        if not self._verbose:
            return
        style = _STATUS_STYLES.get(evaluation.status, "white")
        label = self._i18n.status_label(evaluation.status)
        self.console.print(f"  {criterion.id:<6} [{style}]{label}[/{style}]")

    def on_page_end(self, index: int, url: str, result: PageResult, *, failed: bool) -> None:
        counts: dict[str, int] = {}
        for item in result.results:
            counts[item.status] = counts.get(item.status, 0) + 1
        parts = [
            f"[{_STATUS_STYLES[status]}]{self._i18n.status_label(status)}: {count}[/]"
            for status, count in counts.items()
        ]
        prefix = "[red]page failed[/red] " if failed else ""
        self.console.print(f"{self._page_label} {prefix}" + "  ".join(parts))

    def on_pause(self, reason: str | None) -> None:
        self.console.print(
            f"[yellow]Paused[/yellow]: {reason or 'requested'}. Press Enter to resume."
        )

    def on_resume(self) -> None:
        self.console.print("[green]Resumed[/green]")

    def on_error(self, message: str, error: BaseException | None = None) -> None:
        self.console.print(f"[yellow]warning[/yellow] {message}", highlight=False)

    def on_done(self, outcome: "AuditOutcome") -> None:
        i18n = self._i18n
        table = Table(title=i18n.summary_title())
        table.add_column(i18n.global_status())
        table.add_column("#", justify="right")
        counts = outcome.counts
        for status, value in (
            (STATUS_CONFORM, counts.conform),
            (STATUS_NOT_CONFORM, counts.not_conform),
            (STATUS_NON_APPLICABLE, counts.non_applicable),
            (STATUS_REVIEW, counts.review),
            (STATUS_ERROR, counts.error),
        ):
            table.add_row(i18n.status_label(status), str(value))
        self.console.print(table)
        self.console.print(f"{i18n.global_score()}: [bold]{outcome.global_score:.2%}[/bold]")
        errors = outcome.errors
        if errors.has_errors:
            self.console.print(
                f"{i18n.pages_failed()}: {errors.pages_failed}  "
                f"{i18n.ai_failures()}: {errors.ai_failed}  "
                f"Errors: {errors.criteria_errored}"
            )
        if outcome.out_path is not None:
            self.console.print(f"Report: {outcome.out_path}")


__all__ = ["RichTerminalReporter"]
