from __future__ import annotations

import io

from rich.console import Console

from audit_fakes import make_criteria
from reporting.terminal import RichTerminalReporter
from schemas.internal.evaluations import CriterionResult, Evaluation, PageResult


def _reporter(verbose: bool = False) -> tuple[RichTerminalReporter, io.StringIO]:
    buffer = io.StringIO()
    console = Console(file=buffer, width=120, color_system=None)
    return RichTerminalReporter(console, lang="en", verbose=verbose), buffer


def test_page_end_prints_status_counts() -> None:
    reporter, buffer = _reporter()
    criteria = make_criteria("1.1", "1.2", "1.3")
    result = PageResult(
        url="https://a.test/",
        snapshot=None,
        results=[
            CriterionResult(criterion=c, evaluation=Evaluation(status="Error"))
            for c in criteria
        ],
    )

    reporter.on_page_start(0, 2, "https://a.test/")
    reporter.on_page_end(0, "https://a.test/", result, failed=True)

    output = buffer.getvalue()
    assert "[1/2]" in output
    assert "page failed" in output
    assert "Error: 3" in output


def test_criteria_only_printed_when_verbose() -> None:
    quiet, quiet_buffer = _reporter()
    loud, loud_buffer = _reporter(verbose=True)
    criterion = make_criteria("8.5")[0]

    quiet.on_criterion("u", criterion, Evaluation(status="Conform"))
    loud.on_criterion("u", criterion, Evaluation(status="Review"))

    assert quiet_buffer.getvalue() == ""
    assert "8.5" in loud_buffer.getvalue()
    assert "AI review" in loud_buffer.getvalue()


def test_pause_and_resume_messages() -> None:
    reporter, buffer = _reporter()

    reporter.on_pause("batch 1/2: timed out")
    reporter.on_resume()

    assert "Paused: batch 1/2: timed out" in buffer.getvalue()
    assert "Resumed" in buffer.getvalue()
