"""`rgaa-audit run`: audit a list of pages into an XLSX report."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console

from cli.common import collect_pages, configure_logging, emit_json
from core.config import Settings, build_audit_config, get_settings
from core.errors import (
    AuditCancelledError,
    CancelReason,
    PageFailure,
    ResumeIncompatibilityError,
    format_page_failure,
)
from persistence.resume import default_state_path
from pipelines.audit.cancellation import CancellationToken, PauseController
from reporting.excel import ExcelReportWriter
from reporting.terminal import RichTerminalReporter
from services.audit_session import AuditOutcome, run_audit
from services.enrichment import LocalEnricher
from services.snapshots import DirectorySnapshotCollector

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


def run(
    pages: Optional[list[str]] = typer.Option(
        None,
        "--pages",
        "-p",
        help="Page URL(s); repeatable and/or comma separated.",
    ),
    pages_file: Optional[Path] = typer.Option(
        None,
        "--pages-file",
        help="File with one page per line (# starts a comment).",
    ),
    snapshots_dir: Path = typer.Option(
        Path("snapshots"),
        "--snapshots-dir",
        help="Directory of pre-captured page snapshots (<slug>.json).",
    ),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="XLSX report path (default: rgaa-audit-<timestamp>.xlsx).",
    ),
    xlsx: bool = typer.Option(True, "--xlsx/--no-xlsx", help="Write the XLSX report."),
    report_lang: Optional[str] = typer.Option(
        None, "--report-lang", help="Report language: fr|en."
    ),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", min=1, help="Criteria per AI batch call."
    ),
    resume: bool = typer.Option(
        True, "--resume/--no-resume", help="Continue from a matching checkpoint."
    ),
    state_file: Optional[Path] = typer.Option(
        None, "--state-file", help="Checkpoint path (default: <out>.state.json)."
    ),
    keep_state: bool = typer.Option(
        False, "--keep-state", help="Keep the checkpoint after a completed run."
    ),
    fail_fast: Optional[bool] = typer.Option(
        None, "--fail-fast/--no-fail-fast", help="Abort on the first page failure."
    ),
    allow_partial: bool = typer.Option(
        False, "--allow-partial", help="Exit 0 even when some criteria errored."
    ),
    auto_resume_after: Optional[float] = typer.Option(
        None,
        "--auto-resume-after",
        help="Resume a paused session automatically after N seconds.",
    ),
    enrich: Optional[bool] = typer.Option(
        None, "--enrich/--no-enrich", help="Compute contrast and markup enrichment."
    ),
    no_ai: bool = typer.Option(False, "--no-ai", help="Skip the AI reviewer."),
    json_out: bool = typer.Option(False, "--json", help="Print the outcome as JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Print every criterion."),
    debug_log: Optional[Path] = typer.Option(
        None, "--debug-log", help="Write a DEBUG log to this file."
    ),
) -> None:
    """Audit pages against the RGAA criteria."""
    configure_logging(debug_log)
    settings = get_settings()
    page_list = collect_pages(pages, pages_file)
    if not page_list:
        raise typer.BadParameter("Provide at least one page with --pages or --pages-file.")

    try:
        config = build_audit_config(
            settings,
            ai_batch_size=batch_size,
            report_lang=report_lang,
            fail_fast=fail_fast,
            enrichment_enabled=enrich,
            keep_checkpoint=keep_state or None,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    out_path: Optional[Path] = None
    if xlsx:
        out_path = out or Path(f"rgaa-audit-{datetime.now().strftime('%Y%m%d-%H%M%S')}.xlsx")
    state_path = state_file or (default_state_path(out_path) if out_path else None)
    if auto_resume_after is None:
        auto_resume_after = settings.auto_resume_after

    console = Console(stderr=True)
    reporter = RichTerminalReporter(console, lang=config.report_lang, verbose=verbose)
    reviewer = None if no_ai else _build_reviewer(settings, config.report_lang)
    if reviewer is None and not no_ai:
        console.print("[yellow]AUDIT_AI_MODEL is not set; AI candidates stay at Review.[/yellow]")

    code, outcome = asyncio.run(
        _run_session(
            page_list,
            config=config,
            collector=DirectorySnapshotCollector(snapshots_dir),
            reviewer=reviewer,
            enricher=LocalEnricher(),
            report_writer=(
                ExcelReportWriter(out_path, lang=config.report_lang, pages=page_list)
                if out_path
                else None
            ),
            reporter=reporter,
            console=console,
            state_path=state_path,
            resume=resume,
            out_path=out_path,
            auto_resume_after=auto_resume_after,
            debug_dir=(out_path.parent / "debug") if out_path else Path("debug"),
        )
    )
    if outcome is not None:
        if json_out:
            emit_json(outcome.to_payload())
        if outcome.errors.has_errors and not allow_partial:
            code = EXIT_FAILED
    raise typer.Exit(code=code)


def _build_reviewer(settings: Settings, lang: str) -> Any:
    if not settings.ai_model:
        return None
    from services.reviewer import LLMReviewer

    return LLMReviewer(lang=lang)


async def _run_session(
    pages: list[str],
    *,
    console: Console,
    auto_resume_after: Optional[float],
    **kwargs: Any,
) -> tuple[int, Optional[AuditOutcome]]:
    token = CancellationToken()
    pause = PauseController()
    loop = asyncio.get_running_loop()
    waiters: set[asyncio.Task[None]] = set()

    def on_pause(_reason: str | None) -> None:
        task = loop.create_task(_wait_for_resume(pause, auto_resume_after))
        waiters.add(task)
        task.add_done_callback(waiters.discard)

    def on_interrupt() -> None:
        console.print("[red]Interrupted, stopping...[/red]")
        token.cancel(CancelReason.EXTERNAL)

    pause.add_listener(on_pause)
    signal_installed = _install_sigint(loop, on_interrupt)
    try:
        outcome = await run_audit(pages, token=token, pause_controller=pause, **kwargs)
        return EXIT_OK, outcome
    except AuditCancelledError:
        console.print("Audit interrupted; progress is kept in the checkpoint.")
        return EXIT_INTERRUPTED, None
    except ResumeIncompatibilityError as exc:
        console.print(f"[red]Cannot resume:[/red] {exc}")
        return EXIT_FAILED, None
    except PageFailure as exc:
        console.print(f"[red]{format_page_failure(exc)}[/red]")
        return EXIT_FAILED, None
    finally:
        pause.remove_listener(on_pause)
        for task in list(waiters):
            task.cancel()
        if signal_installed:
            loop.remove_signal_handler(signal.SIGINT)


def _install_sigint(loop: asyncio.AbstractEventLoop, callback: Any) -> bool:
    try:
        loop.add_signal_handler(signal.SIGINT, callback)
    except (NotImplementedError, RuntimeError, ValueError):
        logger.debug("SIGINT handler not supported on this loop")
        return False
    return True


async def _wait_for_resume(pause: PauseController, auto_resume_after: Optional[float]) -> None:
    """Resume on Enter, after ``auto_resume_after`` seconds, or at once without a TTY."""
    if auto_resume_after is not None:
        await asyncio.sleep(auto_resume_after)
    elif sys.stdin is not None and sys.stdin.isatty():
        await _wait_for_enter()
    pause.resume()


async def _wait_for_enter() -> None:
    loop = asyncio.get_running_loop()
    done: asyncio.Future[None] = loop.create_future()
    fd = sys.stdin.fileno()

    def on_readable() -> None:
        sys.stdin.readline()
        if not done.done():
            done.set_result(None)

    try:
        loop.add_reader(fd, on_readable)
    except (NotImplementedError, RuntimeError):
        logger.debug("stdin reader not supported; resuming immediately")
        return
    try:
        await done
    finally:
        loop.remove_reader(fd)


__all__ = ["EXIT_FAILED", "EXIT_INTERRUPTED", "EXIT_OK", "run"]
