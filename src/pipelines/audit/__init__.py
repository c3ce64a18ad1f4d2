"""Audit orchestration pipeline."""

from .cancellation import AbortCoordinator, CancellationToken, PauseController, run_cancellable
from .contracts import TerminalReporter
from .cross_page import CrossPageEvaluator
from .dispatch import CROSS_PAGE_CRITERION, MULTI_PAGE_CRITERIA, CriterionDispatcher
from .page_runner import PageOutcome, PageRunner, PageStage
from .retry import RetryWithPause
from .review import BatchReviewRunner, ReviewRetryQueue
from .summary import GlobalSummaryComputer, compute_global_summary

__all__ = [
    "AbortCoordinator",
    "BatchReviewRunner",
    "CROSS_PAGE_CRITERION",
    "CancellationToken",
    "CriterionDispatcher",
    "CrossPageEvaluator",
    "GlobalSummaryComputer",
    "MULTI_PAGE_CRITERIA",
    "PageOutcome",
    "PageRunner",
    "PageStage",
    "PauseController",
    "RetryWithPause",
    "ReviewRetryQueue",
    "TerminalReporter",
    "compute_global_summary",
    "run_cancellable",
]
