"""Reporting module exports."""

from __future__ import annotations

from reporting.excel import ExcelReportWriter
from reporting.terminal import RichTerminalReporter

__all__ = ["ExcelReportWriter", "RichTerminalReporter"]
