# contract_tester/reporting/sinks.py
# ReportSink capability and the sinks shipped with the tester

import logging
import os
from typing import Iterable, Mapping, Protocol

from contract_tester.models.verdict import Outcome, VerdictReport
from contract_tester.schemas.report import ReportRecord, SummaryRecord
from contract_tester.utils.logger import close_logger, setup_logger


class ReportSink(Protocol):
    def emit(self, report: VerdictReport) -> None:
        ...

    def emit_summary(self, counts: Mapping[str, int]) -> None:
        ...


def _is_green(counts: Mapping[str, int]) -> bool:
    return all(n == 0 for outcome, n in counts.items() if outcome != Outcome.PASS.value)


def format_line(report: VerdictReport) -> str:
    """One human-readable line per verdict, in the tool's historical log format."""
    op = report.operation
    head = f"API [{op.method} {op.path}]"
    latency = f"{report.latency_ms:.0f} ms"
    if report.outcome is Outcome.PASS:
        line = f"{head} passed with status {report.status_code} in {latency}."
    elif report.outcome is Outcome.SCHEMA_MISMATCH:
        details = "; ".join(
            f"{v.json_path}: {v.constraint} (expected {v.expected}, got {v.actual})"
            for v in report.violations
        )
        line = f"{head} failed in payload validation with status {report.status_code} in {latency}. Violations: {details}"
    elif report.outcome is Outcome.UNEXPECTED_STATUS:
        line = f"{head} received unexpected status {report.status_code} in {latency}."
    elif report.outcome is Outcome.PLANNING_SKIPPED:
        line = f"{head} skipped during planning: {report.message}"
    elif report.outcome is Outcome.CANCELLED:
        line = f"{head} cancelled: {report.message}"
    else:
        line = f"{head} call failed ({report.outcome.value}): {report.message}"
    if report.excerpt:
        line += f" Response: {report.excerpt}"
    return line


class LogFileSink:
    """Appends plain-text report lines to a log file through a dedicated logger."""

    def __init__(self, path: str):
        self.path = path
        self._logger = setup_logger(f"report.{os.path.abspath(path)}", path, logging.INFO)

    def emit(self, report: VerdictReport) -> None:
        level = logging.INFO if report.outcome is Outcome.PASS else logging.ERROR
        self._logger.log(level, format_line(report))

    def emit_summary(self, counts: Mapping[str, int]) -> None:
        parts = ", ".join(f"{outcome}={n}" for outcome, n in counts.items() if n)
        total = sum(counts.values())
        status = "GREEN" if _is_green(counts) else "RED"
        self._logger.info(f"Run finished {status}: {total} operations ({parts or 'none'})")

    def close(self) -> None:
        close_logger(self._logger)


class JsonLinesSink:
    """One JSON report record per line, followed by a summary record."""

    def __init__(self, path: str):
        self.path = path
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        self._fh = open(path, "a", encoding="utf-8")

    def emit(self, report: VerdictReport) -> None:
        self._fh.write(ReportRecord.from_verdict(report).to_json() + "\n")

    def emit_summary(self, counts: Mapping[str, int]) -> None:
        record = SummaryRecord(total=sum(counts.values()), green=_is_green(counts), counts=dict(counts))
        self._fh.write(record.to_json() + "\n")
        self._fh.flush()

    def close(self) -> None:
        self._fh.close()


class MemorySink:
    """Keeps everything in memory; for programmatic use and tests."""

    def __init__(self):
        self.reports: list[VerdictReport] = []
        self.summaries: list[dict[str, int]] = []

    def emit(self, report: VerdictReport) -> None:
        self.reports.append(report)

    def emit_summary(self, counts: Mapping[str, int]) -> None:
        self.summaries.append(dict(counts))

    def records(self) -> list[ReportRecord]:
        return [ReportRecord.from_verdict(r) for r in self.reports]


class MultiSink:
    """Fans every call out to several sinks."""

    def __init__(self, sinks: Iterable[ReportSink]):
        self.sinks = list(sinks)

    def emit(self, report: VerdictReport) -> None:
        for sink in self.sinks:
            sink.emit(report)

    def emit_summary(self, counts: Mapping[str, int]) -> None:
        for sink in self.sinks:
            sink.emit_summary(counts)

    def close(self) -> None:
        for sink in self.sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                close()
