# contract_tester/observability/logger.py

# structured JSON logger
import logging
import os
import sys

from opentelemetry import trace
from pythonjsonlogger.json import JsonFormatter

from contract_tester.utils.logger import setup_logger


class TraceIdFilter(logging.Filter):
    """Inject trace_id into the record if an OpenTelemetry span is active."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "trace_id"):
            ctx = trace.get_current_span().get_span_context()
            record.trace_id = f"{ctx.trace_id:032x}" if ctx and ctx.trace_id else None
        return True


def build_formatter() -> logging.Formatter:
    return JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s %(trace_id)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )


def configure_logging(settings) -> None:
    """Configure root logging with JSON formatting.

    - Adds a JSON console handler on stderr (stdout stays free for the summary).
    - Routes ERROR records to LOGS_PATH/error.log when LOGS_PATH is set.
    - Injects trace_id when tracing is enabled.
    - Safe to call more than once.
    """
    root = logging.getLogger()
    root.setLevel(getattr(settings, "LOG_LEVEL", "INFO"))

    formatter = build_formatter()
    trace_filter = TraceIdFilter()

    # replace rather than reuse: stderr may have been swapped since the last call
    for h in [h for h in root.handlers if getattr(h, "_contract_console", False)]:
        root.removeHandler(h)
    console = logging.StreamHandler(stream=sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(trace_filter)
    console._contract_console = True  # type: ignore[attr-defined]
    root.addHandler(console)

    logs_path = getattr(settings, "LOGS_PATH", None)
    if logs_path:
        error_logger = setup_logger("error", os.path.join(logs_path, "error.log"), logging.ERROR, formatter)
        # mirror root errors into the error file
        for h in error_logger.handlers:
            h.setLevel(logging.ERROR)
            if not any(isinstance(f, TraceIdFilter) for f in h.filters):
                h.addFilter(trace_filter)
            if h not in root.handlers:
                root.addHandler(h)

    # Keep the transport's per-request INFO lines out of the run log
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("startup").info("logging configured")
