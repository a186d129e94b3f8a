# contract_tester/main.py

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

import httpx
from pydantic import ValidationError

from contract_tester.clients.http_client import HttpxClient
from contract_tester.config import RunConfig, Settings, get_settings
from contract_tester.constants import HTTP_METHODS
from contract_tester.errors import ConfigurationError, ContractTesterError
from contract_tester.models.verdict import RunSummary
from contract_tester.observability.logger import configure_logging
from contract_tester.observability.metrics import RunMetrics
from contract_tester.observability.tracing import init_tracing
from contract_tester.reporting.sinks import JsonLinesSink, LogFileSink, MultiSink
from contract_tester.repositories.contract_repository import ContractRepository
from contract_tester.services.orchestrator import Orchestrator
from contract_tester.utils.retry import RetryPolicy

logger = logging.getLogger("startup")

EXIT_GREEN = 0
EXIT_RED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contract-tester",
        description="Exercise every operation of an OpenAPI/Swagger contract and validate the responses.",
    )
    parser.add_argument("contract", help="Path to the OpenAPI 3 / Swagger 2 document (YAML or JSON)")
    parser.add_argument("output_log", help="Log file the per-operation report lines are appended to")
    parser.add_argument("--base-url", help="Override the contract's first server URL")
    parser.add_argument("--concurrency", type=int, help="Maximum number of requests in flight")
    parser.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    parser.add_argument("--retries", type=int, help="Attempts per operation on transport failure or timeout")
    parser.add_argument("--deadline", type=float, help="Overall run deadline in seconds")
    parser.add_argument(
        "--method",
        action="append",
        help="Only test this HTTP method (repeatable)",
    )
    parser.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Fixed value for a parameter, used instead of a synthesized one (repeatable)",
    )
    parser.add_argument(
        "--header",
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        help="Extra request header sent with every request (repeatable)",
    )
    parser.add_argument("--json-report", help="Also write JSON-lines report records to this file")
    parser.add_argument("--metrics-file", help="Write Prometheus metrics in textfile format after the run")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    return parser


def _parse_pairs(values: Sequence[str], separator: str, flag: str) -> dict[str, str]:
    pairs = {}
    for raw in values:
        name, sep, value = raw.partition(separator)
        if not sep or not name.strip():
            raise ConfigurationError(f"{flag} expects NAME{separator}VALUE, got {raw!r}")
        pairs[name.strip()] = value.strip()
    return pairs


def build_run_config(args: argparse.Namespace, settings: Settings, contract_base_url: Optional[str]) -> RunConfig:
    """Fold CLI flags over settings; CLI wins, then settings, then the contract."""
    base_url = args.base_url or settings.BASE_URL or contract_base_url
    if not base_url:
        raise ConfigurationError("No base URL: the contract declares no server and --base-url is not set")
    if not base_url.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"Base URL {base_url!r} is not absolute; pass --base-url",
            details={"base_url": base_url},
        )

    methods = None
    if args.method:
        methods = tuple(m.upper() for m in args.method)
        unknown = sorted(set(methods) - set(HTTP_METHODS))
        if unknown:
            raise ConfigurationError(f"Unknown HTTP methods: {unknown}")

    retry_policy = None
    if args.retries is not None:
        retry_policy = RetryPolicy(
            max_attempts=args.retries,
            base_delay=settings.RETRY_BASE_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
        )

    return RunConfig.from_settings(
        settings,
        base_url,
        concurrency_limit=args.concurrency,
        request_timeout=args.timeout,
        retry_policy=retry_policy,
        run_deadline=args.deadline,
        methods=methods,
        parameter_values=_parse_pairs(args.param, "=", "--param"),
        headers=_parse_pairs(args.header, ":", "--header"),
    )


def handle_signal(cancel_event: asyncio.Event, sig: signal.Signals) -> None:
    """ Signal handler: stop starting new requests, let in-flight ones finish. """
    logger.warning(f"Received exit signal {sig.name}, cancelling run...")
    cancel_event.set()


def _install_signal_handlers(cancel_event: asyncio.Event) -> list[signal.Signals]:
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_signal, cancel_event, sig)
        except (NotImplementedError, RuntimeError):
            # not available on this platform or outside the main thread
            continue
        installed.append(sig)
    return installed


async def run(
    args: argparse.Namespace,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    install_signals: bool = False,
) -> int:
    """ Load, configure, run, report. Returns the process exit code. """
    contract = ContractRepository().load(args.contract)
    config = build_run_config(args, settings, contract.base_url)
    logger.info(
        f"Testing {contract.title or args.contract!r} against {config.base_url}",
        extra={"concurrency": config.concurrency_limit, "operations": len(contract.operations)},
    )

    sinks = [LogFileSink(args.output_log)]
    if args.json_report:
        sinks.append(JsonLinesSink(args.json_report))
    sink = MultiSink(sinks)
    metrics = RunMetrics()
    cancel_event = asyncio.Event()
    installed = _install_signal_handlers(cancel_event) if install_signals else []

    try:
        async with HttpxClient(
            verify=settings.VERIFY_TLS,
            max_connections=max(config.concurrency_limit, 1),
            transport=transport,
        ) as client:
            orchestrator = Orchestrator(client, sink, config, metrics=metrics)
            summary = await orchestrator.run(contract, cancel_event=cancel_event)
    finally:
        sink.close()
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)

    if args.metrics_file:
        metrics.write(args.metrics_file)
    print(format_summary(summary))
    return summary.exit_code


def format_summary(summary: RunSummary) -> str:
    status = "GREEN" if summary.green else "RED"
    counts = ", ".join(f"{outcome}={n}" for outcome, n in summary.counts.items() if n)
    return f"{status}: {summary.total} operations ({counts or 'none'})"


def run_cli(
    argv: Optional[Sequence[str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    install_signals: bool = False,
) -> int:
    """ Main entry point; `transport` lets callers route requests to an in-process app. """
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.log_level:
        try:
            settings = Settings.model_validate({**settings.model_dump(), "LOG_LEVEL": args.log_level})
        except ValidationError as e:
            print(f"error: {e.errors()[0]['msg']}", file=sys.stderr)
            return EXIT_USAGE

    # Configure structured JSON logging as early as possible
    configure_logging(settings)
    init_tracing(settings)

    try:
        return asyncio.run(run(args, settings, transport=transport, install_signals=install_signals))
    except ValidationError as e:
        # RunConfig bounds (e.g. --concurrency 0)
        logger.error(f"Invalid run configuration: {e}")
        print(f"error: invalid run configuration: {e.errors()[0]['loc'][0]}: {e.errors()[0]['msg']}", file=sys.stderr)
        return EXIT_USAGE
    except ContractTesterError as e:
        logger.error(e.message, extra={"error": e.to_dict()})
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_USAGE


def main() -> None:
    sys.exit(run_cli(install_signals=True))


if __name__ == "__main__":
    main()
