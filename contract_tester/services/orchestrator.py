# contract_tester/services/orchestrator.py

import asyncio
import logging
from typing import Optional

from contract_tester.clients.http_client import HttpClient
from contract_tester.config import RunConfig
from contract_tester.models.contract import ContractModel
from contract_tester.models.plan import FailureKind, RawResult, SkippedOperation
from contract_tester.models.verdict import Outcome, RunSummary, VerdictReport, Violation
from contract_tester.observability.metrics import RunMetrics
from contract_tester.reporting.sinks import ReportSink
from contract_tester.services.dispatcher import Dispatcher
from contract_tester.services.request_planner import RequestPlanner
from contract_tester.services.schema_validator import SchemaValidator, media_types_compatible

logger = logging.getLogger(__name__)

_FAILURE_OUTCOMES = {
    FailureKind.TRANSPORT: Outcome.TRANSPORT_ERROR,
    FailureKind.TIMEOUT: Outcome.TIMEOUT,
    FailureKind.CANCELLED: Outcome.CANCELLED,
}


class Orchestrator:
    """Drives planning, dispatch and validation for one contract run."""

    def __init__(
        self,
        client: HttpClient,
        sink: ReportSink,
        config: RunConfig,
        metrics: Optional[RunMetrics] = None,
    ):
        # Store collaborators; nothing here is shared between runs except the client
        self._sink = sink
        self._config = config
        self._metrics = metrics or RunMetrics()
        self._validator = SchemaValidator()
        self._planner = RequestPlanner(
            config.base_url,
            methods=config.methods,
            parameter_values=config.parameter_values,
            headers=config.headers,
            validator=self._validator,
        )
        self._dispatcher = Dispatcher(client, self._metrics)

    @property
    def metrics(self) -> RunMetrics:
        return self._metrics

    async def run(self, contract: ContractModel, cancel_event: Optional[asyncio.Event] = None) -> RunSummary:
        """Plan, dispatch, judge and emit. Returns the aggregated summary."""
        if cancel_event is None:
            cancel_event = asyncio.Event()

        planning = self._planner.plan(contract)
        if planning.total == 0:
            logger.warning("No testable operations found in contract")

        deadline_handle = None
        if self._config.run_deadline is not None:
            deadline_handle = asyncio.get_running_loop().call_later(
                self._config.run_deadline, self._deadline_reached, cancel_event
            )
        try:
            raw_results = await self._dispatcher.execute(
                planning.plans,
                concurrency_limit=self._config.concurrency_limit,
                per_request_timeout=self._config.request_timeout,
                retry_policy=self._config.retry_policy,
                cancel_event=cancel_event,
            )
        finally:
            if deadline_handle is not None:
                deadline_handle.cancel()

        # append-only until emission
        verdicts: list[VerdictReport] = [self.judge(raw) for raw in raw_results]
        verdicts.extend(self._skipped_verdict(skipped) for skipped in planning.skipped)
        verdicts.sort(key=lambda v: v.index)

        summary = RunSummary(verdicts=verdicts)
        for verdict in verdicts:
            self._metrics.observe_verdict(verdict.outcome.value)
            self._sink.emit(verdict)
        self._sink.emit_summary(summary.counts)

        logger.info(
            f"Run finished: {summary.total} operations, green={summary.green}",
            extra={"counts": summary.counts},
        )
        return summary

    @staticmethod
    def _deadline_reached(cancel_event: asyncio.Event) -> None:
        if not cancel_event.is_set():
            logger.warning("Run deadline reached, cancelling remaining operations")
            cancel_event.set()

    def judge(self, raw: RawResult) -> VerdictReport:
        """Classify one raw result against its plan's expected-response table."""
        plan = raw.plan
        common = {
            "operation": plan.operation,
            "index": plan.index,
            "latency_ms": raw.latency_ms,
            "diagnostics": plan.diagnostics,
        }

        if raw.failure is not None or raw.response is None:
            outcome = _FAILURE_OUTCOMES.get(raw.failure, Outcome.TRANSPORT_ERROR)
            return VerdictReport(outcome=outcome, message=raw.error_message or "", **common)

        response = raw.response
        status = response.status_code
        common["status_code"] = status
        common["excerpt"] = self._excerpt(response.body)

        if not plan.expected:
            if 200 <= status < 300:
                return VerdictReport(outcome=Outcome.PASS, message="no responses declared; any 2xx accepted", **common)
            return VerdictReport(
                outcome=Outcome.UNEXPECTED_STATUS,
                message=f"status {status} is not 2xx and no responses are declared",
                **common,
            )

        expected = plan.match_status(status)
        if expected is None:
            declared = ", ".join(sorted(plan.expected))
            return VerdictReport(
                outcome=Outcome.UNEXPECTED_STATUS,
                message=f"status {status} not declared (declared: {declared})",
                **common,
            )

        if expected.resolved is None or plan.method == "HEAD":
            return VerdictReport(outcome=Outcome.PASS, **common)

        actual_type = response.content_type
        if not media_types_compatible(expected.content_type, actual_type):
            violation = Violation(
                path=(),
                constraint="content-type",
                expected=expected.content_type or "",
                actual=actual_type or "",
            )
            return VerdictReport(
                outcome=Outcome.SCHEMA_MISMATCH,
                violations=(violation,),
                message="response content type does not match the contract",
                **common,
            )

        violations = self._validator.validate_body(
            response.body,
            expected.resolved,
            actual_type or expected.content_type,
        )
        if violations:
            return VerdictReport(
                outcome=Outcome.SCHEMA_MISMATCH,
                violations=tuple(violations),
                message=f"{len(violations)} schema violation(s)",
                **common,
            )
        return VerdictReport(outcome=Outcome.PASS, **common)

    @staticmethod
    def _skipped_verdict(skipped: SkippedOperation) -> VerdictReport:
        return VerdictReport(
            operation=skipped.operation,
            index=skipped.index,
            outcome=Outcome.PLANNING_SKIPPED,
            message=skipped.reason,
            diagnostics=skipped.diagnostics,
        )

    def _excerpt(self, body: bytes) -> str:
        limit = self._config.response_excerpt_limit
        if limit == 0 or not body:
            return ""
        text = body[:limit].decode("utf-8", errors="replace")
        return text + "..." if len(body) > limit else text
