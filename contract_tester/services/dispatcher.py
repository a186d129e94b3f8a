# contract_tester/services/dispatcher.py

import asyncio
import logging
import time
from typing import Callable, Optional, Sequence

from contract_tester.clients.http_client import HttpClient
from contract_tester.errors import RequestTimeout, TransportError
from contract_tester.models.plan import FailureKind, HttpResponse, OperationPlan, RawResult
from contract_tester.observability.metrics import RunMetrics
from contract_tester.observability.tracing import get_tracer
from contract_tester.utils.retry import RetryPolicy, call_with_retry, with_timeout

logger = logging.getLogger(__name__)

ResultCallback = Callable[[RawResult], None]


class Dispatcher:
    """
    Executes operation plans against the HttpClient with a bounded worker pool.

    - At most `concurrency_limit` requests are in flight; each worker pulls the
      next plan from a shared queue, so a slow plan only holds its own worker.
    - Transport failures and timeouts are retried per plan with exponential
      backoff; the final failure becomes a terminal RawResult, never an
      exception, so siblings are unaffected.
    - Once `cancel_event` is set no plan is started and nothing is retried;
      in-flight requests finish and every unstarted plan is reported cancelled.
    """

    def __init__(self, client: HttpClient, metrics: Optional[RunMetrics] = None):
        self._client = client
        self._metrics = metrics or RunMetrics()
        self._tracer = get_tracer(__name__)

    async def execute(
        self,
        plans: Sequence[OperationPlan],
        concurrency_limit: int,
        per_request_timeout: float,
        retry_policy: RetryPolicy,
        cancel_event: Optional[asyncio.Event] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> list[RawResult]:
        """Run every plan; results come back in the order of `plans`."""
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        if cancel_event is None:
            cancel_event = asyncio.Event()

        # one slot per plan: workers write disjoint indexes
        results: list[Optional[RawResult]] = [None] * len(plans)
        queue: asyncio.Queue = asyncio.Queue()
        for slot in range(len(plans)):
            queue.put_nowait(slot)

        async def worker() -> None:
            while not cancel_event.is_set():
                try:
                    slot = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                result = await self._execute_one(plans[slot], per_request_timeout, retry_policy, cancel_event)
                results[slot] = result
                if on_result is not None:
                    on_result(result)

        pool_size = min(concurrency_limit, len(plans))
        logger.info(f"Dispatching {len(plans)} plans with {pool_size} workers")
        await asyncio.gather(*(worker() for _ in range(pool_size)))

        cancelled = 0
        for slot, result in enumerate(results):
            if result is None:
                cancelled += 1
                results[slot] = RawResult(
                    plan=plans[slot],
                    failure=FailureKind.CANCELLED,
                    error_message="run cancelled before the request started",
                )
        if cancelled:
            logger.warning(f"Run cancelled: {cancelled} of {len(plans)} plans not started")
        return results  # type: ignore[return-value]

    async def _execute_one(
        self,
        plan: OperationPlan,
        timeout: float,
        policy: RetryPolicy,
        cancel_event: asyncio.Event,
    ) -> RawResult:
        attempts = 0
        elapsed = 0.0
        send = with_timeout(timeout)(self._client.send)

        async def attempt() -> HttpResponse:
            nonlocal attempts, elapsed
            attempts += 1
            with self._tracer.start_as_current_span(
                "contract.request",
                attributes={"http.request.method": plan.method, "url.full": plan.url, "attempt": attempts},
            ) as span:
                start = time.perf_counter()
                self._metrics.in_progress.inc()
                try:
                    response = await send(plan.method, plan.url, plan.headers, plan.body, timeout)
                except asyncio.TimeoutError as e:
                    elapsed = time.perf_counter() - start
                    self._metrics.observe_request(plan.method, "timeout", elapsed)
                    span.record_exception(e)
                    raise RequestTimeout(timeout) from e
                except TransportError as e:
                    elapsed = time.perf_counter() - start
                    result = "timeout" if isinstance(e, RequestTimeout) else "error"
                    self._metrics.observe_request(plan.method, result, elapsed)
                    span.record_exception(e)
                    raise
                finally:
                    self._metrics.in_progress.dec()
                elapsed = time.perf_counter() - start
                self._metrics.observe_request(plan.method, "response", elapsed)
                span.set_attribute("http.response.status_code", response.status_code)
                return response

        def on_retry(attempt_no: int, error: BaseException) -> None:
            self._metrics.observe_retry(plan.method)

        try:
            response = await call_with_retry(
                attempt,
                policy,
                exceptions=(TransportError,),
                cancel_event=cancel_event,
                on_retry=on_retry,
                name=plan.operation.key,
            )
        except RequestTimeout as e:
            return self._failure(plan, FailureKind.TIMEOUT, e.message, attempts, elapsed)
        except TransportError as e:
            return self._failure(plan, FailureKind.TRANSPORT, e.message, attempts, elapsed)
        except Exception as e:
            # terminal, not retried
            logger.exception(f"Unexpected error sending {plan.operation.key}")
            return self._failure(plan, FailureKind.TRANSPORT, f"{type(e).__name__}: {e}", attempts, elapsed)

        logger.debug(f"{plan.operation.key} -> {response.status_code} in {elapsed * 1000:.0f} ms")
        return RawResult(
            plan=plan,
            response=response,
            latency_ms=elapsed * 1000,
            attempts=attempts,
        )

    @staticmethod
    def _failure(plan: OperationPlan, kind: FailureKind, message: str, attempts: int, elapsed: float) -> RawResult:
        logger.warning(f"{plan.operation.key} failed after {attempts} attempt(s): {message}")
        return RawResult(
            plan=plan,
            failure=kind,
            error_message=message,
            latency_ms=elapsed * 1000,
            attempts=attempts,
        )
