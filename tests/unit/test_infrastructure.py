# tests/unit/test_infrastructure.py
# Unit tests for infrastructure components

import asyncio
import json
import logging

import pytest


class TestCallWithRetry:
    """Test retry helper and policy."""

    @pytest.mark.asyncio
    async def test_retry_succeeds_after_failures(self):
        from contract_tester.utils.retry import RetryPolicy, call_with_retry

        call_count = 0

        async def flaky_func():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ValueError("Not ready yet")
            return "success"

        result = await call_with_retry(flaky_func, RetryPolicy(max_attempts=3, base_delay=0.01))

        assert result == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_retry_raises_after_max_attempts(self):
        from contract_tester.utils.retry import RetryPolicy, call_with_retry

        async def always_fails():
            raise ValueError("Always fails")

        with pytest.raises(ValueError):
            await call_with_retry(always_fails, RetryPolicy(max_attempts=2, base_delay=0.01))

    @pytest.mark.asyncio
    async def test_only_listed_exceptions_are_retried(self):
        from contract_tester.utils.retry import RetryPolicy, call_with_retry

        call_count = 0

        async def wrong_error():
            nonlocal call_count
            call_count += 1
            raise KeyError("not retried")

        with pytest.raises(KeyError):
            await call_with_retry(
                wrong_error,
                RetryPolicy(max_attempts=3, base_delay=0.0),
                exceptions=(ConnectionError,),
            )
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_on_retry_sees_each_failed_attempt(self):
        from contract_tester.utils.retry import RetryPolicy, call_with_retry

        seen = []

        async def always_fails():
            raise ConnectionError("reset")

        with pytest.raises(ConnectionError):
            await call_with_retry(
                always_fails,
                RetryPolicy(max_attempts=3, base_delay=0.0),
                exceptions=(ConnectionError,),
                on_retry=lambda attempt, error: seen.append(attempt),
            )
        assert seen == [1, 2]

    def test_delay_doubles_and_is_capped(self):
        from contract_tester.utils.retry import RetryPolicy

        policy = RetryPolicy(max_attempts=5, base_delay=0.5, max_delay=1.5)

        assert [policy.delay_for(i) for i in range(4)] == [0.5, 1.0, 1.5, 1.5]

    @pytest.mark.asyncio
    async def test_cancellation_interrupts_backoff(self):
        from contract_tester.utils.retry import RetryPolicy, call_with_retry

        cancel_event = asyncio.Event()
        call_count = 0

        async def failing():
            nonlocal call_count
            call_count += 1
            asyncio.get_running_loop().call_later(0.01, cancel_event.set)
            raise ConnectionError("reset")

        with pytest.raises(ConnectionError):
            await call_with_retry(
                failing,
                RetryPolicy(max_attempts=3, base_delay=5.0, max_delay=5.0),
                exceptions=(ConnectionError,),
                cancel_event=cancel_event,
            )
        assert call_count == 1


class TestTimeout:
    """Test timeout decorator."""

    @pytest.mark.asyncio
    async def test_timeout_allows_fast_operations(self):
        from contract_tester.utils.retry import with_timeout

        @with_timeout(1.0)
        async def fast_func():
            return "done"

        result = await fast_func()
        assert result == "done"

    @pytest.mark.asyncio
    async def test_timeout_raises_on_slow_operations(self):
        from contract_tester.utils.retry import with_timeout

        @with_timeout(0.1)
        async def slow_func():
            await asyncio.sleep(1.0)
            return "done"

        with pytest.raises(asyncio.TimeoutError):
            await slow_func()


class TestErrors:
    """Test error classes."""

    def test_base_error_has_correct_properties(self):
        from contract_tester.errors import ContractTesterError

        error = ContractTesterError(
            message="Test error",
            error_code="TEST_ERROR",
            details={"field": "value"}
        )

        assert error.message == "Test error"
        assert error.error_code == "TEST_ERROR"
        assert error.details == {"field": "value"}
        assert error.to_dict() == {"code": "TEST_ERROR", "message": "Test error", "details": {"field": "value"}}

    def test_contract_parse_error_keeps_messages(self):
        from contract_tester.errors import ContractParseError

        error = ContractParseError(["a", "b"], source="api.yaml")

        assert error.error_code == "CONTRACT_PARSE_ERROR"
        assert error.messages == ["a", "b"]
        assert error.details["source"] == "api.yaml"

    def test_request_timeout_is_a_transport_error(self):
        from contract_tester.errors import RequestTimeout, TransportError

        error = RequestTimeout(3.0)

        assert isinstance(error, TransportError)
        assert error.error_code == "TIMEOUT"

    def test_planning_skipped_reason(self):
        from contract_tester.errors import PlanningSkipped

        assert PlanningSkipped("no value").reason == "no value"


class TestSettings:
    """Test settings and run configuration."""

    def test_defaults(self, monkeypatch):
        from contract_tester.config import Settings

        monkeypatch.delenv("CONCURRENCY_LIMIT", raising=False)
        settings = Settings(_env_file=None)

        assert settings.CONCURRENCY_LIMIT == 4
        assert settings.REQUEST_TIMEOUT == 10.0
        assert settings.RETRY_MAX_ATTEMPTS == 3

    def test_environment_overrides(self, monkeypatch):
        from contract_tester.config import Settings

        monkeypatch.setenv("CONCURRENCY_LIMIT", "9")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)

        assert settings.CONCURRENCY_LIMIT == 9
        assert settings.LOG_LEVEL == "DEBUG"

    def test_invalid_log_level(self):
        from pydantic import ValidationError

        from contract_tester.config import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None, LOG_LEVEL="LOUD")

    def test_unknown_method(self):
        from pydantic import ValidationError

        from contract_tester.config import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None, METHODS=["GET", "FETCH"])

    def test_run_config_overrides_skip_none(self):
        from contract_tester.config import RunConfig, Settings

        settings = Settings(_env_file=None, CONCURRENCY_LIMIT=3, RETRY_MAX_ATTEMPTS=2)

        config = RunConfig.from_settings(settings, "http://api.test", concurrency_limit=None, request_timeout=2.0)

        assert config.concurrency_limit == 3
        assert config.request_timeout == 2.0
        assert config.retry_policy.max_attempts == 2

    def test_run_config_rejects_zero_concurrency(self):
        from pydantic import ValidationError

        from contract_tester.config import RunConfig

        with pytest.raises(ValidationError):
            RunConfig(base_url="http://api.test", concurrency_limit=0)


class TestMetrics:
    """Test the per-run Prometheus registry."""

    def test_runs_do_not_share_counters(self):
        from contract_tester.observability.metrics import RunMetrics

        first, second = RunMetrics(), RunMetrics()
        first.observe_verdict("PASS")

        assert first.value("contract_verdicts_total", {"outcome": "PASS"}) == 1
        assert second.value("contract_verdicts_total", {"outcome": "PASS"}) == 0

    def test_write_textfile(self, tmp_path):
        from contract_tester.observability.metrics import RunMetrics

        metrics = RunMetrics()
        metrics.observe_request("GET", "response", 0.02)
        path = tmp_path / "metrics.prom"

        metrics.write(str(path))

        text = path.read_text(encoding="utf-8")
        assert 'contract_requests_total{method="GET",result="response"} 1.0' in text
        assert "contract_request_latency_seconds_bucket" in text


class TestLogging:
    """Test logger helpers."""

    def test_setup_logger_does_not_duplicate_handlers(self, tmp_path):
        from contract_tester.utils.logger import close_logger, setup_logger

        path = str(tmp_path / "a" / "b.log")
        first = setup_logger("test.dup", path)
        second = setup_logger("test.dup", path)

        assert first is second
        assert len(first.handlers) == 1
        assert not first.propagate
        close_logger(first)
        assert first.handlers == []

    def test_json_formatter_output(self):
        from contract_tester.observability.logger import TraceIdFilter, build_formatter

        record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
        TraceIdFilter().filter(record)

        payload = json.loads(build_formatter().format(record))

        assert payload["message"] == "hello"
        assert payload["levelname"] == "INFO"
        assert payload["trace_id"] is None

    def test_configure_logging_is_idempotent(self, tmp_path):
        from contract_tester.config import Settings
        from contract_tester.observability.logger import configure_logging

        settings = Settings(_env_file=None, LOGS_PATH=str(tmp_path))
        root = logging.getLogger()
        before = list(root.handlers)
        try:
            configure_logging(settings)
            configure_logging(settings)
            added = [h for h in root.handlers if h not in before]

            consoles = [h for h in added if getattr(h, "_contract_console", False)]
            assert len(consoles) <= 1
            assert len(added) == len(consoles) + 1
            assert (tmp_path / "error.log").exists()
        finally:
            for handler in root.handlers[:]:
                if handler not in before:
                    root.removeHandler(handler)
                    handler.close()
