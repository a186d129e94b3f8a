# tests/unit/test_sinks.py
# Unit tests for report sinks and report records

import json

from contract_tester.models.contract import Operation
from contract_tester.models.verdict import Outcome, VerdictReport, Violation
from contract_tester.reporting.sinks import JsonLinesSink, LogFileSink, MemorySink, MultiSink, format_line
from contract_tester.schemas.report import ReportRecord


def _verdict(outcome: Outcome = Outcome.PASS, **kwargs) -> VerdictReport:
    values = {
        "operation": Operation(method="GET", path="/pets/{petId}", operation_id="showPet"),
        "index": 0,
        "outcome": outcome,
        "status_code": 200,
        "latency_ms": 12.4,
    }
    values.update(kwargs)
    return VerdictReport(**values)


def _counts(**non_zero) -> dict:
    counts = {outcome.value: 0 for outcome in Outcome}
    counts.update(non_zero)
    return counts


class TestFormatLine:
    """Test the plain-text report line format."""

    def test_pass_line(self):
        assert format_line(_verdict()) == "API [GET /pets/{petId}] passed with status 200 in 12 ms."

    def test_mismatch_line_lists_violations(self):
        violation = Violation(path=("id",), constraint="type", expected="integer", actual="string")
        line = format_line(_verdict(Outcome.SCHEMA_MISMATCH, violations=(violation,)))

        assert "failed in payload validation" in line
        assert "$.id: type (expected integer, got string)" in line

    def test_failure_line_carries_message_and_excerpt(self):
        line = format_line(_verdict(Outcome.TRANSPORT_ERROR, status_code=None, message="connection refused", excerpt="x"))

        assert line.startswith("API [GET /pets/{petId}] call failed (TRANSPORT_ERROR): connection refused")
        assert line.endswith("Response: x")


class TestReportRecord:
    """Test the serialized report record."""

    def test_camel_case_fields(self):
        violation = Violation(path=("items", 0), constraint="required", expected="x", actual="absent")
        record = json.loads(ReportRecord.from_verdict(_verdict(Outcome.SCHEMA_MISMATCH, violations=(violation,))).to_json())

        assert record["operationId"] == "showPet"
        assert record["statusCode"] == 200
        assert record["latencyMs"] == 12
        assert record["violations"] == [{"jsonPath": "$.items[0]", "constraint": "required", "expected": "x", "actual": "absent"}]
        assert "timestamp" in record


class TestSinks:
    """Test the shipped sinks."""

    def test_log_file_sink_appends_lines_and_summary(self, tmp_path):
        path = tmp_path / "logs" / "run.log"
        sink = LogFileSink(str(path))

        sink.emit(_verdict())
        sink.emit(_verdict(Outcome.UNEXPECTED_STATUS, status_code=404))
        sink.emit_summary(_counts(PASS=1, UNEXPECTED_STATUS=1))
        sink.close()

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 3
        assert "[INFO] API [GET /pets/{petId}] passed" in lines[0]
        assert "[ERROR] API [GET /pets/{petId}] received unexpected status 404" in lines[1]
        assert "Run finished RED: 2 operations (PASS=1, UNEXPECTED_STATUS=1)" in lines[2]

    def test_log_file_sink_does_not_propagate_to_root(self, tmp_path, caplog):
        sink = LogFileSink(str(tmp_path / "run.log"))

        sink.emit(_verdict())
        sink.close()

        assert "passed with status" not in caplog.text

    def test_json_lines_sink(self, tmp_path):
        path = tmp_path / "report.jsonl"
        sink = JsonLinesSink(str(path))

        sink.emit(_verdict())
        sink.emit_summary(_counts(PASS=1))
        sink.close()

        first, summary = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        assert first["outcome"] == "PASS"
        assert summary["total"] == 1
        assert summary["green"] is True

    def test_multi_sink_fans_out(self):
        left, right = MemorySink(), MemorySink()
        sink = MultiSink([left, right])

        sink.emit(_verdict())
        sink.emit_summary(_counts(PASS=1))
        sink.close()

        assert len(left.reports) == len(right.reports) == 1
        assert left.summaries == right.summaries == [_counts(PASS=1)]

    def test_memory_sink_records(self):
        sink = MemorySink()
        sink.emit(_verdict())

        assert sink.records()[0].method == "GET"
