from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from contract_tester.models.verdict import VerdictReport, Violation


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ViolationRecord(_CamelModel):
    json_path: str
    constraint: str
    expected: str
    actual: str

    @classmethod
    def from_violation(cls, violation: Violation) -> ViolationRecord:
        return cls(
            json_path=violation.json_path,
            constraint=violation.constraint,
            expected=violation.expected,
            actual=violation.actual,
        )


class ReportRecord(_CamelModel):
    """Serialized form of one verdict; stable field set for every sink."""

    method: str
    path: str
    operation_id: Optional[str] = None
    outcome: str
    status_code: Optional[int] = None
    latency_ms: int
    violations: list[ViolationRecord]
    diagnostics: list[str]
    message: str = ""
    excerpt: str = ""
    timestamp: datetime

    @classmethod
    def from_verdict(cls, verdict: VerdictReport) -> ReportRecord:
        return cls(
            method=verdict.operation.method,
            path=verdict.operation.path,
            operation_id=verdict.operation.operation_id,
            outcome=verdict.outcome.value,
            status_code=verdict.status_code,
            latency_ms=round(verdict.latency_ms),
            violations=[ViolationRecord.from_violation(v) for v in verdict.violations],
            diagnostics=list(verdict.diagnostics),
            message=verdict.message,
            excerpt=verdict.excerpt,
            timestamp=verdict.timestamp,
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SummaryRecord(_CamelModel):
    total: int
    green: bool
    counts: dict[str, int]

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
