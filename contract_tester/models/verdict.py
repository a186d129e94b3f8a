# contract_tester/models/verdict.py

# Violations, per-operation verdicts and the run summary
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from contract_tester.models.contract import Operation


class Outcome(str, Enum):
    """Final classification of one tested operation."""
    PASS = "PASS"
    SCHEMA_MISMATCH = "SCHEMA_MISMATCH"
    UNEXPECTED_STATUS = "UNEXPECTED_STATUS"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    TIMEOUT = "TIMEOUT"
    PLANNING_SKIPPED = "PLANNING_SKIPPED"
    CANCELLED = "CANCELLED"


class Violation(BaseModel):
    """One concrete mismatch between a value and its schema."""

    model_config = ConfigDict(frozen=True)

    path: tuple[Union[str, int], ...] = ()
    constraint: str
    expected: str
    actual: str

    @property
    def json_path(self) -> str:
        parts = ["$"]
        for segment in self.path:
            if isinstance(segment, int):
                parts.append(f"[{segment}]")
            else:
                parts.append(f".{segment}")
        return "".join(parts)


class VerdictReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation: Operation
    index: int
    outcome: Outcome
    status_code: Optional[int] = None
    latency_ms: float = 0.0
    violations: tuple[Violation, ...] = ()
    excerpt: str = ""
    message: str = ""
    diagnostics: tuple[str, ...] = ()
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RunSummary(BaseModel):
    """Aggregate of one run. The run is green iff every verdict is PASS."""

    verdicts: list[VerdictReport] = Field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        counts = {outcome.value: 0 for outcome in Outcome}
        for verdict in self.verdicts:
            counts[verdict.outcome.value] += 1
        return counts

    @property
    def total(self) -> int:
        return len(self.verdicts)

    @property
    def green(self) -> bool:
        return all(v.outcome is Outcome.PASS for v in self.verdicts)

    @property
    def exit_code(self) -> int:
        return 0 if self.green else 1
