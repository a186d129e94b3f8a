# contract_tester/models/plan.py

# Planned requests and their raw outcomes
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from contract_tester.models.contract import Operation
from contract_tester.models.resolved_schema import ResolvedSchema


class ExpectedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    content_type: Optional[str] = None
    resolved: Optional[ResolvedSchema] = None


class OperationPlan(BaseModel):
    """
    A fully built request for one operation.

    `index` is the operation's position in the contract; results are
    normalized back to this order after concurrent execution.
    """

    model_config = ConfigDict(frozen=True)

    index: int
    operation: Operation
    method: str
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[bytes] = None
    expected: dict[str, ExpectedResponse] = Field(default_factory=dict)
    diagnostics: tuple[str, ...] = ()

    def match_status(self, status_code: int) -> Optional[ExpectedResponse]:
        """Exact code first, then its range key ("4XX"), then "default"."""
        exact = self.expected.get(str(status_code))
        if exact is not None:
            return exact
        for key, expected in self.expected.items():
            if key.upper() == f"{str(status_code)[0]}XX":
                return expected
        return self.expected.get("default")


class HttpResponse(BaseModel):
    """What the HttpClient capability returns for one request."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""

    @property
    def content_type(self) -> Optional[str]:
        for name, value in self.headers.items():
            if name.lower() == "content-type":
                return value
        return None


class FailureKind(str, Enum):
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class RawResult(BaseModel):
    """Outcome of executing one plan: a response or a terminal failure."""

    model_config = ConfigDict(frozen=True)

    plan: OperationPlan
    response: Optional[HttpResponse] = None
    latency_ms: float = 0.0
    attempts: int = 0
    failure: Optional[FailureKind] = None
    error_message: Optional[str] = None

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response is not None else None


class SkippedOperation(BaseModel):
    """An operation the planner could not turn into a request."""

    model_config = ConfigDict(frozen=True)

    index: int
    operation: Operation
    reason: str
    diagnostics: tuple[str, ...] = ()


class PlanningResult(BaseModel):
    plans: list[OperationPlan] = Field(default_factory=list)
    skipped: list[SkippedOperation] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.plans) + len(self.skipped)
