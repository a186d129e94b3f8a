# contract_tester/errors.py
# Structured error taxonomy
# Run-fatal errors halt before planning; everything else degrades and is reported

from typing import Optional, Sequence


class ContractTesterError(Exception):
    """Base tester error with a stable code and structured details."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict:
        content = {"code": self.error_code, "message": self.message}
        if self.details:
            content["details"] = self.details
        return content


class ContractParseError(ContractTesterError):
    """Contract document could not be turned into a ContractModel. Run-fatal."""
    def __init__(self, messages: Sequence[str], source: Optional[str] = None):
        self.messages = list(messages)
        details = {"messages": self.messages}
        if source:
            details["source"] = source
        super().__init__(
            message="Contract is invalid: " + "; ".join(self.messages),
            error_code="CONTRACT_PARSE_ERROR",
            details=details
        )


class ConfigurationError(ContractTesterError):
    """Run configuration is unusable (e.g. no base URL). Run-fatal."""
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details=details
        )


class UnresolvedReferenceError(ContractTesterError):
    """A $ref points outside the contract or at nothing."""
    def __init__(self, reference: str, reason: str = "target not found"):
        self.reference = reference
        super().__init__(
            message=f"Unresolved reference {reference!r}: {reason}",
            error_code="UNRESOLVED_REFERENCE",
            details={"reference": reference}
        )


class SchemaConflictError(ContractTesterError):
    """allOf branches declare incompatible constraints."""
    def __init__(self, keyword: str, left: object, right: object):
        self.keyword = keyword
        super().__init__(
            message=f"Conflicting '{keyword}' in allOf: {left!r} vs {right!r}",
            error_code="SCHEMA_CONFLICT",
            details={"keyword": keyword}
        )


class PlanningSkipped(ContractTesterError):
    """Operation cannot be turned into a request; excluded from dispatch."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(
            message=reason,
            error_code="PLANNING_SKIPPED",
        )


class TransportError(ContractTesterError):
    """Request never produced an HTTP response."""
    def __init__(self, message: str = "Transport failure", details: Optional[dict] = None):
        super().__init__(
            message=message,
            error_code="TRANSPORT_ERROR",
            details=details
        )


class RequestTimeout(TransportError):
    """Request exceeded its per-request timeout."""
    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(
            message=f"Request timed out after {timeout:.1f}s",
            details={"timeout": timeout}
        )
        self.error_code = "TIMEOUT"
