# contract_tester/models/contract.py

# Immutable in-memory view of a parsed OpenAPI / Swagger contract
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Parameter(BaseModel):
    """One declared operation parameter."""

    model_config = ConfigDict(frozen=True)

    name: str
    location: str  # path | query | header | cookie
    required: bool = False
    schema_node: dict[str, Any] = Field(default_factory=dict)


class RequestBody(BaseModel):
    model_config = ConfigDict(frozen=True)

    content_type: str
    schema_node: Optional[dict[str, Any]] = None
    required: bool = False


class ResponseSpec(BaseModel):
    """Expected response for one status key ("200", "2XX" or "default")."""

    model_config = ConfigDict(frozen=True)

    status: str
    content_type: Optional[str] = None
    schema_node: Optional[dict[str, Any]] = None


class Operation(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    operation_id: Optional[str] = None
    parameters: tuple[Parameter, ...] = ()
    request_body: Optional[RequestBody] = None
    responses: dict[str, ResponseSpec] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.method} {self.path}"


class ContractModel(BaseModel):
    """
    Read-only contract for one run.

    `document` keeps the raw parsed document so internal `$ref` pointers
    (`#/components/schemas/...`, `#/definitions/...`) can be followed.
    """

    model_config = ConfigDict(frozen=True)

    title: str = ""
    version: str = ""
    servers: tuple[str, ...] = ()
    operations: tuple[Operation, ...] = ()
    document: dict[str, Any] = Field(default_factory=dict)

    @property
    def base_url(self) -> Optional[str]:
        """First declared server, as the tool has always done."""
        return self.servers[0] if self.servers else None
