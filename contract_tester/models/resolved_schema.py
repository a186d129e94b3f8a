# contract_tester/models/resolved_schema.py

# Dereferenced, cycle-safe validation tree
from __future__ import annotations

from enum import Enum
from typing import Any, Iterator, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SchemaKind(str, Enum):
    """Node kinds of a resolved schema."""
    OBJECT = "object"
    ARRAY = "array"
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    NULL = "null"
    UNION = "union"
    ANY = "any"
    NEVER = "never"


class UnionMode(str, Enum):
    ONE_OF = "oneOf"
    ANY_OF = "anyOf"


class ResolvedSchema(BaseModel):
    """
    One node of a resolved schema tree.

    Nodes are read-only after construction and may be shared between
    concurrent validations. `unresolved` marks nodes that stand in for a
    broken, cyclic or conflicting reference (such nodes accept any value),
    and nodes an allOf merged with one. `never` is the `false` schema.
    """

    model_config = ConfigDict(frozen=True)

    kind: SchemaKind = SchemaKind.ANY
    nullable: bool = False

    # object
    required: tuple[str, ...] = ()
    properties: dict[str, ResolvedSchema] = Field(default_factory=dict)
    additional_properties: Union[bool, ResolvedSchema, None] = None

    # array
    items: Optional[ResolvedSchema] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None

    # scalars
    enum: Optional[tuple[Any, ...]] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: Optional[float] = None
    exclusive_maximum: Optional[float] = None
    multiple_of: Optional[float] = None
    pattern: Optional[str] = None
    format: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None

    # union
    branches: tuple[ResolvedSchema, ...] = ()
    mode: Optional[UnionMode] = None

    # provenance
    ref: Optional[str] = None
    unresolved: bool = False
    diagnostics: tuple[str, ...] = ()

    @classmethod
    def permissive(cls, diagnostic: str, ref: Optional[str] = None) -> ResolvedSchema:
        """`any` node standing in for something that could not be resolved."""
        return cls(kind=SchemaKind.ANY, unresolved=True, diagnostics=(diagnostic,), ref=ref)

    def children(self) -> Iterator[ResolvedSchema]:
        yield from self.properties.values()
        if isinstance(self.additional_properties, ResolvedSchema):
            yield self.additional_properties
        if self.items is not None:
            yield self.items
        yield from self.branches

    def collect_diagnostics(self) -> list[str]:
        """All diagnostics in the tree, depth-first, without duplicates."""
        seen: dict[str, None] = {}
        stack = [self]
        while stack:
            node = stack.pop()
            for message in node.diagnostics:
                seen.setdefault(message, None)
            stack.extend(reversed(list(node.children())))
        return list(seen)


ResolvedSchema.model_rebuild()
