# contract_tester/services/schema_resolver.py

import logging
import re
from typing import Any, Optional

from contract_tester.errors import SchemaConflictError, UnresolvedReferenceError
from contract_tester.models.contract import ContractModel
from contract_tester.models.resolved_schema import ResolvedSchema, SchemaKind, UnionMode
from contract_tester.utils.formats import compile_pattern
from contract_tester.utils.json_pointer import resolve_pointer
from contract_tester.utils.json_values import contains

logger = logging.getLogger(__name__)

_TYPE_KINDS = {
    "object": SchemaKind.OBJECT,
    "array": SchemaKind.ARRAY,
    "string": SchemaKind.STRING,
    "number": SchemaKind.NUMBER,
    "integer": SchemaKind.INTEGER,
    "boolean": SchemaKind.BOOLEAN,
    "null": SchemaKind.NULL,
}

_OBJECT_KEYWORDS = ("properties", "required", "additionalProperties")
_ARRAY_KEYWORDS = ("items", "minItems", "maxItems")
_STRING_KEYWORDS = ("pattern", "minLength", "maxLength")
_NUMBER_KEYWORDS = ("minimum", "maximum", "exclusiveMinimum", "exclusiveMaximum", "multipleOf")

_COMPOSITION_KEYWORDS = ("allOf", "anyOf", "oneOf")


def _accepts_null(node: ResolvedSchema) -> bool:
    return node.nullable or node.kind in (SchemaKind.ANY, SchemaKind.NULL)


def _dedupe(*groups: tuple[str, ...]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for group in groups:
        for item in group:
            seen.setdefault(item, None)
    return tuple(seen)


def _tighter(left, right, pick):
    if left is None:
        return right
    if right is None:
        return left
    return pick(left, right)


def _merge_kind(left: SchemaKind, right: SchemaKind) -> SchemaKind:
    if left == right:
        return left
    if SchemaKind.NEVER in (left, right):
        return SchemaKind.NEVER
    if left == SchemaKind.ANY:
        return right
    if right == SchemaKind.ANY:
        return left
    if {left, right} == {SchemaKind.INTEGER, SchemaKind.NUMBER}:
        return SchemaKind.INTEGER
    raise SchemaConflictError("type", left.value, right.value)


def _same_or_conflict(keyword: str, left, right):
    if left is not None and right is not None and left != right:
        raise SchemaConflictError(keyword, left, right)
    return left if left is not None else right


def merge_schemas(left: ResolvedSchema, right: ResolvedSchema) -> ResolvedSchema:
    """
    Intersect two resolved nodes (the meaning of `allOf`).

    A union merged with a non-union pushes the non-union side into every
    branch; branches that become contradictory are dropped. Raises
    SchemaConflictError when the constraints cannot hold together.
    """
    if left.kind == SchemaKind.UNION and right.kind == SchemaKind.UNION:
        raise SchemaConflictError("oneOf/anyOf", left.mode, right.mode)
    if right.kind == SchemaKind.UNION:
        left, right = right, left
    if left.kind == SchemaKind.UNION:
        branches = []
        for branch in left.branches:
            try:
                branches.append(merge_schemas(branch, right))
            except SchemaConflictError:
                continue
        if not branches:
            raise SchemaConflictError(left.mode.value if left.mode else "union", "every branch", "sibling constraints")
        return left.model_copy(update={
            "branches": tuple(branches),
            "nullable": left.nullable and _accepts_null(right),
            "unresolved": left.unresolved or right.unresolved,
            "diagnostics": _dedupe(left.diagnostics, right.diagnostics),
        })

    kind = _merge_kind(left.kind, right.kind)

    properties = dict(left.properties)
    for name, schema in right.properties.items():
        properties[name] = merge_schemas(properties[name], schema) if name in properties else schema

    if left.additional_properties is False or right.additional_properties is False:
        additional: Any = False
    elif isinstance(left.additional_properties, ResolvedSchema) and isinstance(right.additional_properties, ResolvedSchema):
        additional = merge_schemas(left.additional_properties, right.additional_properties)
    elif isinstance(left.additional_properties, ResolvedSchema):
        additional = left.additional_properties
    elif isinstance(right.additional_properties, ResolvedSchema):
        additional = right.additional_properties
    elif left.additional_properties is True or right.additional_properties is True:
        additional = True
    else:
        additional = None

    if left.items is not None and right.items is not None:
        items = merge_schemas(left.items, right.items)
    else:
        items = left.items if left.items is not None else right.items

    if left.enum is not None and right.enum is not None:
        enum = tuple(v for v in left.enum if contains(right.enum, v))
        if not enum:
            raise SchemaConflictError("enum", list(left.enum), list(right.enum))
    else:
        enum = left.enum if left.enum is not None else right.enum

    return ResolvedSchema(
        kind=kind,
        nullable=_accepts_null(left) and _accepts_null(right),
        required=_dedupe(left.required, right.required),
        properties=properties,
        additional_properties=additional,
        items=items,
        min_items=_tighter(left.min_items, right.min_items, max),
        max_items=_tighter(left.max_items, right.max_items, min),
        enum=enum,
        minimum=_tighter(left.minimum, right.minimum, max),
        maximum=_tighter(left.maximum, right.maximum, min),
        exclusive_minimum=_tighter(left.exclusive_minimum, right.exclusive_minimum, max),
        exclusive_maximum=_tighter(left.exclusive_maximum, right.exclusive_maximum, min),
        multiple_of=_same_or_conflict("multipleOf", left.multiple_of, right.multiple_of),
        pattern=_same_or_conflict("pattern", left.pattern, right.pattern),
        format=_same_or_conflict("format", left.format, right.format),
        min_length=_tighter(left.min_length, right.min_length, max),
        max_length=_tighter(left.max_length, right.max_length, min),
        unresolved=left.unresolved or right.unresolved,
        diagnostics=_dedupe(left.diagnostics, right.diagnostics),
    )


class SchemaResolver:
    """
    Turns raw schema nodes of a contract into ResolvedSchema trees.

    Internal `$ref`s are followed with the chain of references currently
    being expanded passed down the recursion: a reference already on the
    chain is a cycle and becomes a permissive `any` node with a diagnostic.
    The boolean schemas map to `any` (true) and `never` (false).
    The same reference may still appear on separate branches. Broken
    references and allOf conflicts degrade the same way; nothing raises.
    """

    def __init__(self, contract: ContractModel):
        self._document = contract.document

    def resolve(self, node: Any) -> ResolvedSchema:
        return self._resolve(node, ())

    def _resolve(self, node: Any, chain: tuple[str, ...]) -> ResolvedSchema:
        if node is None or node is True:
            return ResolvedSchema()
        if node is False:
            return ResolvedSchema(kind=SchemaKind.NEVER)
        if not isinstance(node, dict):
            return self._degrade(f"schema node must be an object, got {type(node).__name__}")

        if "$ref" in node:
            return self._resolve_reference(node, chain)

        base = self._resolve_keywords(node, chain)

        try:
            for part in node.get("allOf") or []:
                base = merge_schemas(base, self._resolve(part, chain))
            for keyword in ("anyOf", "oneOf"):
                if node.get(keyword):
                    union = ResolvedSchema(
                        kind=SchemaKind.UNION,
                        mode=UnionMode(keyword),
                        branches=tuple(self._resolve(b, chain) for b in node[keyword]),
                    )
                    base = merge_schemas(base, union)
        except SchemaConflictError as e:
            return self._degrade(e.message)

        if node.get("nullable") is True and not base.nullable:
            base = base.model_copy(update={"nullable": True})
        return base

    def _resolve_reference(self, node: dict, chain: tuple[str, ...]) -> ResolvedSchema:
        ref = node["$ref"]
        if not isinstance(ref, str):
            return self._degrade(f"$ref must be a string, got {ref!r}")
        if ref in chain:
            cycle = " -> ".join(chain[chain.index(ref):] + (ref,))
            logger.debug(f"Cyclic reference cut: {cycle}")
            return ResolvedSchema.permissive(f"cyclic reference: {cycle}", ref=ref)
        try:
            target = self._lookup(ref)
        except UnresolvedReferenceError as e:
            return self._degrade(e.message, ref=ref)

        resolved = self._resolve(target, chain + (ref,))
        siblings = {k: v for k, v in node.items() if k != "$ref"}
        if any(k in siblings for k in _OBJECT_KEYWORDS + _ARRAY_KEYWORDS + _STRING_KEYWORDS + _NUMBER_KEYWORDS + _COMPOSITION_KEYWORDS + ("type", "enum")):
            try:
                resolved = merge_schemas(resolved, self._resolve(siblings, chain))
            except SchemaConflictError as e:
                return self._degrade(e.message, ref=ref)
        if siblings.get("nullable") is True:
            resolved = resolved.model_copy(update={"nullable": True})
        return resolved if resolved.ref else resolved.model_copy(update={"ref": ref})

    def _lookup(self, ref: str) -> Any:
        try:
            return resolve_pointer(self._document, ref)
        except KeyError as e:
            raise UnresolvedReferenceError(ref, str(e).strip("'\"")) from e

    def _degrade(self, diagnostic: str, ref: Optional[str] = None) -> ResolvedSchema:
        logger.warning(f"Schema degraded to 'any': {diagnostic}")
        return ResolvedSchema.permissive(diagnostic, ref=ref)

    # --- keywords ---

    def _resolve_keywords(self, node: dict, chain: tuple[str, ...]) -> ResolvedSchema:
        declared = node.get("type")
        if isinstance(declared, list):
            return self._resolve_type_list(node, declared, chain)
        if declared is None:
            kind = self._infer_kind(node)
        elif declared in _TYPE_KINDS:
            kind = _TYPE_KINDS[declared]
        else:
            return self._degrade(f"unknown schema type {declared!r}")
        return self._build(node, kind, chain)

    def _resolve_type_list(self, node: dict, declared: list, chain: tuple[str, ...]) -> ResolvedSchema:
        unknown = [t for t in declared if t not in _TYPE_KINDS]
        if unknown:
            return self._degrade(f"unknown schema types {unknown!r}")
        nullable = "null" in declared
        kinds = [_TYPE_KINDS[t] for t in declared if t != "null"]
        if not kinds:
            return self._build(node, SchemaKind.NULL, chain)
        if len(kinds) == 1:
            return self._build(node, kinds[0], chain).model_copy(update={"nullable": nullable})
        return ResolvedSchema(
            kind=SchemaKind.UNION,
            mode=UnionMode.ANY_OF,
            nullable=nullable,
            branches=tuple(self._build(node, kind, chain) for kind in kinds),
        )

    @staticmethod
    def _infer_kind(node: dict) -> SchemaKind:
        if any(k in node for k in _OBJECT_KEYWORDS):
            return SchemaKind.OBJECT
        if any(k in node for k in _ARRAY_KEYWORDS):
            return SchemaKind.ARRAY
        if any(k in node for k in _STRING_KEYWORDS):
            return SchemaKind.STRING
        if any(k in node for k in _NUMBER_KEYWORDS):
            return SchemaKind.NUMBER
        return SchemaKind.ANY

    def _build(self, node: dict, kind: SchemaKind, chain: tuple[str, ...]) -> ResolvedSchema:
        diagnostics: list[str] = []

        properties = {}
        raw_properties = node.get("properties")
        if isinstance(raw_properties, dict):
            properties = {name: self._resolve(sub, chain) for name, sub in raw_properties.items()}

        required = node.get("required")
        required = tuple(r for r in required if isinstance(r, str)) if isinstance(required, list) else ()

        additional = node.get("additionalProperties")
        if isinstance(additional, dict):
            additional = self._resolve(additional, chain)
        elif not isinstance(additional, bool):
            additional = None

        items = node.get("items")
        if isinstance(items, list):
            diagnostics.append("tuple-form 'items' is not supported; elements accept any value")
            items = ResolvedSchema()
        elif items is not None:
            items = self._resolve(items, chain)

        enum = None
        if isinstance(node.get("enum"), list):
            enum = tuple(node["enum"])
        if "const" in node:
            enum = (node["const"],)

        minimum, exclusive_minimum = self._bound(node, "minimum", "exclusiveMinimum")
        maximum, exclusive_maximum = self._bound(node, "maximum", "exclusiveMaximum")

        multiple_of = self._number(node.get("multipleOf"))
        if multiple_of is not None and multiple_of <= 0:
            diagnostics.append(f"ignored non-positive multipleOf {multiple_of}")
            multiple_of = None

        pattern = node.get("pattern")
        if pattern is not None:
            try:
                compile_pattern(str(pattern))
                pattern = str(pattern)
            except re.error as e:
                diagnostics.append(f"ignored invalid pattern {pattern!r}: {e}")
                pattern = None

        for message in diagnostics:
            logger.warning(f"Schema keyword dropped: {message}")

        return ResolvedSchema(
            kind=kind,
            required=required,
            properties=properties,
            additional_properties=additional,
            items=items,
            min_items=self._count(node.get("minItems")),
            max_items=self._count(node.get("maxItems")),
            enum=enum,
            minimum=minimum,
            maximum=maximum,
            exclusive_minimum=exclusive_minimum,
            exclusive_maximum=exclusive_maximum,
            multiple_of=multiple_of,
            pattern=pattern,
            format=node.get("format") if isinstance(node.get("format"), str) else None,
            min_length=self._count(node.get("minLength")),
            max_length=self._count(node.get("maxLength")),
            diagnostics=tuple(diagnostics),
        )

    @classmethod
    def _bound(cls, node: dict, inclusive_key: str, exclusive_key: str):
        """Normalize OpenAPI 3.0 boolean and 3.1 numeric exclusive bounds."""
        inclusive = cls._number(node.get(inclusive_key))
        exclusive = node.get(exclusive_key)
        if exclusive is True:
            return None, inclusive
        if exclusive is False or exclusive is None:
            return inclusive, None
        return inclusive, cls._number(exclusive)

    @staticmethod
    def _number(value) -> Optional[float]:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value

    @staticmethod
    def _count(value) -> Optional[int]:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            return None
        return value


def resolve(schema_node: Any, contract: ContractModel) -> ResolvedSchema:
    """Resolve one raw schema node against `contract`."""
    return SchemaResolver(contract).resolve(schema_node)
