# contract_tester/services/request_planner.py

import json
import logging
import math
import re
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import quote, urlencode

from contract_tester.constants import (
    FORM_CONTENT_TYPE,
    FORMAT_PLACEHOLDERS,
    HTTP_METHODS,
    JSON_CONTENT_TYPE,
    PATTERN_CANDIDATES,
    PLACEHOLDER_STRING,
)
from contract_tester.errors import PlanningSkipped
from contract_tester.models.contract import ContractModel, Operation, RequestBody
from contract_tester.models.plan import (
    ExpectedResponse,
    OperationPlan,
    PlanningResult,
    SkippedOperation,
)
from contract_tester.models.resolved_schema import ResolvedSchema, SchemaKind
from contract_tester.services.schema_resolver import SchemaResolver
from contract_tester.services.schema_validator import SchemaValidator, is_json_media_type

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")
_BODYLESS_BY_DEFAULT = {"GET", "HEAD", "DELETE", "OPTIONS", "TRACE"}
_MAX_REPEAT = 32


class ValueSynthesizer:
    """
    Builds the smallest value that satisfies a resolved schema.

    Every value handed out has been validated against its schema;
    PlanningSkipped is raised when no conformant value can be built.
    """

    def __init__(self, validator: Optional[SchemaValidator] = None):
        self._validator = validator or SchemaValidator()

    def synthesize(self, schema: ResolvedSchema, subject: str = "value") -> Any:
        value = self._build(schema, subject)
        violations = self._validator.validate(value, schema)
        if violations:
            first = violations[0]
            raise PlanningSkipped(
                f"cannot synthesize {subject}: {first.constraint} at {first.json_path} "
                f"(expected {first.expected})"
            )
        return value

    def _conforms(self, value: Any, schema: ResolvedSchema) -> bool:
        return not self._validator.validate(value, schema)

    def _build(self, schema: ResolvedSchema, subject: str) -> Any:
        if schema.kind == SchemaKind.NEVER:
            raise PlanningSkipped(f"cannot synthesize {subject}: its schema accepts no value")
        if schema.enum is not None:
            for candidate in schema.enum:
                if self._conforms(candidate, schema):
                    return candidate
            raise PlanningSkipped(f"cannot synthesize {subject}: no enum value satisfies its schema")

        kind = schema.kind
        if kind == SchemaKind.UNION:
            for branch in schema.branches:
                try:
                    value = self._build(branch, subject)
                except PlanningSkipped:
                    continue
                if self._conforms(value, schema):
                    return value
            raise PlanningSkipped(f"cannot synthesize {subject}: no {schema.mode.value if schema.mode else 'union'} branch yields a conformant value")
        if kind == SchemaKind.NULL:
            return None
        if kind == SchemaKind.BOOLEAN:
            return False
        if kind in (SchemaKind.INTEGER, SchemaKind.NUMBER):
            return self._number(schema)
        if kind == SchemaKind.STRING:
            return self._string(schema, subject)
        if kind == SchemaKind.ARRAY:
            items = schema.items or ResolvedSchema()
            return [self._build(items, f"{subject}[]") for _ in range(schema.min_items or 0)]
        if kind == SchemaKind.OBJECT:
            value = {}
            for name in schema.required:
                member = schema.properties.get(name)
                if member is None and isinstance(schema.additional_properties, ResolvedSchema):
                    member = schema.additional_properties
                value[name] = self._build(member, f"{subject}.{name}") if member is not None else PLACEHOLDER_STRING
            return value
        return PLACEHOLDER_STRING

    @staticmethod
    def _number(schema: ResolvedSchema):
        integer = schema.kind == SchemaKind.INTEGER
        step = schema.multiple_of

        if schema.minimum is not None:
            value = schema.minimum
        elif schema.exclusive_minimum is not None:
            value = schema.exclusive_minimum + (step or 1)
        else:
            value = 0
            if schema.maximum is not None and value > schema.maximum:
                value = schema.maximum
            if schema.exclusive_maximum is not None and value >= schema.exclusive_maximum:
                value = schema.exclusive_maximum - (step or 1)

        lower = schema.exclusive_minimum if schema.minimum is None else schema.minimum
        too_high = (
            (schema.maximum is not None and value > schema.maximum)
            or (schema.exclusive_maximum is not None and value >= schema.exclusive_maximum)
        )
        if too_high and lower is not None and not integer and not step:
            # interval narrower than one unit
            upper = schema.exclusive_maximum if schema.maximum is None else schema.maximum
            value = (lower + upper) / 2

        if integer:
            value = math.ceil(value)
        if step:
            value = math.ceil(value / step) * step
        if integer or float(value).is_integer():
            return int(value)
        return value

    def _string(self, schema: ResolvedSchema, subject: str) -> str:
        candidates = []
        if schema.format in FORMAT_PLACEHOLDERS:
            candidates.append(FORMAT_PLACEHOLDERS[schema.format])
        candidates.extend(PATTERN_CANDIDATES)

        for candidate in candidates:
            for attempt in self._variants(candidate, schema):
                if self._conforms(attempt, schema):
                    return attempt
        raise PlanningSkipped(
            f"cannot synthesize {subject}: no placeholder satisfies "
            f"pattern={schema.pattern!r} format={schema.format!r} "
            f"length=[{schema.min_length}, {schema.max_length}]"
        )

    @staticmethod
    def _variants(candidate: str, schema: ResolvedSchema) -> Iterable[str]:
        """The candidate fitted to the length bounds, then repetitions of it."""
        fill = candidate[-1:] or "a"
        fitted = candidate
        if schema.min_length is not None and len(fitted) < schema.min_length:
            fitted = fitted + fill * (schema.min_length - len(fitted))
        if schema.max_length is not None and len(fitted) > schema.max_length:
            fitted = fitted[:schema.max_length]
        yield fitted
        if len(candidate) == 1 and schema.pattern is not None:
            for n in range(2, _MAX_REPEAT + 1):
                yield candidate * n


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return json.dumps(value)
    return json.dumps(value, separators=(",", ":"))


def serialize_simple(value: Any) -> str:
    """`simple` style used for path and header parameters."""
    if isinstance(value, list):
        return ",".join(_scalar_text(v) for v in value)
    if isinstance(value, dict):
        return ",".join(f"{k},{_scalar_text(v)}" for k, v in value.items())
    return _scalar_text(value)


def serialize_form(name: str, value: Any) -> list[tuple[str, str]]:
    """`form` style with explode, used for query parameters and form bodies."""
    if isinstance(value, list):
        return [(name, _scalar_text(v)) for v in value]
    if isinstance(value, dict):
        return [(k, _scalar_text(v)) for k, v in value.items()]
    return [(name, _scalar_text(value))]


class RequestPlanner:
    """
    Enumerates testable operations of a contract and builds one request each.

    Required parameters are synthesized from their schemas unless a value is
    supplied through `parameter_values`; operations whose methods are not
    selected are left out and never reported.
    """

    def __init__(
        self,
        base_url: str,
        methods: Iterable[str] = HTTP_METHODS,
        parameter_values: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        validator: Optional[SchemaValidator] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._methods = {m.upper() for m in methods}
        self._parameter_values = dict(parameter_values or {})
        self._headers = dict(headers or {})
        self._synthesizer = ValueSynthesizer(validator)

    def plan(self, contract: ContractModel) -> PlanningResult:
        resolver = SchemaResolver(contract)
        result = PlanningResult()
        for index, operation in enumerate(contract.operations):
            if operation.method.upper() not in self._methods:
                logger.debug(f"Skipping {operation.key}: method not selected")
                continue
            diagnostics: list[str] = []
            try:
                result.plans.append(self._plan_operation(index, operation, resolver, diagnostics))
            except PlanningSkipped as e:
                logger.warning(f"Planning skipped for {operation.key}: {e.reason}")
                result.skipped.append(SkippedOperation(
                    index=index,
                    operation=operation,
                    reason=e.reason,
                    diagnostics=tuple(dict.fromkeys(diagnostics)),
                ))
        logger.info(
            f"Planned {len(result.plans)} operations, skipped {len(result.skipped)}"
        )
        return result

    def _resolve(self, resolver: SchemaResolver, node: Any, diagnostics: list[str]) -> ResolvedSchema:
        schema = resolver.resolve(node)
        diagnostics.extend(schema.collect_diagnostics())
        return schema

    def _plan_operation(
        self,
        index: int,
        operation: Operation,
        resolver: SchemaResolver,
        diagnostics: list[str],
    ) -> OperationPlan:
        headers = dict(self._headers)
        supplied_headers = {name.lower() for name in headers}
        path_values: dict[str, str] = {}
        query: list[tuple[str, str]] = []
        cookies: list[str] = []

        for param in operation.parameters:
            if param.location == "header" and param.name.lower() in supplied_headers:
                continue
            override = self._parameter_values.get(param.name)
            if override is None and not (param.required or param.location == "path"):
                continue
            if override is None:
                schema = self._resolve(resolver, param.schema_node, diagnostics)
                value = self._synthesizer.synthesize(schema, f"{param.location} parameter '{param.name}'")
            else:
                value = override

            if param.location == "path":
                path_values[param.name] = quote(serialize_simple(value), safe="")
            elif param.location == "query":
                query.extend(serialize_form(param.name, value))
            elif param.location == "header":
                headers[param.name] = serialize_simple(value)
            elif param.location == "cookie":
                cookies.append(f"{param.name}={quote(serialize_simple(value), safe='')}")

        path = _PLACEHOLDER_RE.sub(lambda m: path_values.get(m.group(1), m.group(0)), operation.path)
        leftover = _PLACEHOLDER_RE.findall(path)
        if leftover:
            raise PlanningSkipped(f"unresolved path placeholders: {', '.join(leftover)}")
        if not path.startswith("/"):
            path = "/" + path

        url = self._base_url + path
        if query:
            url = f"{url}?{urlencode(query)}"
        if cookies:
            headers["Cookie"] = "; ".join(cookies)

        body = None
        if operation.request_body is not None:
            body = self._plan_body(operation, operation.request_body, resolver, headers, diagnostics)

        expected = {}
        for status, spec in operation.responses.items():
            schema = self._resolve(resolver, spec.schema_node, diagnostics) if spec.schema_node is not None else None
            expected[status] = ExpectedResponse(status=status, content_type=spec.content_type, resolved=schema)

        if not any(name.lower() == "accept" for name in headers):
            headers["Accept"] = self._accept_header(operation)

        return OperationPlan(
            index=index,
            operation=operation,
            method=operation.method.upper(),
            url=url,
            headers=headers,
            body=body,
            expected=expected,
            diagnostics=tuple(dict.fromkeys(diagnostics)),
        )

    @staticmethod
    def _accept_header(operation: Operation) -> str:
        declared = [spec.content_type for spec in operation.responses.values() if spec.content_type]
        if not declared or any(is_json_media_type(ct) for ct in declared):
            return JSON_CONTENT_TYPE
        return ", ".join(dict.fromkeys(declared))

    def _plan_body(
        self,
        operation: Operation,
        request_body: RequestBody,
        resolver: SchemaResolver,
        headers: dict[str, str],
        diagnostics: list[str],
    ) -> Optional[bytes]:
        if not request_body.required and operation.method.upper() in _BODYLESS_BY_DEFAULT:
            return None

        media = request_body.content_type.split(";", 1)[0].strip().lower()
        if is_json_media_type(media):
            encode = _encode_json
        elif media == FORM_CONTENT_TYPE:
            encode = _encode_form
        elif media.startswith("text/"):
            encode = _encode_text
        elif request_body.required:
            raise PlanningSkipped(f"unsupported request body media type {media!r}")
        else:
            logger.info(f"Omitting optional {media} body for {operation.key}")
            return None

        schema = self._resolve(resolver, request_body.schema_node, diagnostics)
        value = self._synthesizer.synthesize(schema, "request body")
        headers["Content-Type"] = request_body.content_type
        return encode(value)


def _encode_json(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":")).encode("utf-8")


def _encode_text(value: Any) -> bytes:
    return _scalar_text(value).encode("utf-8")


def _encode_form(value: Any) -> bytes:
    if not isinstance(value, dict):
        raise PlanningSkipped("form body schema does not describe an object")
    pairs: list[tuple[str, str]] = []
    for name, member in value.items():
        pairs.extend(serialize_form(name, member))
    return urlencode(pairs).encode("ascii")


def plan(contract: ContractModel, base_url: str, **options) -> PlanningResult:
    """Plan every selected operation of `contract` against `base_url`."""
    return RequestPlanner(base_url, **options).plan(contract)
