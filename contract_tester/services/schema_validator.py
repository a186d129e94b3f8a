# contract_tester/services/schema_validator.py

import json
import logging
import math
from fractions import Fraction
from typing import Any, Optional, Union

from contract_tester.constants import NUMERIC_STRING_FORMATS
from contract_tester.models.resolved_schema import ResolvedSchema, SchemaKind, UnionMode
from contract_tester.models.verdict import Violation
from contract_tester.utils.formats import check_format, compile_pattern, parse_numeric_string
from contract_tester.utils.json_values import contains, is_number, json_type_name

logger = logging.getLogger(__name__)

PathT = tuple[Union[str, int], ...]

_JSON_MEDIA_SUFFIXES = ("/json", "+json")


def is_json_media_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    media = content_type.split(";", 1)[0].strip().lower()
    return media.endswith(_JSON_MEDIA_SUFFIXES) or media == "*/*"


def media_types_compatible(expected: Optional[str], actual: Optional[str]) -> bool:
    """Loose media-type comparison: wildcards, parameters and json suffixes."""
    if not expected or not actual:
        return True
    exp = expected.split(";", 1)[0].strip().lower()
    act = actual.split(";", 1)[0].strip().lower()
    if exp in ("*/*", act):
        return True
    if exp.endswith("/*"):
        return act.startswith(exp[:-1])
    return is_json_media_type(exp) and is_json_media_type(act)


def _describe(value: Any) -> str:
    text = json.dumps(value, ensure_ascii=False, default=str)
    return text if len(text) <= 80 else text[:77] + "..."


def _fmt_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_integral(number: float) -> bool:
    return isinstance(number, int) or number.is_integer()


def _is_multiple(number: float, divisor: float) -> bool:
    try:
        quotient = number / divisor
        return math.isclose(quotient, round(quotient), rel_tol=0, abs_tol=1e-9)
    except OverflowError:
        # quotient beyond float range: compare exactly
        return Fraction(number) % Fraction(divisor) == 0


class SchemaValidator:
    """
    Structural validation of decoded JSON values against resolved schemas.

    Stateless: one instance can serve every concurrent worker. Values are
    never coerced, and malformed data only ever produces violations.
    """

    def validate(self, value: Any, schema: ResolvedSchema, path: PathT = ()) -> list[Violation]:
        if schema.kind == SchemaKind.NEVER:
            return [Violation(path=path, constraint="false", expected="no value", actual=json_type_name(value))]
        if value is None:
            return self._validate_null(schema, path)

        if schema.kind == SchemaKind.UNION:
            return self._validate_union(value, schema, path)

        violations: list[Violation] = []
        if schema.kind == SchemaKind.ANY:
            violations.extend(self._check_enum(value, schema, path))
            return violations

        actual = json_type_name(value)
        if schema.kind in (SchemaKind.NUMBER, SchemaKind.INTEGER):
            number = self._as_number(value, schema)
            if number is None:
                return [self._type_violation(schema, actual, path)]
            if schema.kind == SchemaKind.INTEGER and not _is_integral(number):
                return [self._type_violation(schema, "number", path)]
            violations.extend(self._check_number(number, schema, path))
        elif schema.kind == SchemaKind.STRING:
            if not isinstance(value, str):
                return [self._type_violation(schema, actual, path)]
            violations.extend(self._check_string(value, schema, path))
        elif schema.kind == SchemaKind.BOOLEAN:
            if not isinstance(value, bool):
                return [self._type_violation(schema, actual, path)]
        elif schema.kind == SchemaKind.ARRAY:
            if not isinstance(value, list):
                return [self._type_violation(schema, actual, path)]
            violations.extend(self._check_array(value, schema, path))
        elif schema.kind == SchemaKind.OBJECT:
            if not isinstance(value, dict):
                return [self._type_violation(schema, actual, path)]
            violations.extend(self._check_object(value, schema, path))
        elif schema.kind == SchemaKind.NULL:
            return [self._type_violation(schema, actual, path)]

        violations.extend(self._check_enum(value, schema, path))
        return violations

    def validate_body(
        self,
        body: bytes,
        schema: ResolvedSchema,
        content_type: Optional[str] = None,
    ) -> list[Violation]:
        """Decode a response body and validate it; undecodable bodies are one violation."""
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as e:
            return [self._not_parseable(content_type, f"invalid UTF-8: {e.reason}")]

        if content_type and not is_json_media_type(content_type):
            if schema.kind in (SchemaKind.STRING, SchemaKind.ANY):
                return self.validate(text, schema)
            return [self._not_parseable(content_type, "body is not JSON")]

        try:
            value = json.loads(text)
        except ValueError as e:
            return [self._not_parseable(content_type or "application/json", str(e))]
        except RecursionError:
            return [self._not_parseable(content_type or "application/json", "nesting too deep to decode")]
        try:
            return self.validate(value, schema)
        except RecursionError:
            return [self._not_parseable(content_type or "application/json", "nesting too deep to validate")]

    # --- helpers ---

    @staticmethod
    def _not_parseable(content_type: Optional[str], reason: str) -> Violation:
        return Violation(
            path=(),
            constraint="not-parseable",
            expected=content_type or "application/json",
            actual=reason,
        )

    @staticmethod
    def _type_violation(schema: ResolvedSchema, actual: str, path: PathT) -> Violation:
        expected = schema.kind.value + (" or null" if schema.nullable else "")
        return Violation(path=path, constraint="type", expected=expected, actual=actual)

    def _validate_null(self, schema: ResolvedSchema, path: PathT) -> list[Violation]:
        if schema.nullable or schema.kind in (SchemaKind.NULL, SchemaKind.ANY):
            return self._check_enum(None, schema, path) if not schema.nullable else []
        if schema.kind == SchemaKind.UNION:
            return self._validate_union(None, schema, path)
        return [self._type_violation(schema, "null", path)]

    def _validate_union(self, value: Any, schema: ResolvedSchema, path: PathT) -> list[Violation]:
        if value is None and schema.nullable:
            return []
        matches = sum(1 for branch in schema.branches if not self.validate(value, branch, path))
        total = len(schema.branches)
        if schema.mode == UnionMode.ONE_OF:
            if matches == 1:
                return []
            return [Violation(
                path=path,
                constraint="oneOf",
                expected=f"exactly one of {total} branches",
                actual=f"matched {matches}",
            )]
        if matches >= 1:
            return []
        return [Violation(
            path=path,
            constraint="anyOf",
            expected=f"at least one of {total} branches",
            actual="matched none",
        )]

    @staticmethod
    def _as_number(value: Any, schema: ResolvedSchema) -> Optional[float]:
        if is_number(value):
            if isinstance(value, float) and not math.isfinite(value):
                return None
            return value
        if isinstance(value, str) and schema.format in NUMERIC_STRING_FORMATS:
            return parse_numeric_string(value)
        return None

    @staticmethod
    def _check_number(number: float, schema: ResolvedSchema, path: PathT) -> list[Violation]:
        violations = []
        checks = (
            ("minimum", schema.minimum, lambda b: number >= b, ">="),
            ("maximum", schema.maximum, lambda b: number <= b, "<="),
            ("exclusiveMinimum", schema.exclusive_minimum, lambda b: number > b, ">"),
            ("exclusiveMaximum", schema.exclusive_maximum, lambda b: number < b, "<"),
        )
        for constraint, bound, ok, op in checks:
            if bound is not None and not ok(bound):
                violations.append(Violation(
                    path=path,
                    constraint=constraint,
                    expected=f"{op} {_fmt_number(bound)}",
                    actual=_fmt_number(number),
                ))
        if schema.multiple_of is not None:
            if not _is_multiple(number, schema.multiple_of):
                violations.append(Violation(
                    path=path,
                    constraint="multipleOf",
                    expected=f"multiple of {_fmt_number(schema.multiple_of)}",
                    actual=_fmt_number(number),
                ))
        return violations

    @staticmethod
    def _check_string(value: str, schema: ResolvedSchema, path: PathT) -> list[Violation]:
        violations = []
        if schema.min_length is not None and len(value) < schema.min_length:
            violations.append(Violation(
                path=path,
                constraint="minLength",
                expected=f"length >= {schema.min_length}",
                actual=str(len(value)),
            ))
        if schema.max_length is not None and len(value) > schema.max_length:
            violations.append(Violation(
                path=path,
                constraint="maxLength",
                expected=f"length <= {schema.max_length}",
                actual=str(len(value)),
            ))
        if schema.pattern is not None and not compile_pattern(schema.pattern).search(value):
            violations.append(Violation(
                path=path,
                constraint="pattern",
                expected=schema.pattern,
                actual=_describe(value),
            ))
        if not check_format(schema.format, value):
            violations.append(Violation(
                path=path,
                constraint="format",
                expected=schema.format or "",
                actual=_describe(value),
            ))
        return violations

    def _check_array(self, value: list, schema: ResolvedSchema, path: PathT) -> list[Violation]:
        violations = []
        if schema.min_items is not None and len(value) < schema.min_items:
            violations.append(Violation(
                path=path,
                constraint="minItems",
                expected=f"at least {schema.min_items} items",
                actual=str(len(value)),
            ))
        elif schema.max_items is not None and len(value) > schema.max_items:
            violations.append(Violation(
                path=path,
                constraint="maxItems",
                expected=f"at most {schema.max_items} items",
                actual=str(len(value)),
            ))
        if schema.items is not None:
            for index, element in enumerate(value):
                violations.extend(self.validate(element, schema.items, path + (index,)))
        return violations

    def _check_object(self, value: dict, schema: ResolvedSchema, path: PathT) -> list[Violation]:
        violations = []
        for key in schema.required:
            if key not in value:
                violations.append(Violation(
                    path=path + (key,),
                    constraint="required",
                    expected="missing required property",
                    actual="absent",
                ))
        for key, member in value.items():
            declared = schema.properties.get(key)
            if declared is not None:
                violations.extend(self.validate(member, declared, path + (key,)))
            elif isinstance(schema.additional_properties, ResolvedSchema):
                violations.extend(self.validate(member, schema.additional_properties, path + (key,)))
            elif schema.additional_properties is False:
                violations.append(Violation(
                    path=path + (key,),
                    constraint="additionalProperties",
                    expected="no undeclared properties",
                    actual=f"unexpected property {key!r}",
                ))
        return violations

    @staticmethod
    def _check_enum(value: Any, schema: ResolvedSchema, path: PathT) -> list[Violation]:
        if schema.enum is None or contains(schema.enum, value):
            return []
        return [Violation(
            path=path,
            constraint="enum",
            expected="one of " + _describe(list(schema.enum)),
            actual=_describe(value),
        )]


def validate(json_value: Any, resolved_schema: ResolvedSchema) -> list[Violation]:
    """Violations of `json_value` against `resolved_schema`; empty means conformant."""
    return SchemaValidator().validate(json_value, resolved_schema)
