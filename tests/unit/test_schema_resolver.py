# tests/unit/test_schema_resolver.py
# Unit tests for reference resolution and composition

import pytest

from contract_tester.errors import SchemaConflictError
from contract_tester.models.contract import ContractModel
from contract_tester.models.resolved_schema import ResolvedSchema, SchemaKind, UnionMode
from contract_tester.services.schema_resolver import SchemaResolver, merge_schemas, resolve


def _contract(schemas: dict) -> ContractModel:
    return ContractModel(document={"components": {"schemas": schemas}})


def _ref(name: str) -> dict:
    return {"$ref": f"#/components/schemas/{name}"}


class TestReferences:
    """Test $ref following and cycle handling."""

    def test_follows_internal_reference(self):
        contract = _contract({"Pet": {"type": "object", "required": ["id"], "properties": {"id": {"type": "integer"}}}})

        schema = resolve(_ref("Pet"), contract)

        assert schema.kind == SchemaKind.OBJECT
        assert schema.required == ("id",)
        assert schema.properties["id"].kind == SchemaKind.INTEGER
        assert schema.ref == "#/components/schemas/Pet"

    def test_self_reference_terminates_with_cycle_diagnostic(self):
        contract = _contract({
            "Node": {"type": "object", "properties": {"next": _ref("Node"), "value": {"type": "string"}}},
        })

        schema = resolve(_ref("Node"), contract)

        nested = schema.properties["next"]
        assert nested.kind == SchemaKind.ANY
        assert nested.unresolved
        assert nested.diagnostics == (
            "cyclic reference: #/components/schemas/Node -> #/components/schemas/Node",
        )
        assert schema.properties["value"].kind == SchemaKind.STRING

    def test_mutual_recursion_is_cut_on_the_path(self):
        contract = _contract({
            "A": {"type": "object", "properties": {"b": _ref("B")}},
            "B": {"type": "object", "properties": {"a": _ref("A")}},
        })

        schema = resolve(_ref("A"), contract)

        cut = schema.properties["b"].properties["a"]
        assert cut.unresolved
        assert "A -> " in cut.diagnostics[0] and cut.diagnostics[0].endswith("/A")

    def test_same_reference_on_sibling_branches_is_not_a_cycle(self):
        contract = _contract({
            "Tag": {"type": "string"},
            "Pair": {"type": "object", "properties": {"left": _ref("Tag"), "right": _ref("Tag")}},
        })

        schema = resolve(_ref("Pair"), contract)

        assert schema.properties["left"].kind == SchemaKind.STRING
        assert schema.properties["right"].kind == SchemaKind.STRING
        assert schema.collect_diagnostics() == []

    def test_deep_reference_chain_terminates(self):
        depth = 40
        schemas = {f"S{i}": {"type": "object", "properties": {"next": _ref(f"S{i + 1}")}} for i in range(depth)}
        schemas[f"S{depth}"] = {"type": "object", "properties": {"loop": _ref("S0")}}

        schema = resolve(_ref("S0"), _contract(schemas))

        node = schema
        for _ in range(depth):
            node = node.properties["next"]
        assert node.properties["loop"].unresolved

    def test_missing_target_degrades_to_any(self):
        schema = resolve(_ref("Missing"), _contract({}))

        assert schema.kind == SchemaKind.ANY
        assert schema.unresolved
        assert "Unresolved reference" in schema.diagnostics[0]

    def test_external_reference_degrades_to_any(self):
        schema = resolve({"$ref": "other.yaml#/Pet"}, _contract({}))

        assert schema.unresolved
        assert schema.ref == "other.yaml#/Pet"


class TestComposition:
    """Test allOf / oneOf / anyOf and keyword normalization."""

    def test_all_of_merges_properties_and_required(self):
        contract = _contract({
            "Base": {"type": "object", "required": ["id"], "properties": {"id": {"type": "integer"}}},
        })
        node = {"allOf": [_ref("Base"), {"type": "object", "required": ["name"], "properties": {"name": {"type": "string"}}}]}

        schema = resolve(node, contract)

        assert schema.kind == SchemaKind.OBJECT
        assert schema.required == ("id", "name")
        assert set(schema.properties) == {"id", "name"}

    def test_all_of_takes_tighter_bounds(self):
        node = {"allOf": [{"type": "integer", "minimum": 1, "maximum": 10}, {"minimum": 5, "maximum": 20}]}

        schema = resolve(node, _contract({}))

        assert schema.minimum == 5
        assert schema.maximum == 10

    def test_all_of_conflicting_types_degrades(self):
        node = {"allOf": [{"type": "string"}, {"type": "integer"}]}

        schema = resolve(node, _contract({}))

        assert schema.kind == SchemaKind.ANY
        assert schema.unresolved
        assert "Conflicting 'type'" in schema.diagnostics[0]

    def test_all_of_with_cyclic_part_stays_unresolved(self):
        contract = _contract({
            "Node": {"allOf": [_ref("Node"), {"type": "object", "required": ["id"]}]},
        })

        schema = resolve(_ref("Node"), contract)

        assert schema.kind == SchemaKind.OBJECT
        assert schema.required == ("id",)
        assert schema.unresolved
        assert schema.diagnostics[0].startswith("cyclic reference")

    def test_all_of_with_missing_reference_stays_unresolved(self):
        schema = resolve({"allOf": [_ref("Missing"), {"type": "string"}]}, _contract({}))

        assert schema.kind == SchemaKind.STRING
        assert schema.unresolved

    def test_false_schema_is_never(self):
        schema = resolve(False, _contract({}))

        assert schema.kind == SchemaKind.NEVER
        assert not schema.unresolved
        assert schema.diagnostics == ()

    def test_all_of_with_false_is_never(self):
        schema = resolve({"allOf": [{"type": "string"}, False]}, _contract({}))

        assert schema.kind == SchemaKind.NEVER

    def test_one_of_builds_union(self):
        node = {"oneOf": [{"type": "string"}, {"type": "string", "enum": ["x"]}]}

        schema = resolve(node, _contract({}))

        assert schema.kind == SchemaKind.UNION
        assert schema.mode == UnionMode.ONE_OF
        assert len(schema.branches) == 2
        assert schema.branches[1].enum == ("x",)

    def test_union_with_sibling_constraints_pushes_them_into_branches(self):
        node = {"type": "object", "required": ["kind"], "anyOf": [
            {"properties": {"a": {"type": "string"}}},
            {"properties": {"b": {"type": "integer"}}},
        ]}

        schema = resolve(node, _contract({}))

        assert schema.mode == UnionMode.ANY_OF
        assert all(branch.required == ("kind",) for branch in schema.branches)

    def test_merging_two_unions_raises(self):
        left = ResolvedSchema(kind=SchemaKind.UNION, mode=UnionMode.ONE_OF, branches=(ResolvedSchema(),))
        right = ResolvedSchema(kind=SchemaKind.UNION, mode=UnionMode.ANY_OF, branches=(ResolvedSchema(),))

        with pytest.raises(SchemaConflictError):
            merge_schemas(left, right)

    def test_nullable_applies_after_composition(self):
        node = {"nullable": True, "allOf": [{"type": "string"}]}

        schema = resolve(node, _contract({}))

        assert schema.kind == SchemaKind.STRING
        assert schema.nullable

    def test_type_list_with_null(self):
        schema = resolve({"type": ["string", "null"]}, _contract({}))

        assert schema.kind == SchemaKind.STRING
        assert schema.nullable

    def test_boolean_exclusive_bounds_are_normalized(self):
        schema = resolve({"type": "number", "minimum": 0, "exclusiveMinimum": True}, _contract({}))

        assert schema.minimum is None
        assert schema.exclusive_minimum == 0

    def test_invalid_pattern_is_dropped_with_diagnostic(self):
        schema = resolve({"type": "string", "pattern": "(["}, _contract({}))

        assert schema.pattern is None
        assert "invalid pattern" in schema.diagnostics[0]

    def test_unknown_type_degrades(self):
        schema = resolve({"type": "file"}, _contract({}))

        assert schema.kind == SchemaKind.ANY
        assert schema.unresolved

    def test_resolver_instance_is_reusable(self):
        contract = _contract({"Id": {"type": "integer"}})
        resolver = SchemaResolver(contract)

        first = resolver.resolve(_ref("Id"))
        second = resolver.resolve(_ref("Id"))

        assert first == second
