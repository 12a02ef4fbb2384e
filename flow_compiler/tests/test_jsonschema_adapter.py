from __future__ import annotations

import pytest

from flow_compiler.registry.node_types import CORE_NODE_TYPES
from flow_compiler.schema.jsonschema_adapter import (
    SchemaError,
    check_schema,
    collect_errors,
    format_validation_error,
    get_validator,
)


def test_get_validator_caches_by_schema_id() -> None:
    schema = {
        "type": "object",
        "properties": {"name": {"type": "string"}},
        "required": ["name"],
    }

    first = get_validator(schema, schema_id="test.schema")
    second = get_validator(schema, schema_id="test.schema")
    assert first is second


def test_get_validator_caches_by_content() -> None:
    assert get_validator({"type": "string"}) is get_validator({"type": "string"})


def test_format_validation_error_includes_path() -> None:
    schema = {
        "type": "object",
        "properties": {"items": {"type": "array", "items": {"type": "integer"}}},
    }

    errors = collect_errors(schema, {"items": [1, "two"]})

    assert format_validation_error(errors[0]).startswith("$.items[1]:")


def test_collect_errors_is_sorted_by_path() -> None:
    schema = {
        "type": "object",
        "properties": {"b": {"type": "string"}, "a": {"type": "string"}},
    }

    errors = collect_errors(schema, {"b": 1, "a": 2})

    assert [list(error.absolute_path) for error in errors] == [["a"], ["b"]]


def test_check_schema_rejects_invalid_schema() -> None:
    with pytest.raises(SchemaError):
        check_schema({"type": 12})


@pytest.mark.parametrize("descriptor", CORE_NODE_TYPES, ids=lambda d: d.type_id)
def test_core_config_schemas_are_valid(descriptor) -> None:
    check_schema(descriptor.config_schema)
