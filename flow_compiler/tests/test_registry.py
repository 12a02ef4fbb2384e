from __future__ import annotations

import dataclasses
import json

import pytest

from flow_compiler.errors import ConfigError, GraphParseError
from flow_compiler.registry.catalog import descriptor_for_capability, load_capabilities, register_capabilities
from flow_compiler.registry.node_types import (
    LOGIC_TYPE,
    PROMPT_TYPE,
    NodeTypeNotFoundError,
    NodeTypeRegistry,
    deep_merge,
    default_registry,
)
from flow_compiler.schema.models import WorkflowNode


def test_default_registry_lists_core_types() -> None:
    registry = default_registry()

    assert [descriptor.type_id for descriptor in registry.list()] == ["prompt", "tool", "logic", "memory", "integration"]
    assert "prompt" in registry
    assert registry.maybe_get("teleport") is None


def test_missing_type_raises_key_error() -> None:
    with pytest.raises(KeyError):
        default_registry().get("teleport")
    with pytest.raises(NodeTypeNotFoundError):
        default_registry().get("teleport")


def test_resolve_config_merges_defaults_without_sharing_them() -> None:
    resolved = PROMPT_TYPE.resolve_config({"instruction": "hi"})
    resolved["variables"].append({"name": "x"})

    assert resolved["model"] == "gpt-4"
    assert resolved["instruction"] == "hi"
    assert PROMPT_TYPE.default_config["variables"] == []


def test_deep_merge_replaces_lists_and_merges_dicts() -> None:
    base = {"parameters": {"method": "GET", "url": ""}, "tags": [1, 2]}

    merged = deep_merge(base, {"parameters": {"url": "https://x"}, "tags": [3]})

    assert merged == {"parameters": {"method": "GET", "url": "https://x"}, "tags": [3]}
    assert base["parameters"]["url"] == ""


@pytest.mark.parametrize(
    "config, outputs",
    [
        ({}, ["true", "false"]),
        ({"conditionType": "filter"}, ["output"]),
        (
            {"conditionType": "switch", "branches": [{"label": "a"}, {"label": "b"}, {"label": "a"}, {"label": " "}]},
            ["a", "b"],
        ),
    ],
)
def test_logic_ports_depend_on_condition_type(config, outputs) -> None:
    node = WorkflowNode(id="n", type_id="logic", config=config)
    registry = default_registry()

    assert [port.id for port in registry.output_ports(node)] == outputs
    assert registry.is_branching(node) is (len(outputs) > 1)


def test_memory_input_is_required_only_for_writes() -> None:
    registry = default_registry()
    store = WorkflowNode(id="m1", type_id="memory", config={"operation": "store"})
    retrieve = WorkflowNode(id="m2", type_id="memory", config={"operation": "retrieve"})

    assert registry.input_ports(store)[0].required is True
    assert registry.input_ports(retrieve)[0].required is False


def test_required_config_comes_from_schema() -> None:
    assert LOGIC_TYPE.required_config == ("conditionType", "condition")


def test_load_capabilities_accepts_catalog_shapes() -> None:
    entries = [{"name": "slack_post", "displayName": "Post", "requiredFields": ["channel"], "pieceName": "@activepieces/piece-slack"}]

    from_list = load_capabilities(entries)
    from_text = load_capabilities(json.dumps({"capabilities": entries}))

    assert from_list == from_text
    assert from_list[0].required_fields == ("channel",)
    assert from_list[0].piece_name == "@activepieces/piece-slack"


@pytest.mark.parametrize("payload", ["[oops", 7, [{"displayName": "no name"}]])
def test_load_capabilities_rejects_bad_catalogs(payload) -> None:
    with pytest.raises(GraphParseError):
        load_capabilities(payload)


def test_capability_descriptor_requires_catalog_fields() -> None:
    capability = load_capabilities([{"name": "gh_issue", "requiredFields": ["repo", "title"], "actionName": "create_issue"}])[0]

    descriptor = descriptor_for_capability(capability)
    registry = register_capabilities(default_registry(), [capability])

    assert descriptor.required_config == ("repo", "title")
    assert descriptor.category == "integrations"
    assert descriptor.resolve_config({}) == {"capabilityId": "gh_issue", "action": "create_issue"}
    assert registry.get("gh_issue").title == "gh_issue"


def test_register_rejects_invalid_config_schema() -> None:
    registry = default_registry()
    broken = dataclasses.replace(PROMPT_TYPE, type_id="broken", config_schema={"type": 12})

    with pytest.raises(ConfigError) as excinfo:
        registry.register(broken)

    assert "broken" in str(excinfo.value)
    assert "broken" not in registry


def test_initial_descriptors_are_schema_checked() -> None:
    broken = dataclasses.replace(LOGIC_TYPE, config_schema={"required": "condition"})

    with pytest.raises(ConfigError):
        NodeTypeRegistry({"logic": broken})
