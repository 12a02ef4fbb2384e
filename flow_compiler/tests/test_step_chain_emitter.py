from __future__ import annotations

import pytest

from flow_compiler import CompilerContext, compile_graph, plan_graph
from flow_compiler.emitters import get_emitter
from flow_compiler.emitters.step_chain import HTTP_PIECE, StepChainEmitter, StepMapping
from flow_compiler.errors import ConfigError
from flow_compiler.registry.node_types import default_registry
from flow_compiler.schema.models import CapabilityDescriptor, StepChainDocument
from flow_compiler.tests.graphs import CUSTOM_TYPE, branch_graph, edge, graph, node, prompt, research_graph


def _document(payload, **kwargs) -> StepChainDocument:
    return compile_graph(payload, CompilerContext(**kwargs), backend="step_chain").artifact


def test_linear_graph_becomes_webhook_flow() -> None:
    document = _document(research_graph(), agent_name="news-bot")

    assert document.display_name == "news-bot"
    assert document.trigger.type == "WEBHOOK"
    assert document.trigger.name == "webhook_trigger"
    assert document.trigger.next_action == "fetch"
    assert [step.name for step in document.steps] == ["fetch", "summarize"]
    assert document.step("fetch").next_action == "summarize"
    assert document.step("summarize").next_action is None


def test_webhook_input_schema_comes_from_entry_variables() -> None:
    document = _document(research_graph())

    schema = document.trigger.settings["inputSchema"]
    assert schema == {"type": "object", "properties": {"topic": {"type": "string"}}, "required": ["topic"]}


def test_http_tool_maps_to_http_piece() -> None:
    fetch = _document(research_graph()).step("fetch")

    assert fetch.type == "PIECE"
    assert fetch.display_name == "Fetch News"
    assert fetch.settings["pieceName"] == HTTP_PIECE
    assert fetch.settings["actionName"] == "send_request"
    assert fetch.settings["input"]["request"] == {
        "method": "GET",
        "url": "https://api.example.com/news",
        "headers": {},
        "body": None,
    }


def test_prompt_maps_to_code_step() -> None:
    summarize = _document(research_graph()).step("summarize")

    assert summarize.type == "CODE"
    assert summarize.settings["input"]["instruction"] == "Summarize the articles"
    assert summarize.settings["input"]["model"] == "gpt-4"


def test_branch_keys_are_preserved() -> None:
    document = _document(branch_graph())

    check = document.step("check")
    assert check.type == "BRANCH"
    assert check.next_action == {"true": "yes", "false": None}
    assert document.to_wire()["steps"][0]["nextAction"] == {"true": "yes", "false": None}


def test_explicit_trigger_becomes_piece_trigger() -> None:
    payload = research_graph()
    payload["nodes"][0]["config"]["trigger"] = {
        "name": "new_message",
        "pieceName": "@activepieces/piece-slack",
        "settings": {"channel": "#news"},
    }

    trigger = _document(payload).trigger

    assert trigger.type == "PIECE_TRIGGER"
    assert trigger.name == "trigger"
    assert trigger.settings["triggerName"] == "new_message"
    assert trigger.settings["pieceName"] == "@activepieces/piece-slack"
    assert trigger.settings["input"] == {"channel": "#news"}
    assert trigger.next_action == "fetch"


def test_integration_uses_piece_table_or_http_fallback() -> None:
    payload = graph(
        [
            prompt("start"),
            node("notify", "integration", capabilityId="slack", endpoint="/chat.postMessage", method="POST", credentialId="conn-1"),
            node("call", "integration", capabilityId="internal", endpoint="https://internal/api", method="GET"),
        ],
        [edge("start", "notify"), edge("notify", "call")],
    )

    document = _document(payload)

    notify = document.step("notify")
    assert notify.settings["pieceName"] == "@activepieces/piece-slack"
    assert notify.settings["input"]["auth"] == "{{connections['conn-1']}}"
    call = document.step("call")
    assert call.settings["pieceName"] == HTTP_PIECE
    assert call.settings["input"]["request"]["url"] == "https://internal/api"


def test_catalog_capability_maps_to_its_piece() -> None:
    capability = CapabilityDescriptor(
        name="slack_post",
        display_name="Post to Slack",
        required_fields=("channel",),
        piece_name="@activepieces/piece-slack",
        action_name="send_message",
    )
    payload = graph(
        [prompt("start"), node("post", "slack_post", channel="#general", credentialId="conn-9")],
        [edge("start", "post")],
    )
    context = CompilerContext.create([capability])

    document = compile_graph(payload, context).artifact

    post = document.step("post")
    assert post.type == "PIECE"
    assert post.settings["actionName"] == "send_message"
    assert post.settings["input"] == {"channel": "#general", "auth": "{{connections['conn-9']}}"}


def test_unmapped_type_raises_config_error() -> None:
    registry = default_registry([CUSTOM_TYPE])
    payload = graph([prompt("start"), node("odd", "custom")], [edge("start", "odd")])

    with pytest.raises(ConfigError) as excinfo:
        _document(payload, registry=registry)

    issue = excinfo.value.issues[0]
    assert issue.code == "unmapped_node_type"
    assert issue.node_id == "odd"


def test_registered_mapping_extends_emitter() -> None:
    registry = default_registry([CUSTOM_TYPE])
    payload = graph([prompt("start"), node("odd", "custom", flavour="sour")], [edge("start", "odd")])
    planned = plan_graph(payload, CompilerContext(registry=registry))

    emitter = StepChainEmitter(registry)
    emitter.register_mapping("custom", StepMapping("CODE", lambda config, n: {"input": dict(config)}))
    document = emitter.emit(planned.plan, planned.graph)

    assert document.step("odd").settings == {"input": {"flavour": "sour"}}


def test_emission_is_deterministic() -> None:
    first = _document(branch_graph(wire_false=True)).to_wire()
    second = _document(branch_graph(wire_false=True)).to_wire()
    assert first == second


def test_unknown_backend_is_rejected() -> None:
    with pytest.raises(ValueError):
        get_emitter("bpmn")
