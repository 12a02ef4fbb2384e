from __future__ import annotations

import pytest

from flow_compiler import CompilerContext, compile_graph, plan_graph, validate
from flow_compiler.compiler.parse import parse_graph
from flow_compiler.errors import ConfigError, GraphParseError, StructuralError, WorkflowCompilerError
from flow_compiler.schema.models import CapabilityDescriptor, ScriptBundle, StepChainDocument
from flow_compiler.tests.graphs import edge, graph, linear_graph, prompt, research_graph


def test_compile_defaults_to_step_chain() -> None:
    result = compile_graph(research_graph())

    assert isinstance(result.artifact, StepChainDocument)
    assert result.plan.entry_node_id == "start"
    assert result.validation.is_valid


def test_compile_script_backend() -> None:
    result = compile_graph(research_graph(), backend="script")
    assert isinstance(result.artifact, ScriptBundle)


def test_structural_errors_block_compilation() -> None:
    payload = graph([prompt("a"), prompt("b")], [edge("a", "b"), edge("b", "a")])

    with pytest.raises(StructuralError) as excinfo:
        compile_graph(payload)

    assert {issue.code for issue in excinfo.value.issues} == {"no_entry_point", "cycle"}


def test_config_errors_block_compilation() -> None:
    payload = graph([prompt("a", instruction="")], [])

    with pytest.raises(ConfigError) as excinfo:
        plan_graph(payload)

    assert excinfo.value.issues[0].code == "missing_required_config"


def test_fan_out_is_raised_after_validation() -> None:
    payload = graph([prompt("a"), prompt("b"), prompt("c")], [edge("a", "b"), edge("a", "c")])

    with pytest.raises(StructuralError) as excinfo:
        compile_graph(payload)

    assert excinfo.value.issues[0].code == "fan_out"


def test_warnings_do_not_block_compilation() -> None:
    result = compile_graph(linear_graph(), CompilerContext(large_graph_threshold=2))

    assert [issue.code for issue in result.validation.warnings] == ["large_graph"]


def test_parse_errors_share_the_base_class() -> None:
    with pytest.raises(WorkflowCompilerError):
        compile_graph("not json")
    with pytest.raises(GraphParseError):
        validate({"nodes": [{"id": "a", "typeId": "prompt"}], "edges": [{"id": "e", "sourceNodeId": "a", "targetNodeId": "b"}]})


def test_compile_does_not_alias_caller_graph() -> None:
    source = parse_graph(research_graph())

    result = compile_graph(source)
    source.node("fetch").label = "Renamed"
    source.remove_node("summarize")

    assert result.graph.node("fetch").label == "Fetch News"
    assert result.artifact.step("fetch").display_name == "Fetch News"
    assert [step.node_id for step in result.plan.chain] == ["start", "fetch", "summarize"]


def test_context_create_registers_capabilities() -> None:
    context = CompilerContext.create([CapabilityDescriptor(name="crm_lookup")], agent_name="crm")

    assert "crm_lookup" in context.registry
    assert context.capabilities[0].name == "crm_lookup"
    assert context.agent_name == "crm"
