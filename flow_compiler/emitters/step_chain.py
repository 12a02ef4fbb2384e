"""
Emitter for declarative step-chain engines.

Each node type maps to one StepMapping: the engine step type plus a pure
transform from the node's resolved config to engine-native settings. The
entry node becomes the flow trigger; every other plan step becomes a step
whose ``nextAction`` is either the next step's name or, for branching nodes,
a ``{label: name | None}`` map.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from flow_compiler.emitters.base import Emitter, derive_input_schema
from flow_compiler.registry.node_types import NodeTypeRegistry
from flow_compiler.schema.graph import Graph
from flow_compiler.schema.models import (
    CapabilityDescriptor,
    LinearizedPlan,
    NextAction,
    PlanStep,
    StepChainDocument,
    StepChainStep,
    StepChainTrigger,
    WorkflowNode,
)

Transform = Callable[[Mapping[str, Any], WorkflowNode], Dict[str, Any]]
StepTypeRule = Union[str, Callable[[Mapping[str, Any]], str]]

PIECE = "PIECE"
CODE = "CODE"
BRANCH = "BRANCH"

HTTP_PIECE = "@activepieces/piece-http"
HTTP_PIECE_VERSION = "~0.3.0"
PIECE_VERSION = "~0.1.0"
HTTP_ACTION = "send_request"

DEFAULT_INTEGRATION_PIECES: Dict[str, str] = {
    "slack": "@activepieces/piece-slack",
    "notion": "@activepieces/piece-notion",
    "gmail": "@activepieces/piece-gmail",
    "github": "@activepieces/piece-github",
    "discord": "@activepieces/piece-discord",
    "airtable": "@activepieces/piece-airtable",
    "google-sheets": "@activepieces/piece-google-sheets",
}


@dataclass(frozen=True)
class StepMapping:
    step_type: StepTypeRule
    transform: Transform

    def type_for(self, config: Mapping[str, Any]) -> str:
        if callable(self.step_type):
            return self.step_type(config)
        return self.step_type


def _settings(input_: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    settings: Dict[str, Any] = dict(extra)
    settings["input"] = input_
    settings["inputUiInfo"] = {}
    return settings


def _http_request(method: Any, url: Any, headers: Any, body: Any) -> Dict[str, Any]:
    return {
        "request": {
            "method": method or "GET",
            "url": url or "",
            "headers": dict(headers or {}),
            "body": body,
        }
    }


def _connection_ref(credential_id: Optional[str]) -> Optional[str]:
    if not credential_id:
        return None
    return "{{connections['%s']}}" % credential_id


def _prompt_settings(config: Mapping[str, Any], node: WorkflowNode) -> Dict[str, Any]:
    return _settings(
        {
            "instruction": config.get("instruction", ""),
            "model": config.get("model"),
            "temperature": config.get("temperature"),
            "maxTokens": config.get("maxTokens"),
            "variables": list(config.get("variables") or []),
        }
    )


def _tool_step_type(config: Mapping[str, Any]) -> str:
    return PIECE if config.get("service") == "http" else CODE


def _tool_settings(config: Mapping[str, Any], node: WorkflowNode) -> Dict[str, Any]:
    params = dict(config.get("parameters") or {})
    if config.get("service") == "http":
        return _settings(
            _http_request(params.get("method"), params.get("url"), params.get("headers"), params.get("body")),
            pieceName=HTTP_PIECE,
            pieceVersion=HTTP_PIECE_VERSION,
            actionName=HTTP_ACTION,
        )
    return _settings(
        {
            "service": config.get("service"),
            "action": config.get("action"),
            "parameters": params,
        }
    )


def _logic_step_type(config: Mapping[str, Any]) -> str:
    return CODE if config.get("conditionType") == "filter" else BRANCH


def _logic_settings(config: Mapping[str, Any], node: WorkflowNode) -> Dict[str, Any]:
    return _settings(
        {
            "conditionType": config.get("conditionType"),
            "condition": config.get("condition", ""),
            "branches": list(config.get("branches") or []),
        }
    )


def _memory_settings(config: Mapping[str, Any], node: WorkflowNode) -> Dict[str, Any]:
    return _settings(
        {
            "operation": config.get("operation"),
            "key": config.get("key"),
            "value": config.get("value"),
            "scope": config.get("scope"),
        }
    )


class StepChainEmitter(Emitter):
    backend = "step_chain"

    def __init__(
        self,
        registry: Optional[NodeTypeRegistry] = None,
        *,
        agent_name: str = "agent",
        mappings: Optional[Mapping[str, StepMapping]] = None,
    ) -> None:
        super().__init__(registry, agent_name=agent_name)
        self.pieces: Dict[str, str] = dict(DEFAULT_INTEGRATION_PIECES)
        self.actions: Dict[str, str] = {}
        self.mappings: Dict[str, StepMapping] = {
            "prompt": StepMapping(CODE, _prompt_settings),
            "tool": StepMapping(_tool_step_type, _tool_settings),
            "logic": StepMapping(_logic_step_type, _logic_settings),
            "memory": StepMapping(CODE, _memory_settings),
            "integration": StepMapping(PIECE, self._integration_settings),
        }
        if mappings:
            self.mappings.update(mappings)

    def supports(self, type_id: str) -> bool:
        return type_id in self.mappings

    def register_mapping(self, type_id: str, mapping: StepMapping) -> None:
        self.mappings[type_id] = mapping

    def register_capability(self, capability: CapabilityDescriptor) -> None:
        """Extend the piece table and add a step mapping for a catalog capability."""
        piece = capability.piece_name or f"@activepieces/piece-{capability.name}"
        self.pieces[capability.name] = piece
        if capability.action_name:
            self.actions[capability.name] = capability.action_name

        def transform(config: Mapping[str, Any], node: WorkflowNode) -> Dict[str, Any]:
            input_ = {
                key: value
                for key, value in config.items()
                if key not in ("capabilityId", "action", "credentialId", "trigger")
            }
            auth = _connection_ref(config.get("credentialId"))
            if auth:
                input_["auth"] = auth
            return _settings(
                input_,
                pieceName=piece,
                pieceVersion=PIECE_VERSION,
                actionName=config.get("action") or capability.action_name or capability.name,
            )

        self.mappings[capability.name] = StepMapping(PIECE, transform)

    # ------------------------------------------------------------------
    def _integration_settings(self, config: Mapping[str, Any], node: WorkflowNode) -> Dict[str, Any]:
        capability = config.get("capabilityId") or ""
        piece = self.pieces.get(capability)
        if piece is None:
            return _settings(
                _http_request(config.get("method"), config.get("endpoint"), config.get("headers"), config.get("body")),
                pieceName=HTTP_PIECE,
                pieceVersion=HTTP_PIECE_VERSION,
                actionName=HTTP_ACTION,
            )
        input_: Dict[str, Any] = {
            "endpoint": config.get("endpoint", ""),
            "method": config.get("method"),
            "headers": dict(config.get("headers") or {}),
            "body": config.get("body"),
            "responseMapping": dict(config.get("responseMapping") or {}),
        }
        auth = _connection_ref(config.get("credentialId"))
        if auth:
            input_["auth"] = auth
        return _settings(
            input_,
            pieceName=piece,
            pieceVersion=PIECE_VERSION,
            actionName=self.actions.get(capability, HTTP_ACTION),
        )

    def _emit(self, plan: LinearizedPlan, graph: Graph) -> StepChainDocument:
        entry = plan.entry_step
        steps: List[StepChainStep] = []
        for step in plan.chain:
            if step.node_id == plan.entry_node_id:
                continue
            node = graph.node(step.node_id)
            config = self.resolved_config(graph, step)
            mapping = self.mappings[step.type_id]
            steps.append(
                StepChainStep(
                    name=step.node_id,
                    display_name=node.label or step.node_id,
                    type=mapping.type_for(config),
                    settings=mapping.transform(config, node),
                    next_action=_next_action(step),
                )
            )
        trigger = self._trigger(graph, entry) if entry is not None else _webhook_trigger({}, None)
        return StepChainDocument(display_name=self.agent_name, trigger=trigger, steps=tuple(steps))

    def _trigger(self, graph: Graph, entry: PlanStep) -> StepChainTrigger:
        config = self.resolved_config(graph, entry)
        explicit = config.get("trigger")
        if isinstance(explicit, Mapping) and explicit.get("name"):
            piece = explicit.get("pieceName") or self.pieces.get(config.get("capabilityId") or "", HTTP_PIECE)
            return StepChainTrigger(
                name="trigger",
                display_name=graph.node(entry.node_id).label or str(explicit["name"]),
                type="PIECE_TRIGGER",
                settings={
                    "pieceName": piece,
                    "pieceVersion": PIECE_VERSION,
                    "triggerName": explicit["name"],
                    "input": dict(explicit.get("settings") or {}),
                    "inputUiInfo": {},
                },
                next_action=_next_action(entry),
            )
        return _webhook_trigger(config, entry)


def _webhook_trigger(config: Mapping[str, Any], entry: Optional[PlanStep]) -> StepChainTrigger:
    return StepChainTrigger(
        name="webhook_trigger",
        display_name="Webhook Trigger",
        type="WEBHOOK",
        settings={"inputSchema": derive_input_schema(config), "inputUiInfo": {}},
        next_action=_next_action(entry) if entry is not None else None,
    )


def _next_action(step: PlanStep) -> NextAction:
    if step.branches is not None:
        return dict(step.branches)
    return step.next_default
