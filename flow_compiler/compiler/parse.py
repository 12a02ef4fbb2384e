"""
Stage 1: Parse a JSON payload into a Graph.

Two payload shapes are accepted:

* the native shape, whose nodes carry ``typeId`` and whose edges carry
  ``sourceNodeId``/``targetNodeId`` (the output of ``Graph.to_payload``);
* the editor's canvas shape, whose nodes carry ``type`` plus a ``data`` block
  (``label``, ``description``, ``config``) and whose edges carry
  ``source``/``target``/``sourceHandle``/``targetHandle``.

The shape is detected per element so hand-edited payloads may mix both.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping

from pydantic import ValidationError

from flow_compiler.errors import GraphParseError, InvalidReferenceError
from flow_compiler.schema.graph import Graph
from flow_compiler.schema.models import WorkflowEdge, WorkflowNode


def parse_graph(payload: Any) -> Graph:
    """
    Accepts either a JSON string or a mapping with ``nodes`` and ``edges`` and
    returns a populated Graph.
    """

    if isinstance(payload, Graph):
        return payload.copy()
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise GraphParseError(f"Invalid graph JSON payload: {exc}") from exc
    elif isinstance(payload, Mapping):
        data = payload
    else:
        raise GraphParseError(
            f"Unsupported payload type {type(payload).__name__}; expected str or Mapping"
        )

    if not isinstance(data, Mapping):
        raise GraphParseError("Graph payload must be a JSON object with 'nodes' and 'edges'")

    raw_nodes = data.get("nodes") or []
    raw_edges = data.get("edges") or []
    if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
        raise GraphParseError("'nodes' and 'edges' must be lists")

    graph = Graph()
    for index, raw in enumerate(raw_nodes):
        node = _parse_node(raw, index)
        if node.id in graph:
            raise GraphParseError(f"Duplicate node id '{node.id}'")
        graph.add_node(node)

    for index, raw in enumerate(raw_edges):
        edge = _parse_edge(raw, index)
        if edge.id in graph.edges:
            raise GraphParseError(f"Duplicate edge id '{edge.id}'")
        try:
            graph.add_edge(edge)
        except InvalidReferenceError as exc:
            raise GraphParseError(str(exc)) from exc
    return graph


def _parse_node(raw: Any, index: int) -> WorkflowNode:
    if not isinstance(raw, Mapping):
        raise GraphParseError(f"Node {index} must be an object")
    data = _canvas_node(raw) if _is_canvas_node(raw) else dict(raw)
    try:
        return WorkflowNode.model_validate(data)
    except ValidationError as exc:
        raise GraphParseError(f"Node {index} is invalid: {exc}") from exc


def _parse_edge(raw: Any, index: int) -> WorkflowEdge:
    if not isinstance(raw, Mapping):
        raise GraphParseError(f"Edge {index} must be an object")
    data = _canvas_edge(raw, index) if "source" in raw else dict(raw)
    try:
        return WorkflowEdge.model_validate(data)
    except ValidationError as exc:
        raise GraphParseError(f"Edge {index} is invalid: {exc}") from exc


def _is_canvas_node(raw: Mapping[str, Any]) -> bool:
    return "typeId" not in raw and "type_id" not in raw and ("type" in raw or "data" in raw)


def _canvas_node(raw: Mapping[str, Any]) -> Dict[str, Any]:
    block = raw.get("data") or {}
    type_id = raw.get("type")
    config = dict(block.get("config") or {})

    # Older canvases store the logic mode under ``type``.
    if type_id == "logic" and "conditionType" not in config and "type" in config:
        config["conditionType"] = config.pop("type")
    if type_id == "integration":
        if "capabilityId" not in config:
            capability = config.pop("integrationId", None) or block.get("integrationId")
            if capability:
                config["capabilityId"] = capability

    node: Dict[str, Any] = {
        "id": raw.get("id"),
        "typeId": type_id,
        "label": block.get("label") or "",
        "description": block.get("description"),
        "config": config,
    }
    if raw.get("position") is not None:
        node["position"] = raw["position"]
    return node


def _canvas_edge(raw: Mapping[str, Any], index: int) -> Dict[str, Any]:
    return {
        "id": raw.get("id") or f"edge-{index}",
        "sourceNodeId": raw.get("source"),
        "sourcePort": raw.get("sourceHandle"),
        "targetNodeId": raw.get("target"),
        "targetPort": raw.get("targetHandle"),
    }

