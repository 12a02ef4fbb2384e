"""
Emitter for script-generation engines.

Every non-entry plan step becomes one generated Python module. The manifest
records the call order, the wiring between modules, where each module reads
its input from, and the failure module the engine runs when a step raises.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Set

from flow_compiler.emitters.base import Emitter, derive_input_schema
from flow_compiler.emitters.templates import has_template, render_failure_module, render_module
from flow_compiler.schema.graph import Graph
from flow_compiler.schema.models import (
    LinearizedPlan,
    ManifestStep,
    NextAction,
    PlanStep,
    ScriptBundle,
    ScriptManifest,
    ScriptModule,
)

LANGUAGE = "python3"
FAILURE_MODULE = "failure_handler"
FLOW_INPUT = "flow_input"


def module_slug(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", (value or "").lower())
    return slug.strip("_")


class ScriptEmitter(Emitter):
    backend = "script"

    def supports(self, type_id: str) -> bool:
        return self._template_for(type_id) is not None

    def _template_for(self, type_id: str) -> Optional[str]:
        if has_template(type_id):
            return type_id
        descriptor = self.registry.maybe_get(type_id)
        # Catalog capabilities reuse the integration template.
        if descriptor is not None and descriptor.category == "integrations":
            return "integration"
        return None

    def _emit(self, plan: LinearizedPlan, graph: Graph) -> ScriptBundle:
        names = self._module_names(plan, graph)
        modules: List[ScriptModule] = []
        manifest_steps: List[ManifestStep] = []

        for step in plan.chain:
            if step.node_id == plan.entry_node_id:
                continue
            node = graph.node(step.node_id)
            config = self.resolved_config(graph, step)
            modules.append(
                ScriptModule(
                    name=names[step.node_id],
                    language=LANGUAGE,
                    content=render_module(self._template_for(step.type_id), config, node.label or step.node_id),
                )
            )
            manifest_steps.append(
                ManifestStep(
                    id=step.node_id,
                    module=names[step.node_id],
                    next_default=step.next_default,
                    branches=dict(step.branches) if step.branches is not None else None,
                    input_transforms=self._input_transforms(plan, step),
                )
            )

        modules.append(ScriptModule(name=FAILURE_MODULE, language=LANGUAGE, content=render_failure_module(self.agent_name)))

        entry = plan.entry_step
        entry_config = self.resolved_config(graph, entry) if entry is not None else {}
        manifest = ScriptManifest(
            summary=f"{self.agent_name} - AI Agent Workflow",
            start=_start(entry),
            module_order=tuple(step.module for step in manifest_steps),
            failure_module=FAILURE_MODULE,
            input_schema={
                "type": "object",
                "properties": {
                    FLOW_INPUT: {
                        **derive_input_schema(entry_config),
                        "description": "Input data for the workflow",
                    }
                },
                "required": [FLOW_INPUT],
            },
            steps=tuple(manifest_steps),
        )
        return ScriptBundle(modules=tuple(modules), manifest=manifest)

    def _module_names(self, plan: LinearizedPlan, graph: Graph) -> Dict[str, str]:
        agent = module_slug(self.agent_name) or "agent"
        taken: Set[str] = {FAILURE_MODULE}
        names: Dict[str, str] = {}
        for step in plan.chain:
            if step.node_id == plan.entry_node_id:
                continue
            label = module_slug(graph.node(step.node_id).label) or module_slug(step.node_id)
            name = f"{agent}_{module_slug(step.type_id)}_{label}"
            if name in taken:
                name = f"{name}_{module_slug(step.node_id)}"
            taken.add(name)
            names[step.node_id] = name
        return names

    def _input_transforms(self, plan: LinearizedPlan, step: PlanStep) -> Dict[str, Dict[str, str]]:
        transforms: Dict[str, Dict[str, str]] = {}
        for index, source in enumerate(plan.predecessors(step.node_id)):
            key = "input" if index == 0 else f"input_{index}"
            expr = FLOW_INPUT if source == plan.entry_node_id else f"results.{source}"
            transforms[key] = {"expr": expr}
        return transforms


def _start(entry: Optional[PlanStep]) -> NextAction:
    if entry is None:
        return None
    if entry.branches is not None:
        return dict(entry.branches)
    return entry.next_default
