#!/usr/bin/env python3
"""
CLI for the AgentFlow compiler.

Usage:
    agentflow validate graph.json
    agentflow compile graph.json --backend script --output bundle.json
    agentflow simulate graph.json --input '{"topic": "news"}' --override check=false
"""
import asyncio
import json
import traceback
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

# Load .env before importing agentflow modules
load_dotenv()

console = Console()

# Global verbose flag
VERBOSE = False

BACKEND_CHOICES = ['step_chain', 'script']


def _fail(message: str, exc: Exception = None):
    if VERBOSE and exc is not None:
        console.print(traceback.format_exc(), style="dim")
    raise click.ClickException(message)


def _read_json(path: Path, what: str):
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        _fail(f"{what} {path} is not valid JSON: {e}", e)


def _context(capabilities_file, agent_name=None):
    from flow_compiler import CompilerContext
    from flow_compiler.registry.catalog import load_capabilities
    from flow_compiler.errors import GraphParseError
    from shared.config import config as agentflow_config

    capabilities = []
    if capabilities_file is not None:
        try:
            capabilities = load_capabilities(_read_json(capabilities_file, "Capability catalog"))
        except GraphParseError as e:
            _fail(str(e), e)
    return CompilerContext.create(
        capabilities,
        large_graph_threshold=agentflow_config.large_graph_threshold,
        agent_name=agent_name or agentflow_config.default_agent_name,
    )


def _print_issues(title: str, issues, style: str):
    if not issues:
        return
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Code", style=style)
    table.add_column("Node", style="dim")
    table.add_column("Message")
    for issue in issues:
        table.add_row(issue.code, issue.node_id or issue.edge_id or "", issue.message)
    console.print(table)


def _print_issue_error(exc):
    console.print(f"[bold red]❌ {exc.__class__.__name__}:[/bold red] {exc.args[0]}")
    _print_issues("Errors", exc.issues, "red")


def _emit_json(payload, output):
    text = json.dumps(payload, indent=2, default=str)
    if output is None:
        click.echo(text)
    else:
        output.write_text(text + "\n", encoding="utf-8")
        console.print(f"[green]✓[/green] Wrote {output}")


@click.group()
@click.version_option(version="0.1.0", prog_name="agentflow")
@click.option('--verbose', '-v', is_flag=True, help='Show full error tracebacks for debugging')
def cli(verbose: bool):
    """
    🧩 AgentFlow - compile agent graphs into executable flows

    \b
    Commands:
      validate       - Check a graph and list errors and warnings
      compile        - Compile a graph for the step-chain or script engine
      simulate       - Walk a graph locally without calling any engine
      node-types     - List the node types the compiler understands
      config         - Show current configuration

    \b
    Examples:
      agentflow validate graph.json
      agentflow compile graph.json --backend script -o bundle.json
      agentflow -v simulate graph.json --override router=false
    """
    global VERBOSE
    VERBOSE = verbose


@cli.command()
@click.argument('graph_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--capabilities', '-c', 'capabilities_file', type=click.Path(exists=True, dir_okay=False, path_type=Path), help='Capability catalog JSON')
@click.option('--format', '-f', 'fmt', type=click.Choice(['json', 'table']), default='table', help='Output format')
def validate(graph_file: Path, capabilities_file, fmt: str):
    """
    Validate a graph.

    Exits with status 1 when the graph has errors. Warnings never fail.
    """
    from flow_compiler import validate as validate_payload
    from flow_compiler.errors import GraphParseError

    context = _context(capabilities_file)
    try:
        result = validate_payload(_read_json(graph_file, "Graph"), context)
    except GraphParseError as e:
        _fail(str(e), e)

    if fmt == 'json':
        click.echo(json.dumps(result.to_wire(), indent=2))
    else:
        _print_issues("Errors", result.errors, "red")
        _print_issues("Warnings", result.warnings, "yellow")
        if result.is_valid:
            console.print(f"[green]✓[/green] Valid graph ({len(result.warnings)} warnings)")
        else:
            console.print(f"[bold red]❌ Invalid graph ({len(result.errors)} errors)[/bold red]")
    if not result.is_valid:
        raise SystemExit(1)


@cli.command(name='compile')
@click.argument('graph_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--backend', '-b', type=click.Choice(BACKEND_CHOICES), default=None, help='Target engine (default: DEFAULT_BACKEND)')
@click.option('--agent-name', '-n', default=None, help='Agent name used in summaries and module names')
@click.option('--capabilities', '-c', 'capabilities_file', type=click.Path(exists=True, dir_okay=False, path_type=Path), help='Capability catalog JSON')
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path), default=None, help='Write the artifact here instead of stdout')
def compile_command(graph_file: Path, backend, agent_name, capabilities_file, output):
    """
    Compile a graph into an engine artifact.

    \b
    Example:
      agentflow compile graph.json --backend step_chain
    """
    from flow_compiler import compile_graph
    from flow_compiler.errors import GraphParseError, IssueError
    from shared.config import config as agentflow_config

    context = _context(capabilities_file, agent_name)
    backend = backend or agentflow_config.default_backend
    try:
        compiled = compile_graph(_read_json(graph_file, "Graph"), context, backend=backend)
    except GraphParseError as e:
        _fail(str(e), e)
    except IssueError as e:
        _print_issue_error(e)
        raise SystemExit(1)

    _emit_json(compiled.artifact.to_wire(), output)


@cli.command()
@click.argument('graph_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--input', '-i', 'input_json', default=None, help='Flow input as a JSON string')
@click.option('--override', '-o', 'overrides', multiple=True, help='Force a branch: NODE_ID=LABEL (repeatable)')
@click.option('--backend', '-b', type=click.Choice(BACKEND_CHOICES), default=None, help='Emitter whose mappings decide step support')
@click.option('--step-delay', type=click.FloatRange(min=0), default=None, help='Synthetic delay per step in seconds')
@click.option('--capabilities', '-c', 'capabilities_file', type=click.Path(exists=True, dir_okay=False, path_type=Path), help='Capability catalog JSON')
@click.option('--format', '-f', 'fmt', type=click.Choice(['json', 'table']), default='table', help='Output format')
def simulate(graph_file: Path, input_json, overrides, backend, step_delay, capabilities_file, fmt: str):
    """
    Simulate a graph locally.

    No engine or model is called. Branches follow --override, else the first
    branch whose condition is a literal like "true" or "default".
    """
    from flow_compiler import plan_graph
    from flow_compiler.emitters import get_emitter
    from flow_compiler.errors import GraphParseError, IssueError
    from flow_compiler.runtime.simulator import ExecutionSimulator
    from shared.config import config as agentflow_config

    branch_overrides = {}
    for item in overrides:
        node_id, sep, label = item.partition('=')
        if not sep or not node_id or not label:
            raise click.BadParameter(f"expected NODE_ID=LABEL, got '{item}'", param_hint='--override')
        branch_overrides[node_id] = label

    flow_input = None
    if input_json is not None:
        try:
            flow_input = json.loads(input_json)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint='--input')

    context = _context(capabilities_file)
    try:
        planned = plan_graph(_read_json(graph_file, "Graph"), context)
    except GraphParseError as e:
        _fail(str(e), e)
    except IssueError as e:
        _print_issue_error(e)
        raise SystemExit(1)

    emitter = get_emitter(
        backend or agentflow_config.default_backend,
        context.registry,
        agent_name=context.agent_name,
        capabilities=context.capabilities,
    )
    simulator = ExecutionSimulator(emitter, step_delay=step_delay, branch_overrides=branch_overrides)
    trace = asyncio.run(simulator.simulate(planned.plan, flow_input, graph=planned.graph))

    if fmt == 'json':
        click.echo(json.dumps(trace.to_wire(), indent=2))
    else:
        table = Table(title=f"Run {trace.run_id}", box=box.ROUNDED)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Node", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Branch / Error")
        for index, step in enumerate(trace.steps, start=1):
            ok = step.status.value == "succeeded"
            status = "[green]●[/green]" if ok else "[red]✗[/red]"
            branch = (step.output or {}).get("branch") if isinstance(step.output, dict) else None
            table.add_row(str(index), step.node_id, status, step.error or branch or "")
        console.print(table)
        colour = "green" if trace.status.value == "succeeded" else "red"
        console.print(f"[bold {colour}]Run {trace.status.value}[/bold {colour}]" + (f": {trace.error}" if trace.error else ""))
    if trace.status.value != "succeeded":
        raise SystemExit(1)


@cli.command(name='node-types')
@click.option('--format', '-f', 'fmt', type=click.Choice(['json', 'table']), default='table', help='Output format')
def node_types(fmt: str):
    """List the built-in node types and their ports."""
    from flow_compiler.registry.node_types import default_registry

    descriptors = default_registry().list()
    if fmt == 'json':
        output = []
        for descriptor in descriptors:
            resolved = descriptor.resolve_config({})
            output.append({
                "typeId": descriptor.type_id,
                "title": descriptor.title,
                "category": descriptor.category,
                "required": list(descriptor.required_config),
                "inputs": [port.id for port in descriptor.inputs_for(resolved)],
                "outputs": [port.id for port in descriptor.outputs_for(resolved)],
            })
        click.echo(json.dumps(output, indent=2))
        return

    table = Table(title="Node types", box=box.ROUNDED)
    table.add_column("Type", style="cyan")
    table.add_column("Category", style="dim")
    table.add_column("Required config")
    table.add_column("Inputs")
    table.add_column("Outputs")
    for descriptor in descriptors:
        resolved = descriptor.resolve_config({})
        table.add_row(
            descriptor.type_id,
            descriptor.category,
            ", ".join(descriptor.required_config),
            ", ".join(port.id for port in descriptor.inputs_for(resolved)),
            ", ".join(port.id for port in descriptor.outputs_for(resolved)),
        )
    console.print(table)


@cli.command()
@click.option('--format', '-f', 'fmt', type=click.Choice(['json', 'table']), default='table', help='Output format')
def config(fmt: str):
    """
    Show current configuration.

    Displays configuration values loaded from environment variables and .env file.
    """
    from shared.config import config as agentflow_config

    # Configuration sections to display
    sections = {
        "Execution Engine": [
            ("engine_base_url", "ENGINE_BASE_URL", False),  # (attr, env_var, is_secret)
            ("engine_api_token", "ENGINE_API_TOKEN", True),
            ("engine_request_timeout", "ENGINE_REQUEST_TIMEOUT", False),
            ("engine_poll_interval", "ENGINE_POLL_INTERVAL", False),
            ("engine_poll_timeout", "ENGINE_POLL_TIMEOUT", False),
        ],
        "Compiler": [
            ("default_agent_name", "DEFAULT_AGENT_NAME", False),
            ("default_backend", "DEFAULT_BACKEND", False),
            ("large_graph_threshold", "LARGE_GRAPH_THRESHOLD", False),
            ("simulator_step_delay", "SIMULATOR_STEP_DELAY", False),
            ("log_level", "LOG_LEVEL", False),
        ],
    }

    if fmt == 'json':
        output = {}
        for section, items in sections.items():
            output[section] = {}
            for attr, env_var, is_secret in items:
                value = getattr(agentflow_config, attr, None)
                if is_secret and value:
                    output[section][attr] = "***" + value[-4:] if len(str(value)) > 4 else "***"
                else:
                    output[section][attr] = value
        click.echo(json.dumps(output, indent=2, default=str))
        return

    console.print(Panel.fit(
        "[bold cyan]🧩 AgentFlow Configuration[/bold cyan]",
        border_style="cyan"
    ))
    for section, items in sections.items():
        table = Table(title=section, box=box.ROUNDED)
        table.add_column("Setting", style="cyan")
        table.add_column("Env Variable", style="dim")
        table.add_column("Value")
        table.add_column("Status", justify="center")

        for attr, env_var, is_secret in items:
            value = getattr(agentflow_config, attr, None)
            if value is None:
                display_value = "[dim]not set[/dim]"
                status = "[yellow]○[/yellow]"
            elif is_secret:
                display_value = "***" + str(value)[-4:] if len(str(value)) > 4 else "***"
                status = "[green]●[/green]"
            else:
                display_value = str(value)
                status = "[green]●[/green]"

            table.add_row(attr, env_var, display_value, status)

        console.print(table)
        console.print()


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
