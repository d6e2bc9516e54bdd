import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from flow_designer.core.config import settings
from flow_designer.core.exceptions import FlowValidationError, GenerationError, PromptTextEmptyError
from flow_designer.models.flow import ROLE_STYLES, FlowState, GenerationRequest
from flow_designer.services.ai_service import AIService
from flow_designer.services.graph_validator import ensure_valid_graph, validate_graph
from flow_designer.services.layout_engine import LayoutMode, auto_layout_nodes, layout_graph
from flow_designer.services.sequencer import build_prompt_output, render_markdown
from flow_designer.services.text_importer import parse_prompt_text_to_graph

cli_app = typer.Typer(help="Compile prompt-flow graphs into ordered prompt transcripts.")
console = Console()


def _load_flow(path: Path) -> FlowState:
    """Reads a prompt text / JSON file and turns it into a laid-out flow."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        console.print(f"[bold red]Error:[/bold red] could not read {path}: {exc}")
        raise typer.Exit(code=1)

    try:
        graph = ensure_valid_graph(parse_prompt_text_to_graph(text))
    except (PromptTextEmptyError, FlowValidationError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc.message}")
        raise typer.Exit(code=1)

    nodes, edges = layout_graph(graph)
    return FlowState(nodes=nodes, edges=edges, selected_node_id=nodes[0].id if nodes else None)


def _print_json(payload) -> None:
    console.print(Syntax(json.dumps(payload, indent=2, ensure_ascii=False), "json", theme="solarized-dark"))


@cli_app.command("compile")
def compile_flow(
    path: Path = typer.Argument(..., help="Prompt text, Markdown or JSON graph file."),
    as_json: bool = typer.Option(False, "--json", help="Print the canonical graph JSON instead of the transcript."),
    markdown: Path | None = typer.Option(None, "--markdown", "-m", help="Also write the Markdown export to this file."),
):
    """
    Imports a file, validates it and prints the ordered prompt transcript.
    """
    state = _load_flow(path)
    output = build_prompt_output(state.nodes, state.edges)

    if as_json:
        _print_json(output.graph.to_json_dict())
    else:
        for step in output.sequence:
            console.print(
                Panel(
                    Text(step.content or "(empty)"),
                    title=f"[{ROLE_STYLES[step.role]}][{step.step}] {step.role.value.upper()}[/]",
                    subtitle=step.label,
                    title_align="left",
                )
            )

    if markdown:
        markdown.write_text(render_markdown(output), encoding="utf-8")
        console.print(f"[green]Markdown written to {markdown}[/green]")


@cli_app.command()
def validate(
    path: Path = typer.Argument(..., help="JSON graph file to validate."),
):
    """
    Checks a canonical graph JSON file against the flow rules.
    """
    try:
        candidate = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    error = validate_graph(candidate)
    if error:
        console.print(f"[bold red]Invalid:[/bold red] {error}")
        raise typer.Exit(code=1)
    console.print("[bold green]Valid flow.[/bold green]")


@cli_app.command()
def layout(
    path: Path = typer.Argument(..., help="Prompt text, Markdown or JSON graph file."),
    mode: LayoutMode = typer.Option(LayoutMode.VERTICAL, "--mode", help="Layout policy."),
):
    """
    Prints the canvas positions the layout engine assigns to each node.
    """
    state = _load_flow(path)
    nodes = auto_layout_nodes(state.nodes, state.edges, mode)

    table = Table(title=f"{mode.value} layout")
    table.add_column("Node")
    table.add_column("Role")
    table.add_column("x", justify="right")
    table.add_column("y", justify="right")
    for node in nodes:
        table.add_row(node.id, f"[{ROLE_STYLES[node.role]}]{node.role.value}[/]", f"{node.position.x:g}", f"{node.position.y:g}")
    console.print(table)


@cli_app.command()
def generate(
    prompt: str = typer.Option(..., "--prompt", "-p", help="Describe the flow to generate."),
):
    """
    Calls the generation model directly to test the flow generation contract.
    """
    if not settings.GEMINI_API_KEY:
        console.print("[bold red]Error:[/bold red] GEMINI_API_KEY is not set in your .env file.")
        raise typer.Exit(code=1)

    ai_service = AIService(api_key=settings.GEMINI_API_KEY)
    console.print("[cyan]Querying generation model...[/cyan]")
    try:
        graph = asyncio.run(ai_service.generate_flow(GenerationRequest(prompt=prompt)))
    except GenerationError as exc:
        console.print(f"[bold red]Generation failed:[/bold red] {exc.message}")
        raise typer.Exit(code=1)

    console.print("\n[bold green]Generated Flow:[/bold green]")
    _print_json(graph.to_json_dict())


if __name__ == "__main__":
    cli_app()
