"""
stepflow CLI Entry Point

Step-driven diagram player and exporter for the bundled scenarios.

Usage:
    stepflow scenarios
    stepflow show multisig_mint --step 7
    stepflow play dex
    stepflow export governance --format gif -o governance.gif
    stepflow explain lending --step 3
"""

import asyncio
import shutil
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .agents.explainer import StepExplainer
from .core.config import Config, get_config
from .core.exceptions import StepFlowError
from .core.flow_state import FlowState, FlowStateContainer
from .core.graph import OUTPUT_FORMATS, compile_graph
from .core.models import Scenario
from .core.preferences import JsonFileStore, PROVIDER_NAMES, Preferences, Provider, ThemeMode
from .core.state import create_initial_state
from .core.theme import format_status, status_color
from .engine.clock import AsyncioScheduler
from .engine.diagram import Diagram
from .engine.resolver import ResolvedFrame, resolve
from .scenarios.catalogue import list_scenarios, load_scenario
from .utils.logger import configure_logging

# Initialize CLI app
app = typer.Typer(
    name="stepflow",
    help="Step-by-step animated process diagrams: play, inspect and export scenarios",
    add_completion=False,
)

# Rich console for pretty output
console = Console()


def _bootstrap(verbose: bool = False) -> Config:
    load_dotenv()
    config = get_config()
    configure_logging("DEBUG" if verbose else config.log_level, config.structured_logging)
    return config


def _preferences(config: Config) -> Preferences:
    return Preferences(
        JsonFileStore(config.preferences_path),
        default_theme=ThemeMode(config.theme_mode),
    )


def _load(name: str) -> Scenario:
    try:
        return load_scenario(name)
    except StepFlowError as e:
        console.print(f"[red]Error:[/red] {e}", style="bold")
        raise typer.Exit(1)


def _frame_table(scenario: Scenario, frame: ResolvedFrame) -> Table:
    table = Table(title=f"{scenario.title} · step {frame.step}/{scenario.terminal_step}")
    table.add_column("Node", style="cyan")
    table.add_column("Label")
    table.add_column("Status")
    table.add_column("Active", justify="center")
    active = set(frame.active_node_ids)
    for node in frame.nodes:
        status = node.data.status or "NEW"
        marker = "●" if node.data.is_current else ("○" if node.id in active else "")
        table.add_row(
            node.id,
            node.data.label,
            f"[{status_color(status)}]{format_status(status)}[/]",
            marker,
        )
    return table


def _step_panel(scenario: Scenario, step: int) -> Panel:
    copy = scenario.step_copy(step)
    if copy is None:
        return Panel(scenario.summary or scenario.title, title=f"[bold]{scenario.title}[/bold]")
    body = f"{copy.description}\n\n[cyan]What:[/cyan] {copy.what}\n[cyan]Why:[/cyan] {copy.why}"
    return Panel(body, title=f"[bold]Step {step}: {copy.title}[/bold]")


# ============================================
# Commands
# ============================================

@app.command()
def scenarios() -> None:
    """List the bundled scenarios."""
    _bootstrap()
    table = Table(title="Scenarios")
    table.add_column("Id", style="cyan")
    table.add_column("Title")
    table.add_column("Steps", justify="right")
    table.add_column("Nodes", justify="right")
    for scenario_id in list_scenarios():
        scenario = _load(scenario_id)
        table.add_row(scenario.id, scenario.title, str(scenario.terminal_step), str(len(scenario.nodes)))
    console.print(table)


@app.command()
def show(
    scenario: str = typer.Argument(..., help="Scenario id or path to a scenario JSON file"),
    step: int = typer.Option(0, "--step", "-s", help="Step to resolve (clamped to the table)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Print the resolved frame for one step."""
    _bootstrap(verbose)
    loaded = _load(scenario)
    frame = resolve(step, loaded.graph, loaded.highlight_table)
    console.print(_step_panel(loaded, frame.step))
    console.print(_frame_table(loaded, frame))
    current = sorted(frame.current_edge_ids)
    console.print(f"[cyan]Current edges:[/cyan] {', '.join(current) or '—'}")


async def _play(scenario: Scenario, config: Config, start_step: int) -> None:
    scheduler = AsyncioScheduler()
    flow = FlowStateContainer(scenario.terminal_step, FlowState(step=start_step))
    diagram = Diagram(scenario, flow, scheduler, config=config)
    done = asyncio.Event()

    diagram.mount()

    def on_change(new: FlowState, old: FlowState) -> None:
        if new.step != old.step:
            console.print(_step_panel(scenario, new.step))
            console.print(_frame_table(scenario, diagram.frame))
        if old.is_playing and not new.is_playing:
            done.set()

    unsubscribe = flow.subscribe(on_change)
    console.print(_step_panel(scenario, flow.step))
    console.print(_frame_table(scenario, diagram.frame))
    diagram.autoplay.play()
    if not flow.is_playing:
        done.set()
    try:
        await done.wait()
    finally:
        unsubscribe()
        diagram.unmount()


@app.command()
def play(
    scenario: str = typer.Argument(..., help="Scenario id or path to a scenario JSON file"),
    start: int = typer.Option(0, "--start", help="Step to start from"),
    interval_ms: Optional[int] = typer.Option(None, "--interval-ms", min=1, help="Autoplay cadence override"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Autoplay a scenario in the terminal."""
    config = _bootstrap(verbose)
    if interval_ms is not None:
        try:
            config = Config.model_validate({**config.model_dump(), "autoplay_interval_ms": interval_ms})
        except ValidationError as e:
            console.print(f"[red]Error:[/red] invalid --interval-ms: {e.errors()[0]['msg']}", style="bold")
            raise typer.Exit(1)
    loaded = _load(scenario)
    try:
        asyncio.run(_play(loaded, config, start))
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Playback stopped by user.[/yellow]")
        raise typer.Exit(130)
    console.print("[green]✓ Reached the final step.[/green]")


@app.command()
def export(
    scenario: str = typer.Argument(..., help="Scenario id or path to a scenario JSON file"),
    output_format: str = typer.Option("gif", "--format", "-f", help="gif, html or svg"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output path (default: auto-generated)"),
    step: Optional[int] = typer.Option(None, "--step", "-s", help="Step to export (svg only)"),
    theme: Optional[str] = typer.Option(None, "--theme", help="light or dark (default: saved preference)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Export a scenario as an animated GIF, an HTML player or an SVG."""
    config = _bootstrap(verbose)

    if output_format not in OUTPUT_FORMATS:
        console.print(f"[red]Error:[/red] format must be one of {', '.join(OUTPUT_FORMATS)}", style="bold")
        raise typer.Exit(1)

    theme_mode = theme or _preferences(config).theme_mode.value
    initial_state = create_initial_state(
        scenario_ref=scenario,
        output_format=output_format,
        output_path=str(output) if output else None,
        theme_mode=theme_mode,
        step=step,
    )

    try:
        console.print("\n[cyan]Initializing LangGraph workflow...[/cyan]")
        graph = compile_graph()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task(f"[cyan]Exporting {scenario} as {output_format}...", total=None)
            final_state = graph.invoke(initial_state)
            progress.update(task, completed=True)

    except KeyboardInterrupt:
        console.print("\n\n[yellow]Operation cancelled by user.[/yellow]")
        raise typer.Exit(130)

    except Exception as e:
        console.print(f"\n[red]Fatal error:[/red] {str(e)}", style="bold")
        if verbose:
            import traceback
            console.print("\n[red]Traceback:[/red]")
            console.print(traceback.format_exc())
        raise typer.Exit(1)

    errors = final_state.get("errors", [])
    if errors:
        console.print("\n[red]Errors occurred during export:[/red]", style="bold")
        for error in errors:
            console.print(f"  • {error}", style="red")
        raise typer.Exit(1)

    result_path = final_state.get("result_path")
    if not result_path or not Path(result_path).exists():
        console.print("\n[red]Error:[/red] export produced no output file", style="bold")
        raise typer.Exit(1)

    frames_dir = final_state.get("frames_dir")
    if frames_dir and not verbose:
        shutil.rmtree(frames_dir, ignore_errors=True)

    final_path = Path(result_path)
    file_size = final_path.stat().st_size / 1024
    warnings = final_state["artifacts"].get("warnings", [])
    console.print(
        Panel.fit(
            f"[green]✓ Success![/green]\n\n"
            f"[cyan]Saved to:[/cyan] {final_path}\n"
            f"[cyan]File size:[/cyan] {file_size:.1f} KB\n"
            f"[cyan]Frames:[/cyan] {final_state['artifacts'].get('frame_count', 0)}",
            title="[bold green]Export Complete[/bold green]",
            border_style="green",
        )
    )
    if warnings:
        console.print(f"[yellow]{len(warnings)} data warning(s):[/yellow]")
        for warning in warnings:
            console.print(f"  • {warning}", style="yellow")


@app.command()
def explain(
    scenario: str = typer.Argument(..., help="Scenario id or path to a scenario JSON file"),
    step: int = typer.Option(0, "--step", "-s", help="Step to explain"),
    offline: bool = typer.Option(False, "--offline", help="Skip the LLM and use the scenario copy"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Explain one step with the selected AI provider."""
    config = _bootstrap(verbose)
    loaded = _load(scenario)
    explainer = StepExplainer(_preferences(config), config=config)
    step = max(0, min(step, loaded.terminal_step))

    with console.status(f"[cyan]Asking {PROVIDER_NAMES[explainer.provider]}...[/cyan]"):
        result = explainer.explain(loaded, step, use_hardcoded=offline)

    console.print(Panel(result.explanation, title=f"[bold]{loaded.title} · step {step}[/bold]"))
    if result.technical_details:
        console.print(Panel(result.technical_details, title="Technical details"))
    if result.technical_code:
        console.print(Panel(result.technical_code, title="Code"))
    if result.simplified_explanation:
        console.print(Panel(result.simplified_explanation, title="In simple terms"))
    for scenario_text in result.what_if_scenarios or []:
        console.print(f"  • {scenario_text}")
    if result.source != "llm":
        console.print(f"[dim]source: {result.source}[/dim]")


@app.command()
def provider(
    name: Optional[Provider] = typer.Argument(None, help="openai, gemini or claude"),
    test: bool = typer.Option(False, "--test", help="Check that the provider's API key works"),
) -> None:
    """Show or change the explanation provider."""
    config = _bootstrap()
    prefs = _preferences(config)
    if name is not None:
        prefs.provider = name
    current = prefs.provider
    console.print(f"[cyan]Provider:[/cyan] {PROVIDER_NAMES[current]} ({config.model_for(current.value)})")
    if test:
        ok, message = StepExplainer(prefs, config=config).test_api_key()
        console.print(f"[{'green' if ok else 'red'}]{message}[/]")
        if not ok:
            raise typer.Exit(1)


@app.command()
def theme(
    mode: Optional[str] = typer.Argument(None, help="light, dark or toggle"),
) -> None:
    """Show or change the saved theme mode."""
    config = _bootstrap()
    prefs = _preferences(config)
    if mode == "toggle":
        prefs.toggle_theme()
    elif mode is not None:
        try:
            prefs.theme_mode = ThemeMode(mode)
        except ValueError:
            console.print("[red]Error:[/red] mode must be light, dark or toggle", style="bold")
            raise typer.Exit(1)
    console.print(f"[cyan]Theme:[/cyan] {prefs.theme_mode.value}")


if __name__ == "__main__":
    app()
