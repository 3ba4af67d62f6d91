"""
Main CLI interface for Survey Notes.

This module provides the Typer-based command-line interface with commands for:
- Structuring a dictated transcript into canonical section notes
- Showing the canonical section schema
- Showing the active routing configuration
"""

import json
import os
import sys
from pathlib import Path
from typing import Any, List, Optional

import pyperclip
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .core.config import ConfigError, config, load_project_env, validate_config
from .core.progress import reporter
from .core.routing import RoutingConfigCache, RoutingConfigError, default_routing_config, fetch_routing_config, merge_routing_configs
from .core.schema import resolve_schema
from .core.structure import NotesStructurer, StructuringError
from .core.types import SectionNote, StructuredNotesResult, StructureOptions

app = typer.Typer(
    name="survey-notes",
    help="Survey Notes CLI - Turn dictated heating-survey transcripts into structured depot notes",
    no_args_is_help=True,
)

console = Console()


def _read_json_file(path: str, label: str) -> Any:
    file_path = Path(path)
    if not file_path.exists():
        console.print(f"[bold red]Error:[/bold red] {label} file not found: {path}")
        sys.exit(1)
    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[bold red]Error:[/bold red] Failed to read {label} file '{path}': {e}")
        sys.exit(1)


def _load_captured(path: str) -> List[SectionNote]:
    data = _read_json_file(path, "Captured notes")
    if isinstance(data, dict):
        data = data.get("sections", [])
    if not isinstance(data, list):
        console.print("[bold red]Error:[/bold red] Captured notes must be a list of sections or an object with 'sections'")
        sys.exit(1)
    return [SectionNote.model_validate(item) for item in data if isinstance(item, dict)]


@app.command()
def structure(
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Transcript text to structure"),
    file: Optional[str] = typer.Option(None, "--file", help="Path to file containing transcript text"),
    captured: Optional[str] = typer.Option(None, "--captured", "-c", help="JSON file with notes captured so far"),
    schema: Optional[str] = typer.Option(None, "--schema", "-s", help="JSON file with depot section definitions"),
    expected: Optional[List[str]] = typer.Option(None, "--expected", "-e", help="Expected section name (repeatable)"),
    force: bool = typer.Option(False, "--force/--no-force", help="Always return every canonical section"),
    routing_config: Optional[str] = typer.Option(None, "--routing-config", "-r", help="Routing config URL or JSON file"),
    use_llm: bool = typer.Option(False, "--llm", help="Structure with the chat model instead of the rule-based router"),
    project_root: str = typer.Option(".", "--project-root", help="Project root for .survey_notes config and debug logs"),
    output_format: str = typer.Option("rich", "--format", "-f", help="Output format (rich, json, plain)"),
    debug: bool = typer.Option(False, "--debug", help="Write routing decisions and timings to .survey_notes/debug"),
):
    """
    Structure a dictated transcript into depot section notes.

    Examples:
        survey-notes structure --text "Flue goes out the back wall. Need scaffold for the second floor."
        survey-notes structure --file visit.txt --captured notes.json --format json
        survey-notes structure --file visit.txt --expected "Flue" --expected "Pipe work" --force
    """
    try:
        with reporter.initialize(console, "Validating input…"):
            if text and file:
                console.print("[bold red]Error:[/bold red] Cannot specify both --text and --file options")
                sys.exit(1)

            if text is None and not file:
                console.print("[bold red]Error:[/bold red] Must specify either --text or --file option")
                sys.exit(1)

            if file:
                file_path = Path(file)
                if not file_path.exists():
                    console.print(f"[bold red]Error:[/bold red] File not found: {file}")
                    sys.exit(1)
                try:
                    text = file_path.read_text(encoding="utf-8")
                except OSError as e:
                    console.print(f"[bold red]Error:[/bold red] Failed to read file '{file}': {e}")
                    sys.exit(1)

            # CLI flag always overrides .env
            os.environ["SN_DEBUG"] = "1" if debug else os.environ.get("SN_DEBUG", "0")

            load_project_env(project_root if project_root != "." else None)
            if use_llm:
                validate_config()

            options = StructureOptions(
                expected_sections=list(expected or []),
                already_captured=_load_captured(captured) if captured else [],
                depot_sections=_read_json_file(schema, "Schema") if schema else None,
                force_structured=force,
            )

            reporter.step("Loading routing config…")
            source = routing_config or config.routing_config_source
            cache = RoutingConfigCache.from_source(
                source,
                ttl_seconds=config.routing_config_ttl,
                timeout=config.routing_fetch_timeout,
                project_root=project_root,
            )
            structurer = NotesStructurer(routing_cache=cache, project_root=project_root)

            if use_llm:
                result = structurer.structure_with_llm(text, options)
            else:
                result = structurer.structure(text, options)

            reporter.step("Printing results…")
            reporter.complete_step()
        _display_result(result, output_format)

    except ConfigError as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        sys.exit(1)
    except StructuringError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)
    finally:
        reporter.reset()


@app.command()
def sections(
    schema: Optional[str] = typer.Option(None, "--schema", "-s", help="JSON file with depot section definitions"),
):
    """
    Show the canonical section schema.

    Examples:
        survey-notes sections
        survey-notes sections --schema depot_sections.json
    """
    raw = _read_json_file(schema, "Schema") if schema else None
    resolved = resolve_schema(raw)

    table = Table(title="Canonical Sections")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Section", style="bold")
    table.add_column("Description", style="white")
    for section in resolved.sections:
        table.add_row(str(section.order), section.name, section.description)
    console.print(table)


@app.command()
def routing(
    routing_config: Optional[str] = typer.Option(None, "--routing-config", "-r", help="Routing config URL or JSON file"),
):
    """
    Show the routing configuration that structuring would use.

    Examples:
        survey-notes routing
        survey-notes routing --routing-config https://example.com/routing.json
    """
    source = routing_config or config.routing_config_source
    try:
        active = merge_routing_configs(default_routing_config(), fetch_routing_config(source, timeout=config.routing_fetch_timeout)) if source else default_routing_config()
    except RoutingConfigError as e:
        console.print(f"[bold red]Routing Config Error:[/bold red] {e}")
        sys.exit(1)

    console.print(f"[bold green]Routing config:[/bold green] {source or 'built-in default'}")

    stats_table = Table(show_header=False, box=None)
    stats_table.add_column("Key", style="cyan")
    stats_table.add_column("Value", style="white")
    stats_table.add_row("ASR rules", str(len(active.asr_normalise)))
    stats_table.add_row("Phrase overrides", str(len(active.phrase_overrides)))
    stats_table.add_row("Topics", str(len(active.intents)))
    console.print(stats_table)

    topic_table = Table(title="Topics")
    topic_table.add_column("Topic", style="cyan")
    topic_table.add_column("Section", style="white")
    topic_table.add_column("Patterns", justify="right")
    for topic, patterns in active.intents.items():
        topic_table.add_row(topic, active.topic_sections.get(topic, topic), str(len(patterns)))
    console.print(topic_table)


def _format_plain(result: StructuredNotesResult) -> str:
    blocks = []
    for note in result.sections:
        body = note.plain_text or note.natural_language
        blocks.append(f"{note.section}\n{body}")
    return "\n\n".join(blocks)


def _copy_to_clipboard(content: str) -> None:
    try:
        pyperclip.copy(content)
    except Exception:
        # Clipboard is unavailable on headless systems
        pass


def _display_result(result: StructuredNotesResult, output_format: str) -> None:
    """Display structuring results in the specified format."""
    if output_format == "json":
        json_output = json.dumps(result.model_dump(by_alias=True), indent=2, ensure_ascii=False)
        console.print_json(json_output)
        _copy_to_clipboard(json_output)
        return

    plain = _format_plain(result)
    if output_format == "plain":
        console.print(plain, markup=False, highlight=False)
        _copy_to_clipboard(plain)
        return

    if result.customer_summary:
        console.print(Panel(result.customer_summary, title="Customer summary", border_style="green"))

    for note in result.sections:
        if not note.plain_text:
            console.print(f"[dim]{note.section}: {note.natural_language}[/dim]")
            continue
        console.print(Panel(f"{note.plain_text}\n\n[italic]{note.natural_language}[/italic]", title=note.section, border_style="blue"))

    _copy_to_clipboard(plain)

    if result.materials:
        materials_table = Table(title="Materials")
        materials_table.add_column("Category", style="cyan")
        materials_table.add_column("Item", style="white")
        materials_table.add_column("Qty", justify="right")
        materials_table.add_column("Notes", style="dim")
        for material in result.materials:
            materials_table.add_row(material.category, material.item, str(material.qty), material.notes)
        console.print(materials_table)

    if result.missing_info:
        console.print("\n[yellow]Missing information:[/yellow]")
        for question in result.missing_info:
            console.print(f"  • ({question.target}) {question.question}")

    if result.sanity_notes:
        console.print("\n[yellow]Sanity checks:[/yellow]")
        for note in result.sanity_notes:
            console.print(f"  • {note}")


if __name__ == "__main__":
    app()
