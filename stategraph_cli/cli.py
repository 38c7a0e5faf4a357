"""Typer-based CLI for StateGraph state implication intelligence."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config
from .analyzer import ProjectAnalyzer
from .chain import chain_for
from .cli_groups import config_grp, project_grp
from .discovery import discover_project
from .errors import NoIndexDataError
from .graph_export import export_dot, export_html
from .index_cache import IndexCache
from .indexer import SearchIndex
from .issues import IssueSeverity
from .registry import StateRegistry
from .search import (
    find_by_condition,
    find_by_event,
    find_by_ticket,
    get_state_details,
    impact,
    search,
    suggest,
)
from .storage import (
    ProjectManager,
    load_discovery_result,
    persist_index,
    remove_index_snapshot,
    save_discovery_result,
)

app = typer.Typer(
    help="🧭 StateGraph CLI — search and analyze state implication projects.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(project_grp, name="project")
app.add_typer(config_grp, name="config")

console = Console()

_PROJECT_OPTION_HELP = "Project root (defaults to the current project)."
_SEVERITY_ICONS = {
    IssueSeverity.ERROR: "❌",
    IssueSeverity.WARNING: "⚠️ ",
    IssueSeverity.INFO: "ℹ️ ",
}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"StateGraph CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log indexing and analysis details."),
):
    """StateGraph CLI: index, search and analyze state implication files."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


# ===================================================================
# Helpers
# ===================================================================

def _project_name_from_path(project_path: Path) -> str:
    return project_path.resolve().name.replace(" ", "_")


def _resolve_project(project: Optional[Path]) -> Path:
    if project is not None:
        return project.resolve()
    pm = ProjectManager()
    current = pm.get_current_project()
    if not current:
        raise typer.BadParameter("No project selected. Run 'sg discover <path>' or pass --project.")
    path = pm.project_path(current)
    if path is None or not path.exists():
        raise typer.BadParameter(f"Current project '{current}' points to a missing directory.")
    return path


def _load_index(project_path: Path, force: bool = False) -> SearchIndex:
    cache = IndexCache(max_workers=config.MAX_WORKERS)
    try:
        return cache.get(project_path, force=force)
    except NoIndexDataError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)


def _print_stats(index: SearchIndex) -> None:
    stats = index.stats
    table = Table(title="Index statistics", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    rows = [
        ("States", stats.states),
        ("Transitions", stats.transitions),
        ("Validations", stats.validations),
        ("Conditions", stats.conditions),
        ("Setup routes", stats.setups),
        ("Tickets indexed", stats.tickets),
        ("Fields indexed", stats.fields),
        ("Events indexed", stats.events),
        ("Inverted index terms", stats.terms),
        ("Files seen", stats.files_seen),
        ("Files skipped", stats.files_skipped),
        ("Degraded extractions", stats.degraded),
        ("Errors", stats.errors),
        ("Build time (ms)", stats.elapsed_ms),
    ]
    for name, value in rows:
        table.add_row(name, str(value))
    console.print(table)


def _short(text: str, width: int = 70) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


# ===================================================================
# Discovery & indexing
# ===================================================================

@app.command("discover")
def discover(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the project root."),
    project_name: Optional[str] = typer.Option(None, "--name", "-n", help="Name to register the project under."),
    workers: int = typer.Option(0, "--workers", "-w", help="Extraction threads (0 = config default)."),
):
    """Crawl a project for implication files and cache the discovery result."""
    resolved = project_path.resolve()
    result = discover_project(resolved, max_workers=workers or config.MAX_WORKERS)
    cache_file = save_discovery_result(result, resolved)

    name = project_name or _project_name_from_path(resolved)
    pm = ProjectManager()
    pm.register_project(name, resolved)
    pm.set_current_project(name)

    typer.echo(f"Discovered {len(result.implications)} implications and "
               f"{len(result.transitions)} transitions in '{resolved}' as project '{name}'.")
    if result.errors:
        typer.echo(f"⚠️  {len(result.errors)} files could not be read.")
    typer.echo(f"Cache: {cache_file}")


@app.command("index")
def index_project(
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
    force: bool = typer.Option(False, "--force", "-f", help="Rebuild even if the cache is fresh."),
):
    """Build the search index and persist a snapshot."""
    index = _load_index(_resolve_project(project), force=force)
    snapshot = persist_index(index)
    _print_stats(index)
    typer.echo(f"Snapshot: {snapshot}")


@app.command("rebuild")
def rebuild(
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
):
    """Re-run discovery and rebuild the index from scratch."""
    path = _resolve_project(project)
    result = discover_project(path, max_workers=config.MAX_WORKERS)
    save_discovery_result(result, path)
    index = _load_index(path, force=True)
    persist_index(index)
    typer.echo(f"Rebuilt index: {index.stats.states} states, {index.stats.transitions} transitions.")


@app.command("invalidate")
def invalidate(
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
):
    """Delete the exported index snapshot (intelligence-index.json).

    The snapshot is an export for other tools. Queries always rebuild from
    the discovery cache, so removing it does not change their results.
    """
    path = _resolve_project(project)
    if remove_index_snapshot(path):
        typer.echo("Index snapshot removed. Run 'sg index' to export a fresh one.")
    else:
        typer.echo("No index snapshot to remove.")


@app.command("stats")
def stats(
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
):
    """Show index statistics."""
    _print_stats(_load_index(_resolve_project(project)))


# ===================================================================
# Queries
# ===================================================================

@app.command("search")
def search_cmd(
    query: str = typer.Argument(..., help="Free text or a ticket id such as SC-13092."),
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
    types: Optional[str] = typer.Option(None, "--types", "-t", help="Comma-separated: states,transitions,validations,conditions,setups."),
    limit: int = typer.Option(config.SEARCH_LIMIT, "--limit", "-k", help="Maximum results."),
    min_score: float = typer.Option(config.SEARCH_MIN_SCORE, "--min-score", help="Drop results scoring lower."),
    with_chains: bool = typer.Option(False, "--chains", help="Show the prerequisite chain for state hits."),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON."),
):
    """Search states, transitions, validations, conditions and setup routes."""
    index = _load_index(_resolve_project(project))
    type_list = [t for t in types.split(",") if t.strip()] if types else None
    try:
        results = search(index, query, types=type_list, limit=limit, min_score=min_score)
    except ValueError as exc:
        raise typer.BadParameter(str(exc))

    if as_json:
        typer.echo(json.dumps(
            [{"id": r.id, "type": r.document.doc_type, "score": r.score, "match": r.match_type} for r in results],
            indent=2,
        ))
        return
    if not results:
        typer.echo("No results.")
        return
    for r in results:
        typer.echo(f"[{r.score:>6.1f}] {r.document.doc_type:<10} {r.id}")
        typer.echo(f"         {_short(r.document.text)}")
        if with_chains and r.document.doc_type == "state":
            chain = chain_for(index, r.id)
            if chain is not None:
                typer.echo(f"         chain: {' -> '.join(chain.steps)}")


@app.command("ticket")
def ticket_cmd(
    ticket_id: str = typer.Argument(..., help="Ticket id, e.g. SC-13092."),
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
):
    """List validations that reference a ticket."""
    hits = find_by_ticket(_load_index(_resolve_project(project)), ticket_id)
    if not hits:
        typer.echo(f"No validations reference {ticket_id.upper()}.")
        raise typer.Exit(code=1)
    for doc in hits:
        typer.echo(f"{doc.id}  {doc.label}")


@app.command("event")
def event_cmd(
    event: str = typer.Argument(..., help="Event name, case-insensitive."),
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
):
    """List transitions fired by an event."""
    hits = find_by_event(_load_index(_resolve_project(project)), event)
    if not hits:
        typer.echo(f"No transitions for event {event.upper()}.")
        raise typer.Exit(code=1)
    for t in hits:
        platforms = f"  [{', '.join(t.platforms)}]" if t.platforms else ""
        typer.echo(f"{t.from_state} --{t.event}--> {t.to_state}{platforms}")


@app.command("field")
def field_cmd(
    pattern: str = typer.Argument(..., help="Field name or dotted path fragment."),
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
):
    """List conditions that check a field."""
    hits = find_by_condition(_load_index(_resolve_project(project)), pattern)
    if not hits:
        typer.echo(f"No conditions check '{pattern}'.")
        raise typer.Exit(code=1)
    for c in hits:
        value = "" if c.value is None else f" {json.dumps(c.value)}"
        typer.echo(f"{c.state}: {c.field} {c.operator}{value}  ({c.id})")


@app.command("state")
def state_cmd(
    state_id: str = typer.Argument(..., help="State id (status)."),
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
):
    """Show a state with its transitions, validations and conditions."""
    details = get_state_details(_load_index(_resolve_project(project)), state_id)
    if details is None:
        typer.echo(f"❌ Unknown state '{state_id}'.", err=True)
        raise typer.Exit(code=1)
    state = details.state
    typer.echo(f"{state.status_label} ({state.id})")
    typer.echo(f"  platform: {state.platform}  entity: {state.entity or '-'}  file: {state.source_file}")
    if state.required_fields:
        typer.echo(f"  required fields: {', '.join(state.required_fields)}")
    typer.echo(f"Outgoing ({len(details.outgoing)}):")
    for t in details.outgoing:
        typer.echo(f"  {t.event} -> {t.to_state}")
    typer.echo(f"Incoming ({len(details.incoming)}):")
    for t in details.incoming:
        typer.echo(f"  {t.from_state} --{t.event}-->")
    typer.echo(f"Validations ({len(details.validations)}):")
    for v in details.validations:
        typer.echo(f"  {v.id}{'  ' + v.label if v.label else ''}")
    typer.echo(f"Conditions ({len(details.conditions)}):")
    for c in details.conditions:
        typer.echo(f"  {c.field} {c.operator}")
    if details.setups:
        typer.echo(f"Setup ({len(details.setups)}):")
        for s in details.setups:
            action = f"  {s.action_name}" if s.action_name else ""
            typer.echo(f"  from {s.previous_status} via {s.platform}{action}")


@app.command("chain")
def chain_cmd(
    state_id: str = typer.Argument(..., help="Target state id."),
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
):
    """Show the prerequisite chain of states leading to a state."""
    result = chain_for(_load_index(_resolve_project(project)), state_id)
    if result is None:
        typer.echo(f"❌ Unknown state '{state_id}'.", err=True)
        raise typer.Exit(code=1)
    typer.echo(" -> ".join(result.steps))


@app.command("suggest")
def suggest_cmd(
    prefix: str = typer.Argument(..., help="At least two characters."),
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
    limit: int = typer.Option(10, "--limit", "-k", help="Maximum suggestions."),
):
    """Autocomplete state ids, labels, events, fields and tickets."""
    for item in suggest(_load_index(_resolve_project(project)), prefix, limit=limit):
        typer.echo(item)


@app.command("impact")
def impact_cmd(
    state_id: str = typer.Argument(..., help="State id to assess."),
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
):
    """Show what depends on a state."""
    report = impact(_load_index(_resolve_project(project)), state_id)
    if report is None:
        typer.echo(f"❌ Unknown state '{state_id}'.", err=True)
        raise typer.Exit(code=1)
    summary = report.summary
    typer.echo(f"Impact of changing '{report.state}':")
    typer.echo(f"  dependent states: {summary['dependentStates']}  "
               f"transitions: {summary['affectedTransitions']}  "
               f"validations: {summary['affectedValidations']}")
    for name in report.dependent_states:
        typer.echo(f"  <- {name}")


# ===================================================================
# Analysis & export
# ===================================================================

@app.command("analyze")
def analyze_cmd(
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
    severity: Optional[str] = typer.Option(None, "--severity", "-s", help="Only show error, warning or info."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON (issues honour --severity; summary covers all)."),
    strict: bool = typer.Option(False, "--strict", help="Exit with code 1 when errors are found."),
):
    """Run structural checks over the project's state graph."""
    path = _resolve_project(project)
    discovery = load_discovery_result(path)
    if discovery is None:
        typer.echo(f"❌ {NoIndexDataError(str(path))}", err=True)
        raise typer.Exit(code=1)

    wanted: Optional[IssueSeverity] = None
    if severity:
        try:
            wanted = IssueSeverity(severity.lower())
        except ValueError:
            raise typer.BadParameter("Severity must be one of: error, warning, info.")

    registry = StateRegistry(mappings=config.STATE_MAPPINGS).build(discovery)
    result = ProjectAnalyzer().analyze(discovery, registry=registry)
    issues = [i for i in result.issues if wanted is None or i.severity is wanted]

    if as_json:
        payload = result.to_dict()
        payload["issues"] = [issue.to_dict() for issue in issues]
        typer.echo(json.dumps(payload, indent=2))
    else:
        for issue in issues:
            typer.echo(f"{_SEVERITY_ICONS[issue.severity]} [{issue.type.value}] {issue.state_name}: {issue.title}")
            typer.echo(f"     {issue.message}")
        summary = result.summary
        typer.echo(
            f"\n{summary.total_issues} issues: {summary.error_count} errors, "
            f"{summary.warning_count} warnings, {summary.info_count} info "
            f"across {result.total_implications} implications."
        )

    if strict and result.summary.error_count:
        raise typer.Exit(code=1)


@app.command("export-graph")
def export_graph(
    output: Path = typer.Argument(..., help="Output file."),
    fmt: str = typer.Option("dot", "--format", "-f", help="dot or html."),
    focus: str = typer.Option("", "--focus", help="Only states matching this text and their neighbours."),
    project: Optional[Path] = typer.Option(None, "--project", "-p", help=_PROJECT_OPTION_HELP),
):
    """Export the state graph as Graphviz DOT or standalone HTML."""
    fmt = fmt.lower()
    if fmt not in ("dot", "html"):
        raise typer.BadParameter("Format must be 'dot' or 'html'.")
    index = _load_index(_resolve_project(project))
    if fmt == "dot":
        export_dot(index, output, focus=focus)
    else:
        export_html(index, output, focus=focus)
    typer.echo(f"Exported graph to {output}")