"""Command hierarchy groups for organized CLI experience.

Provides logical grouping of commands under:
  sg project  — Named projects and the current selection
  sg config   — Analysis settings in config.toml
"""

from __future__ import annotations

from typing import List

import typer
from rich.console import Console
from rich.table import Table

from . import config_manager
from .storage import ProjectManager

console = Console()

# ── Project management group ─────────────────────────────────
project_grp = typer.Typer(
    help="📂 Projects — list, select, and forget discovered projects.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ── Configuration group ──────────────────────────────────────
config_grp = typer.Typer(
    help="⚙️  Configuration — search and analysis settings.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@project_grp.command("list")
def project_list():
    """List all registered projects."""
    pm = ProjectManager()
    projects = pm.list_projects()
    current = pm.get_current_project()

    if not projects:
        typer.echo("No projects discovered yet.")
        raise typer.Exit(code=0)

    for name, path in projects.items():
        marker = "*" if name == current else " "
        typer.echo(f"{marker} {name}  {path}")


@project_grp.command("use")
def project_use(project_name: str = typer.Argument(..., help="Name of a registered project.")):
    """Switch the current project."""
    pm = ProjectManager()
    if project_name not in pm.list_projects():
        raise typer.BadParameter(f"Project '{project_name}' not found.")
    pm.set_current_project(project_name)
    typer.echo(f"Using project '{project_name}'.")


@project_grp.command("current")
def project_current():
    """Print the current project."""
    pm = ProjectManager()
    current = pm.get_current_project()
    if not current:
        typer.echo("No project selected.")
        raise typer.Exit(code=0)
    typer.echo(f"{current}  {pm.project_path(current)}")


@project_grp.command("forget")
def project_forget(project_name: str = typer.Argument(..., help="Name of the project to forget.")):
    """Remove a project from the registry (cache files stay on disk)."""
    pm = ProjectManager()
    if not pm.forget_project(project_name):
        raise typer.BadParameter(f"Project '{project_name}' not found.")
    typer.echo(f"Forgot project '{project_name}'.")


@config_grp.command("show")
def config_show():
    """Show effective search, analysis and discovery settings."""
    table = Table(title="StateGraph configuration", show_header=True, header_style="bold")
    table.add_column("Section", style="cyan")
    table.add_column("Key")
    table.add_column("Value", style="green")
    for section in ("search", "analysis", "discovery"):
        for key, value in config_manager.load_section(section).items():
            table.add_row(section, key, str(value))
    console.print(table)
    console.print(f"[dim]File: {config_manager.config_file()}[/dim]")


@config_grp.command("set-platforms")
def config_set_platforms(
    platforms: List[str] = typer.Argument(..., help="Platforms every state should cover, e.g. web mobile."),
):
    """Set the platforms the UI coverage check expects."""
    cleaned = [p.strip() for p in platforms if p.strip()]
    if not cleaned:
        raise typer.BadParameter("Provide at least one platform name.")
    if not config_manager.save_platforms(cleaned):
        typer.echo("❌ Could not write config file.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Expected platforms: {', '.join(cleaned)}")


@config_grp.command("map-state")
def config_map_state(
    alias: str = typer.Argument(..., help="Alias used in transition targets."),
    state: str = typer.Argument(..., help="Canonical state id it refers to."),
):
    """Add an explicit alias to the state name registry."""
    if not config_manager.save_state_mapping(alias, state):
        typer.echo("❌ Could not write config file.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Mapped '{alias}' -> '{state}'.")
