"""Project CLI commands.

This module provides CLI commands for creating a project and showing its
status.
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from sowflow import loader
from sowflow.errors import SowflowError
from sowflow.models import PhaseStatus, Project

console = Console()

PHASE_STATUS_COLORS = {
    PhaseStatus.pending: "dim",
    PhaseStatus.in_progress: "green",
    PhaseStatus.completed: "blue",
    PhaseStatus.failed: "red",
}


def create(
    branch: Annotated[str, typer.Option("--branch", "-b", help="Git branch of the project")],
    description: Annotated[
        str,
        typer.Option("--description", "-d", help="Project description; the name derives from it"),
    ],
    project_type: Annotated[
        Optional[str],
        typer.Option("--type", "-t", help="Project type (inferred from the branch if omitted)"),
    ] = None,
) -> None:
    """Create a new project on a branch.

    Args:
        branch: Git branch the project is bound to
        description: Human-readable project description
        project_type: Explicit project type
    """
    from sowflow.main import get_app_context

    ctx = get_app_context()

    try:
        project = asyncio.run(
            loader.create(
                ctx.backend,
                ctx.registry,
                branch,
                description,
                project_type=project_type,
                name_max_length=ctx.config.state.name_max_length,
            )
        )
    except SowflowError as e:
        console.print(f"[red]Error creating project:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    panel = Panel(
        f"[green]Project created successfully![/green]\n\n"
        f"[bold]Name:[/bold] {project.name}\n"
        f"[bold]Type:[/bold] {project.type}\n"
        f"[bold]Branch:[/bold] {project.branch}\n"
        f"[bold]State:[/bold] {project.current_state}",
        title="Project Created",
        border_style="green",
    )
    console.print(panel)


def render_phases(project: Project) -> Table:
    table = Table(title="Phases")
    table.add_column("Phase", style="bold")
    table.add_column("Status")
    table.add_column("Enabled", style="dim")
    table.add_column("Iteration", justify="right")
    table.add_column("Tasks", justify="right")

    for name, phase in project.phases.items():
        color = PHASE_STATUS_COLORS.get(phase.status, "white")
        resolved = sum(1 for task in phase.tasks if task.is_resolved)
        table.add_row(
            name,
            f"[{color}]{phase.status.value}[/{color}]",
            "yes" if phase.enabled else "no",
            str(phase.iteration),
            f"{resolved}/{len(phase.tasks)}",
        )
    return table


def status() -> None:
    """Show the current project's state and phases."""
    from sowflow.main import get_app_context

    ctx = get_app_context()

    try:
        project = asyncio.run(loader.load(ctx.backend, ctx.registry))
    except SowflowError as e:
        console.print(f"[red]Error loading project:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    console.print(f"[bold]Project:[/bold] {project.name} ({project.type})")
    console.print(f"[bold]Branch:[/bold] {project.branch}")
    console.print(f"[bold]Current state:[/bold] {project.current_state}")
    console.print()
    console.print(render_phases(project))
