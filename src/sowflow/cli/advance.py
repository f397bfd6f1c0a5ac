"""Advance CLI command.

One command covers the four execution modes:

    sowflow advance                  auto: fire the determined next event
    sowflow advance EVENT            explicit: fire EVENT
    sowflow advance --list           list transitions from the current state
    sowflow advance --dry-run EVENT  check EVENT without firing it
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape

from sowflow import advance as engine
from sowflow.errors import (
    EventNotConfiguredError,
    GuardFailedError,
    InvalidAdvanceOptionsError,
    SowflowError,
)

console = Console()


def render_listing(listing: engine.TransitionListing) -> None:
    console.print(f"Current state: {listing.state}")
    console.print()

    if not listing.transitions:
        console.print("No transitions available from current state.")
        console.print("This may be a terminal state.")
        return

    if listing.all_blocked:
        console.print(
            "[yellow](All configured transitions are currently blocked "
            "by guard conditions)[/yellow]"
        )
        console.print()

    for info in listing.transitions:
        command = f"sowflow advance {info.event}"
        if not info.guard_satisfied:
            command += "  " + escape("[BLOCKED]")
        console.print(f"[bold]{command}[/bold]")
        console.print(f"  → {info.to_state}")
        if info.description:
            console.print(f"  {info.description}")
        console.print(f"  Requires: {info.guard_description or 'always allowed'}")
        console.print()


def render_dry_run(result: engine.DryRunResult) -> None:
    console.print(f"Validating transition: {result.state} -> {result.event}")
    console.print("[green]✓ Transition is valid and can be executed[/green]")
    console.print(f"Target state: {result.target_state}")
    if result.description:
        console.print(f"Description: {result.description}")
    console.print(f"To execute: sowflow advance {result.event}")


def advance(
    event: Annotated[
        Optional[str],
        typer.Argument(help="Event to fire (auto-advance when omitted)"),
    ] = None,
    list_only: Annotated[
        bool,
        typer.Option("--list", "-l", help="List transitions from the current state"),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Check the event without firing it"),
    ] = False,
) -> None:
    """Advance the project through its lifecycle.

    Args:
        event: Event to fire or check
        list_only: Only list transitions
        dry_run: Only check that the event would fire
    """
    from sowflow.main import get_app_context

    ctx = get_app_context()

    try:
        result = asyncio.run(
            engine.advance(
                ctx.backend,
                ctx.registry,
                event=event,
                list_only=list_only,
                check_only=dry_run,
            )
        )
    except InvalidAdvanceOptionsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=2)
    except GuardFailedError as e:
        console.print("[red]✗ Transition blocked by guard condition[/red]")
        console.print(f"Guard description: {e.description or 'none'}")
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    except EventNotConfiguredError as e:
        console.print(f"[red]✗ Event '{e.event}' is not configured for state {e.state}[/red]")
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    except SowflowError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    if isinstance(result, engine.TransitionListing):
        render_listing(result)
    elif isinstance(result, engine.DryRunResult):
        render_dry_run(result)
    else:
        console.print(f"Current state: {result.from_state}")
        console.print(f"[green]✓ Advanced to: {result.to_state}[/green] (event: {result.event})")
