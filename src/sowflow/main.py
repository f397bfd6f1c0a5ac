"""Main CLI entry point for Sowflow.

This module provides the Typer application that wires configuration,
logging, the YAML state backend and the built-in project types to the
engine.

Usage:
    sowflow create --branch explore/spike-cache --description "Spike caching layer"
    sowflow status
    sowflow advance --list
    sowflow advance --dry-run begin_summarizing
    sowflow advance begin_summarizing
    sowflow advance
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from sowflow.backends import YAMLBackend
from sowflow.cli import advance as advance_cli
from sowflow.cli import project as project_cli
from sowflow.config import SowflowConfig, load_config
from sowflow.logging import setup_logging
from sowflow.registry import ProjectTypeRegistry, build_default_registry

app = typer.Typer(
    name="sowflow",
    help="Sowflow: declarative project lifecycle engine",
    no_args_is_help=True,
)

app.command("create")(project_cli.create)
app.command("status")(project_cli.status)
app.command("advance")(advance_cli.advance)

console = Console()


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded Sowflow configuration
        backend: YAML backend at the configured state path
        registry: Registry of the built-in project types
    """

    def __init__(self, config: SowflowConfig):
        """Initialize application context.

        Args:
            config: Sowflow configuration
        """
        self.config = config
        self.backend = YAMLBackend(config.state.root, config.state.state_file)
        self.registry: ProjectTypeRegistry = build_default_registry()


# Global context holder
_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Returns:
        AppContext instance with config, backend and registry

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: SowflowConfig) -> AppContext:
    """Initialize the global application context.

    Args:
        config: Sowflow configuration

    Returns:
        Initialized AppContext instance
    """
    global _app_context
    _app_context = AppContext(config)
    return _app_context


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure global options and initialize application context.

    Args:
        config_path: Optional path to TOML configuration file
        verbose: Enable debug-level logging
    """
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)

    if verbose:
        config.logging.level = "DEBUG"
    setup_logging(config.logging)

    initialize_context(config)


if __name__ == "__main__":
    app()
