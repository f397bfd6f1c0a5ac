"""Typer commands for the sowflow CLI."""
