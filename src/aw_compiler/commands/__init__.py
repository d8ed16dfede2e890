"""Typer commands of the awc CLI."""
