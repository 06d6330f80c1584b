"""Helpers shared by the CLI commands: configuration and store opening."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from datarepo.config import RepoConfig
from datarepo.core.store import PersistenceStore
from datarepo.logging_setup import configure_logging


def load_config(db: str | None = None, log_dir: str | None = None) -> RepoConfig:
    """Read ``RepoConfig`` from the environment, applying command-line overrides."""
    overrides: dict[str, Path] = {}
    if db:
        overrides["db_path"] = Path(db)
    if log_dir:
        overrides["log_dir"] = Path(log_dir)
    config = RepoConfig(**overrides)
    configure_logging(config)
    return config


def open_store(config: RepoConfig, console: Console) -> PersistenceStore:
    """Open an existing repository database, exiting with code 1 if it is missing."""
    if not config.db_path.exists():
        console.print(f"[bold red]Repository database not found:[/bold red] {config.db_path}")
        console.print("[dim]Set DATAREPO_DB_PATH or pass --db.[/dim]")
        raise typer.Exit(code=1)
    return PersistenceStore(config.db_path)
