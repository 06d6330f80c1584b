"""Main Typer application — imports and registers all CLI commands.

Entry point: ``datarepo`` (configured via pyproject.toml scripts).

Commands: locks, unlock, show, export, notifications.
"""

from __future__ import annotations

import typer

from datarepo.cli.commands.export import export_cmd
from datarepo.cli.commands.locks import locks_cmd, unlock_cmd
from datarepo.cli.commands.notifications import notifications_cmd
from datarepo.cli.commands.show import show_cmd

app = typer.Typer(
    name="datarepo",
    help="datarepo: operator tools for a research-data repository.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="locks", help="List active dataset locks.")(locks_cmd)
app.command(name="unlock", help="Release a dataset lock.")(unlock_cmd)
app.command(name="show", help="Show a dataset summary.")(show_cmd)
app.command(name="export", help="Export metadata for published datasets.")(export_cmd)
app.command(name="notifications", help="List a user's notifications.")(notifications_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
