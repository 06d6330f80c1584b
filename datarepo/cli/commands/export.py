"""``datarepo export`` — run the export-all job in the foreground."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.panel import Panel

from datarepo.cli.commands._common import load_config, open_store
from datarepo.export.json_exporter import JsonExporter
from datarepo.export.service import ExportService

console = Console()


def export_cmd(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Re-export every published dataset, even ones exported since their release.",
    ),
    db: str = typer.Option(
        None,
        "--db",
        help="Path to the repository database (default: DATAREPO_DB_PATH).",
    ),
    log_dir: str = typer.Option(
        None,
        "--log-dir",
        help="Directory for the export job log (default: DATAREPO_LOG_DIR).",
    ),
) -> None:
    """Export metadata for published datasets."""
    config = load_config(db, log_dir)
    store = open_store(config, console)
    service = ExportService(store, JsonExporter(config.export_dir), config)

    summary = service.export_all(force=force)
    if summary.aborted:
        console.print("[bold red]Export job not started:[/bold red] the job log could not be opened.")
        raise typer.Exit(code=1)

    style = "green" if summary.failed == 0 else "yellow"
    console.print(
        Panel(
            "\n".join([
                f"[bold]Processed:[/bold] {summary.processed}",
                f"[bold]Exported:[/bold]  {summary.succeeded}",
                f"[bold]Failed:[/bold]    {summary.failed}",
                "",
                f"[dim]Job log: {summary.log_file}[/dim]",
            ]),
            title="[bold]Export-all[/bold]" + (" (forced)" if force else ""),
            border_style=style,
            padding=(1, 2),
        )
    )
    if summary.failed:
        raise typer.Exit(code=1)
