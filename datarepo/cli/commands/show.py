"""``datarepo show DATASET_ID`` — summarize a dataset, its versions, and its locks."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from datarepo.cli.commands._common import load_config, open_store
from datarepo.core.dataset_service import DatasetService
from datarepo.core.lock_manager import LockManager

console = Console()


def show_cmd(
    dataset_id: int = typer.Argument(..., help="The dataset to show."),
    db: str = typer.Option(
        None,
        "--db",
        help="Path to the repository database (default: DATAREPO_DB_PATH).",
    ),
) -> None:
    """Show a dataset's identifier, versions, files, and locks."""
    config = load_config(db)
    store = open_store(config, console)
    service = DatasetService(store, config)

    dataset = service.find(dataset_id)
    if dataset is None:
        console.print(f"[bold red]Dataset not found:[/bold red] {dataset_id}")
        raise typer.Exit(code=1)

    registered = (
        f"[green]{dataset.global_id_create_time:%Y-%m-%d %H:%M:%S}[/green]"
        if dataset.global_id_create_time
        else "[yellow]not registered[/yellow]"
    )
    console.print(
        Panel(
            "\n".join([
                f"[bold]Title:[/bold]      {dataset.display_name or '-'}",
                f"[bold]Identifier:[/bold] {dataset.global_id_string or '-'}",
                f"[bold]Registered:[/bold] {registered}",
                f"[bold]Files:[/bold]      {len(dataset.file_ids)}",
                f"[bold]Storage:[/bold]    {service.find_storage_size(dataset)} bytes",
            ]),
            title=f"[bold]Dataset {dataset.id}[/bold]",
            border_style="cyan",
            padding=(1, 2),
        )
    )

    versions = Table(title="Versions")
    versions.add_column("Version", style="cyan")
    versions.add_column("State")
    versions.add_column("Files", justify="right")
    versions.add_column("Last update")
    versions.add_column("UNF", style="dim")
    for version in dataset.versions:
        state_style = "green" if version.is_released else "yellow"
        versions.add_row(
            version.friendly_number,
            f"[{state_style}]{version.version_state.value}[/{state_style}]",
            str(len(version.file_metadatas)),
            version.last_update_time.strftime("%Y-%m-%d %H:%M:%S") if version.last_update_time else "-",
            version.unf or "-",
        )
    console.print(versions)

    locks = LockManager(store).get_locks(dataset_id)
    if locks:
        console.print("\n[bold]Locks:[/bold]")
        for lock in locks:
            holder = f" (user {lock.user_id})" if lock.user_id is not None else ""
            console.print(f"  [yellow]{lock.reason.value}[/yellow]{holder}")
