"""``datarepo locks`` and ``datarepo unlock`` — inspect and release dataset locks."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from datarepo.cli.commands._common import load_config, open_store
from datarepo.core.lock_manager import LockManager
from datarepo.models.locks import LockReason

console = Console()

_REASONS = ", ".join(r.value for r in LockReason)


def _parse_reason(value: str) -> LockReason:
    try:
        return LockReason(value)
    except ValueError:
        console.print(f"[bold red]Unknown lock reason:[/bold red] {value}")
        console.print(f"[dim]Valid reasons: {_REASONS}[/dim]")
        raise typer.Exit(code=2)


def locks_cmd(
    reason: str = typer.Option(
        None,
        "--reason",
        "-r",
        help=f"Only locks with this reason ({_REASONS}).",
    ),
    user_id: int = typer.Option(
        None,
        "--user",
        "-u",
        help="Only locks held by this user id.",
    ),
    db: str = typer.Option(
        None,
        "--db",
        help="Path to the repository database (default: DATAREPO_DB_PATH).",
    ),
) -> None:
    """List active dataset locks."""
    lock_reason = _parse_reason(reason) if reason else None
    config = load_config(db)
    manager = LockManager(open_store(config, console))

    locks = manager.list_locks(reason=lock_reason, user_id=user_id)
    if not locks:
        console.print("[dim]No active locks.[/dim]")
        return

    table = Table(title="Dataset Locks")
    table.add_column("Lock", justify="right", style="cyan")
    table.add_column("Dataset", justify="right")
    table.add_column("Reason", style="yellow")
    table.add_column("User", justify="right")
    table.add_column("Since")
    table.add_column("Info", style="dim")

    for lock in locks:
        table.add_row(
            str(lock.id),
            str(lock.dataset_id),
            lock.reason.value,
            str(lock.user_id) if lock.user_id is not None else "-",
            lock.start_time.strftime("%Y-%m-%d %H:%M:%S") if lock.start_time else "-",
            lock.info,
        )
    console.print(table)


def unlock_cmd(
    dataset_id: int = typer.Argument(..., help="The dataset to unlock."),
    reason: str = typer.Argument(..., help=f"Lock reason to release ({_REASONS})."),
    db: str = typer.Option(
        None,
        "--db",
        help="Path to the repository database (default: DATAREPO_DB_PATH).",
    ),
) -> None:
    """Release every lock of one reason on a dataset."""
    lock_reason = _parse_reason(reason)
    config = load_config(db)
    manager = LockManager(open_store(config, console))

    removed = manager.remove_locks(dataset_id, lock_reason)
    if removed:
        console.print(
            f"[bold green]Released {removed} {lock_reason.value} lock(s)[/bold green] "
            f"on dataset {dataset_id}."
        )
    else:
        console.print(
            f"[yellow]No {lock_reason.value} lock held on dataset {dataset_id}.[/yellow]"
        )
