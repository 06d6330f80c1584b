"""``datarepo notifications USER_ID`` — list a user's notifications."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from datarepo.cli.commands._common import load_config, open_store
from datarepo.notifications.mailer import OutboxMailer
from datarepo.notifications.service import NotificationService

console = Console()


def notifications_cmd(
    user_id: int = typer.Argument(..., help="The user whose notifications to list."),
    unread: bool = typer.Option(False, "--unread", help="Only unread notifications."),
    db: str = typer.Option(
        None,
        "--db",
        help="Path to the repository database (default: DATAREPO_DB_PATH).",
    ),
) -> None:
    """List notifications for a user, newest first."""
    config = load_config(db)
    service = NotificationService(open_store(config, console), OutboxMailer(config.system_email), config)

    items = service.find_unread_by_user(user_id) if unread else service.find_by_user(user_id)
    if not items:
        console.print(f"[dim]No notifications for user {user_id}.[/dim]")
        return

    table = Table(title=f"Notifications for user {user_id} ({service.unread_count(user_id)} unread)")
    table.add_column("Id", justify="right", style="cyan")
    table.add_column("Sent")
    table.add_column("Type", style="yellow")
    table.add_column("Object", justify="right")
    table.add_column("Read", justify="center")
    table.add_column("Emailed", justify="center")
    for item in items:
        table.add_row(
            str(item.id),
            item.send_date.strftime("%Y-%m-%d %H:%M:%S"),
            item.type.value,
            str(item.object_id) if item.object_id is not None else "-",
            "[green]Yes[/green]" if item.read else "No",
            "[green]Yes[/green]" if item.emailed else "No",
        )
    console.print(table)
