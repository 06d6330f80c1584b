"""datarepo CLI — Typer-based operator interface.

Provides the ``datarepo`` command with subcommands for inspecting and
releasing dataset locks, summarising a dataset, running the export-all
job, and listing a user's notifications.

All output uses Rich for formatted terminal display.
"""
