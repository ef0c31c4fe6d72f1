"""Shared output formatting with ASCII boxes. NO class - just functions."""

import json
from datetime import datetime, timezone

import click

BOX_WIDTH = 60


def print_json(data: dict) -> None:
    """Print JSON data formatted."""
    click.echo(json.dumps(data, indent=2, sort_keys=True, default=str))


def print_error(message: str) -> None:
    """Print error message in red."""
    click.echo(click.style(f"Error: {message}", fg="red"))


def print_success(message: str) -> None:
    """Print success message in green."""
    click.echo(click.style(message, fg="green"))


def _truncate(text: str, max_len: int = 50) -> str:
    return text[:max_len-3] + "..." if len(text) > max_len else text


def _border(title: str) -> str:
    return f"╭─ {title} " + "─" * max(BOX_WIDTH - len(title) - 4, 1) + "╮"


def success_box(title: str, rows: list[tuple[str, str]], next_cmd: str) -> None:
    """Print success box with Next: suggestion."""
    click.echo(click.style(_border(title), fg="green"))
    for label, value in rows:
        line = f"│ {label}: {_truncate(str(value), BOX_WIDTH - len(label) - 6)}"
        click.echo(line + " " * max(BOX_WIDTH - len(line), 0) + "│")
    click.echo("╰" + "─" * (BOX_WIDTH - 1) + "╯")
    click.echo(f"Next: {next_cmd}")


def error_box(title: str, message: str, fix_cmd: str | None = None) -> None:
    """Print error box with optional fix suggestion."""
    click.echo(click.style(_border(title), fg="red"))
    text = _truncate(message, BOX_WIDTH - 4)
    click.echo(f"│ {text}" + " " * max(BOX_WIDTH - len(text) - 3, 0) + "│")
    click.echo("╰" + "─" * (BOX_WIDTH - 1) + "╯")
    if fix_cmd:
        click.echo(f"Fix: {fix_cmd}")


def table(headers: list[str], rows: list[list[str]]) -> None:
    """Print simple table for list commands."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            if i < len(widths):
                widths[i] = max(widths[i], len(str(cell)))

    header_line = "│ " + " │ ".join(h.ljust(widths[i]) for i, h in enumerate(headers)) + " │"
    sep_line = "├" + "─" + "─┼─".join("─" * w for w in widths) + "─┤"

    click.echo("╭" + "─" * (len(header_line) - 2) + "╮")
    click.echo(header_line)
    click.echo(sep_line)
    for row in rows:
        cells = [str(row[i]).ljust(widths[i]) if i < len(row) else " " * widths[i]
                 for i in range(len(headers))]
        click.echo("│ " + " │ ".join(cells) + " │")
    click.echo("╰" + "─" * (len(header_line) - 2) + "╯")


def format_ms(ms: int | None) -> str:
    """Epoch milliseconds as UTC ISO-8601, or 'never'."""
    if not ms:
        return "never"
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="seconds").replace("+00:00", "Z")
