"""Pending queue CLI commands."""
import click

from . import runtime
from .output import format_ms, print_error, print_success, table


@click.group()
def queue():
    """Inspect and manage queued offline changes."""
    pass


@queue.command('list')
@click.option('--limit', '-n', default=10, help='Number of changes to show')
@click.pass_obj
def list_changes(config, limit: int):
    """List queued changes, oldest first."""
    try:
        async def read(q):
            return await q.peek(limit), await q.count()

        changes, total = runtime.run_with_queue(config, read)
        if not changes:
            click.echo("Queue is empty")
            return

        click.echo(f"Showing {len(changes)} of {total} pending changes:\n")
        table(
            ["ID", "TYPE", "ITEM", "ATTEMPTS", "STATUS", "QUEUED"],
            [[c.id[:8], c.type, c.target or "-", c.attempts, c.status, format_ms(c.timestamp)]
             for c in changes],
        )
        for c in changes:
            if c.last_error:
                click.echo(f"  {c.id[:8]}: {c.last_error}")

    except Exception as e:
        print_error(f"Queue list failed: {e}")


@queue.command()
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_obj
def clear(config, yes: bool):
    """Drop every queued change without syncing it."""
    try:
        size = runtime.run_with_queue(config, lambda q: q.count())
        if size == 0:
            click.echo("Queue already empty")
            return

        if yes or click.confirm(f"Drop {size} pending changes?"):
            runtime.run_with_queue(config, lambda q: q.clear_pending())
            print_success("Queue cleared")

    except Exception as e:
        print_error(f"Clear failed: {e}")


@queue.command()
@click.argument('change_id', required=False)
@click.pass_obj
def retry(config, change_id: str | None):
    """Make exhausted or backed-off changes due again."""
    try:
        async def reset(q):
            resolved = await _resolve(q, change_id) if change_id else None
            if change_id and resolved is None:
                return None
            return await q.reset_attempts(resolved)

        count = runtime.run_with_queue(config, reset)
        if count is None:
            print_error(f"No queued change matches {change_id}")
            return
        print_success(f"Reset {count} changes")

    except Exception as e:
        print_error(f"Retry failed: {e}")


@queue.command()
@click.argument('change_id')
@click.pass_obj
def discard(config, change_id: str):
    """Drop one queued change without syncing it."""
    try:
        async def drop(q):
            resolved = await _resolve(q, change_id)
            return await q.discard(resolved) if resolved else None

        change = runtime.run_with_queue(config, drop)
        if change is None:
            print_error(f"No queued change matches {change_id}")
            return
        print_success(f"Discarded {change.type} change {change.id}")

    except Exception as e:
        print_error(f"Discard failed: {e}")


async def _resolve(q, prefix: str) -> str | None:
    """Full change id for an id or unambiguous id prefix."""
    matches = [c.id for c in await q.list_pending() if c.id.startswith(prefix)]
    return matches[0] if len(matches) == 1 else None
