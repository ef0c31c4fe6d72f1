"""StockSync CLI entry point - assembles all command groups."""
import logging

import click

from . import __version__, runtime
from .item_cmd import item
from .output import format_ms, print_error, print_json
from .queue_cmd import queue
from .sync_cmd import sync


@click.group()
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx):
    """StockSync: offline-first inventory sync."""
    config = runtime.load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.obj = config


@cli.command()
@click.pass_obj
def status(config):
    """Show connectivity, queue size and last sync."""
    try:
        async def read_status(q):
            changes = await q.list_pending()
            return {
                "pending_changes_count": len(changes),
                "exhausted_changes_count": sum(1 for c in changes if c.exhausted),
                "last_sync": format_ms(await q.last_sync_timestamp()),
            }

        info = runtime.run_with_queue(config, read_status)
        connected = runtime.is_reachable(config)
        info["connected"] = connected
        info["status"] = "online" if connected else "offline"
        info["data_dir"] = config.data_dir
        print_json(info)
    except Exception as e:
        print_error(f"Status check failed: {e}")


cli.add_command(item)
cli.add_command(queue)
cli.add_command(sync)


if __name__ == "__main__":
    cli()
