"""Sync CLI command."""
import click

from stocksync.offline import RemoteError

from . import runtime
from .output import print_error, print_json, print_success


@click.command()
@click.option('--force', is_flag=True,
              help='Attempt even if not connected and ignore retry backoff')
@click.pass_obj
def sync(config, force: bool):
    """Replay queued changes against the remote store."""
    try:
        if not runtime.is_reachable(config) and not force:
            print_error("Not connected. Use --force to attempt anyway.")
            return

        async def drain(service):
            result = await service.session.trigger_sync(force=force)
            if result is not None and result.clean:
                try:
                    await service.refresh_cache()
                except RemoteError as e:
                    print_error(f"Cache refresh failed: {e}")
            return result

        result = runtime.run_with_service(config, True, drain)

        if result is None:
            click.echo("Nothing to sync")
            return
        if result.clean:
            print_success(f"Synced {result.success_count} changes")
        else:
            print_error(f"{result.failure_count} changes failed to sync")
        print_json(result.to_dict())

    except Exception as e:
        print_error(f"Sync failed: {e}")
