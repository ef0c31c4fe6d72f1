"""Inventory item commands: add, update, delete, adjust, link, list."""
import sys

import click

from stocksync.core.constants import ADJUST_REASONS, DEFAULT_ADJUST_REASON
from stocksync.core.receipt import StopRule
from stocksync.offline import RemoteError, StorageFailure

from . import runtime
from .output import error_box, success_box, table

_FIELD_OPTIONS = [
    click.option('--brand', default=None),
    click.option('--model', default=None),
    click.option('--category', default=None),
    click.option('--quality', default=None),
    click.option('--location', default=None),
    click.option('--barcode', default=None),
    click.option('--price-buy', type=float, default=None),
    click.option('--price-sell', type=float, default=None),
]

_offline_option = click.option('--offline', is_flag=True,
                               help='Save locally and queue, even if connected')


def _field_options(fn):
    for option in reversed(_FIELD_OPTIONS):
        fn = option(fn)
    return fn


def _online(config, offline: bool) -> bool:
    return False if offline else runtime.is_reachable(config)


def _report(title: str, outcomes: list) -> None:
    rows = []
    for outcome in outcomes:
        rows.append(("Item", outcome.item_id))
        rows.append(("Status", outcome.message))
        if outcome.change_id:
            rows.append(("Change", outcome.change_id))
    queued = any(o.queued for o in outcomes)
    status = "QUEUED" if queued else "SAVED"
    success_box(f"{title}: {status}", rows, "stock sync" if queued else "stock item list")


def _run(config, offline: bool, title: str, action):
    """Run one mutation and exit with the CLI status convention."""
    try:
        result = runtime.run_with_service(config, _online(config, offline), action)
    except StopRule as e:
        error_box(f"{title}: REJECTED", str(e))
        sys.exit(1)
    except RemoteError as e:
        error_box(f"{title}: FAILED", str(e), "retry with --offline to queue the change")
        sys.exit(2)
    except StorageFailure as e:
        error_box(f"{title}: NOT SAVED", str(e))
        sys.exit(2)
    _report(title, result if isinstance(result, list) else [result])


@click.group()
def item():
    """Inventory item operations."""
    pass


@item.command()
@click.argument('name')
@click.option('--stock', type=int, required=True, help='Initial stock')
@_field_options
@_offline_option
@click.pass_obj
def add(config, name: str, stock: int, offline: bool, **fields):
    """Add an inventory item."""
    data = {"name": name, "stock": stock}
    data.update({k: v for k, v in fields.items() if v is not None})
    _run(config, offline, "Item Add", lambda s: s.add_item(data))


@item.command()
@click.argument('item_id')
@click.option('--name', default=None)
@_field_options
@_offline_option
@click.pass_obj
def update(config, item_id: str, name: str | None, offline: bool, **fields):
    """Update fields of an item (stock goes through adjust)."""
    patch = {k: v for k, v in fields.items() if v is not None}
    if name is not None:
        patch["name"] = name
    if not patch:
        error_box("Item Update: REJECTED", "Nothing to update")
        sys.exit(1)
    _run(config, offline, "Item Update", lambda s: s.update_item(item_id, patch))


@item.command()
@click.argument('item_id')
@click.option('--cascade', is_flag=True, help='Also delete the variants of a parent')
@_offline_option
@click.pass_obj
def delete(config, item_id: str, cascade: bool, offline: bool):
    """Delete an item."""
    _run(config, offline, "Item Delete", lambda s: s.delete_item(item_id, cascade=cascade))


@item.command()
@click.argument('item_id')
@click.option('--delta', '-d', type=int, required=True,
              help='Units to move: positive adds stock, negative removes it')
@click.option('--reason', type=click.Choice(ADJUST_REASONS), default=DEFAULT_ADJUST_REASON)
@click.option('--notes', default="")
@click.option('--user', default=None, help='Recorded on the transaction log')
@_offline_option
@click.pass_obj
def adjust(config, item_id: str, delta: int, reason: str, notes: str, user: str | None, offline: bool):
    """Adjust stock and log the movement."""
    _run(config, offline, "Stock Adjust",
         lambda s: s.adjust_stock(item_id, delta, reason=reason, notes=notes, user=user))


@item.command()
@click.argument('parent_id')
@click.argument('variant_id')
@click.option('--name', 'variant_name', default=None, help='Variant display name')
@_offline_option
@click.pass_obj
def link(config, parent_id: str, variant_id: str, variant_name: str | None, offline: bool):
    """Attach VARIANT_ID as a variant of PARENT_ID."""
    _run(config, offline, "Variant Link",
         lambda s: s.link_variant(parent_id, variant_id, variant_name))


@item.command()
@click.argument('variant_id')
@_offline_option
@click.pass_obj
def unlink(config, variant_id: str, offline: bool):
    """Detach a variant from its parent."""
    _run(config, offline, "Variant Unlink", lambda s: s.unlink_variant(variant_id))


@item.command('list')
@click.option('--refresh', is_flag=True, help='Re-read the remote collection first')
@click.pass_obj
def list_items(config, refresh: bool):
    """List cached inventory (* marks unsynced entries)."""
    online = runtime.is_reachable(config) if refresh else False

    async def read(service):
        if refresh:
            return await service.refresh_cache()
        return await service.list_items()

    try:
        items = runtime.run_with_service(config, online, read)
    except (RemoteError, StorageFailure) as e:
        error_box("Item List: FAILED", str(e))
        sys.exit(2)

    if not items:
        click.echo("No items cached")
        return
    table(
        ["ID", "NAME", "STOCK", "PARENT", "SYNCED"],
        [[i.id, i.name or "-", i.stock if i.stock is not None else "-",
          i.parent_id or "-", "*" if i.pending else "yes"] for i in items],
    )
