"""
Entry point for running StockSync as a module.

Usage:
    python -m stocksync [command] [options]

Example:
    python -m stocksync status
    python -m stocksync item adjust <ITEM_ID> -5 --reason Sale
    python -m stocksync sync --force
"""

from stocksync.cli.main import cli

if __name__ == "__main__":
    cli()
