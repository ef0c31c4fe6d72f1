"""StockSync command line interface."""
from stocksync import __version__

__all__ = ["__version__"]
