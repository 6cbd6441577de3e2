"""Read-only query selectors."""

from stock_kernel.selectors.net_stock_selector import NetStockSelector
from stock_kernel.selectors.removal_selector import RemovalSelector
from stock_kernel.selectors.stock_entry_selector import StockEntrySelector

__all__ = ["NetStockSelector", "RemovalSelector", "StockEntrySelector"]
