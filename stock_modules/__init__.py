"""
Stock Modules -- category adapters.

Each category package maps its own submission type onto the kernel's
canonical (category, key, quantity, status):

- leather: hides, keyed by normalized leather type; company required
- material: non-leather inputs, keyed by normalized material name
- finished_product: keyed by product id, always approved, quantity taken
  from the production job's fulfilled quantity

Modules import from the kernel and stock_config, never the reverse.
"""

from stock_config.schema import StockEntryConfig
from stock_kernel.domain.values import Category
from stock_modules._base import CategoryAdapter
from stock_modules.finished_product import FinishedProductAdapter, FinishedProductRecord
from stock_modules.leather import LeatherAdapter, LeatherSubmission
from stock_modules.material import MaterialAdapter, MaterialSubmission

_ADAPTERS: dict[Category, type[CategoryAdapter]] = {
    Category.LEATHER: LeatherAdapter,
    Category.MATERIAL: MaterialAdapter,
    Category.FINISHED_PRODUCT: FinishedProductAdapter,
}


def adapter_for(category: Category | str, rules: StockEntryConfig | None = None) -> CategoryAdapter:
    """
    Raises:
        InvalidCategoryError: If category names no known inventory.
    """
    return _ADAPTERS[Category.parse(category)](rules)


__all__ = [
    "CategoryAdapter",
    "FinishedProductAdapter",
    "FinishedProductRecord",
    "LeatherAdapter",
    "LeatherSubmission",
    "MaterialAdapter",
    "MaterialSubmission",
    "adapter_for",
]
