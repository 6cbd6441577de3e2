"""Finished products: goods handed over by the production pipeline."""

from stock_modules.finished_product.adapter import FinishedProductAdapter
from stock_modules.finished_product.models import FinishedProductRecord
from stock_modules.finished_product.service import FinishedProductService

__all__ = ["FinishedProductAdapter", "FinishedProductRecord", "FinishedProductService"]
