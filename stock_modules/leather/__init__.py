"""Leather stock: hides received from tanneries."""

from stock_modules.leather.adapter import LeatherAdapter
from stock_modules.leather.models import LeatherSubmission

__all__ = ["LeatherAdapter", "LeatherSubmission"]
