"""
Finished product model (``stock_modules.finished_product.models``).

What the production pipeline hands over when a job is marked finished.
The fulfilled quantity is captured at that moment and never changes.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class FinishedProductRecord:
    product_id: Any
    product_name: Any
    fulfilled_quantity: Any
    finished_at: datetime | None = None
    production_job_id: Any = None
    unit: Any = "pcs"
    unit_cost: Any = None
    note: Any = None
