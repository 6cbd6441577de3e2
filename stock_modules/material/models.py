"""Material submission model (``stock_modules.material.models``)."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class MaterialSubmission:
    """Thread, buckles, lining, glue and other non-leather inputs."""

    material: Any
    quantity: Any
    unit: Any
    company: Any = None
    note: Any = None
    submitted_at: datetime | None = None
