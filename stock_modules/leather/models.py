"""
Leather submission model (``stock_modules.leather.models``).

A worker's report of hides received from a tannery.  Frozen; carries no
database identity.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class LeatherSubmission:
    """
    Raw worker input.  Fields are left loosely typed because they arrive
    from a form; the adapter validates them.
    """

    leather_type: Any
    quantity: Any
    unit: Any
    company: Any
    note: Any = None
    submitted_at: datetime | None = None
