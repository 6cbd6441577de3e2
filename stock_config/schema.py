"""
LedgerConfig schema.

Frozen dataclasses parsed from a YAML configuration set by the loader.
Every section has defaults, so an empty section (or a missing one) is
valid; unknown keys are rejected by the loader.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from stock_kernel.services.removal_coordinator import RemovalPolicy

DEFAULT_UNITS: tuple[str, ...] = (
    "sq ft",
    "sq m",
    "pcs",
    "m",
    "cm",
    "kg",
    "g",
    "rolls",
    "sheets",
    "sets",
)


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///stock_ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    sqlite_busy_timeout: float = 30.0
    install_triggers: bool = True


@dataclass(frozen=True)
class RemovalConfig:
    """Removal validation thresholds and conflict retry policy."""

    min_purpose_length: int = 3
    min_confirmer_length: int = 2
    max_retries: int = 5
    retry_backoff_seconds: float = 0.05

    def to_policy(self) -> RemovalPolicy:
        return RemovalPolicy(
            min_purpose_length=self.min_purpose_length,
            min_confirmer_length=self.min_confirmer_length,
            max_retries=self.max_retries,
            retry_backoff_seconds=self.retry_backoff_seconds,
        )


@dataclass(frozen=True)
class StockEntryConfig:
    """Submission rules applied by the leather and material adapters."""

    allowed_units: tuple[str, ...] = DEFAULT_UNITS
    require_company: bool = False
    max_name_length: int = 255


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class LedgerConfig:
    """The runtime configuration artifact returned by get_active_config()."""

    config_id: str = "default"
    version: int = 1
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    removal: RemovalConfig = field(default_factory=RemovalConfig)
    stock_entry: StockEntryConfig = field(default_factory=StockEntryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("checksum")
        return data
