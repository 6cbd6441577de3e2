"""
stock_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``LedgerConfig``.

Architecture position:
    Configuration.  Sits above ``stock_kernel`` and below
    ``stock_services`` / ``stock_modules``.  The kernel never imports from
    ``stock_config``; ``RemovalConfig.to_policy()`` translates config into
    the kernel's RemovalPolicy.

Invariants enforced:
    - Validation: every value is checked before a LedgerConfig is produced.
    - Deterministic checksum: equivalent files give the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ConfigurationError`` -- a value failed validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STOCK_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

from pathlib import Path

from stock_config.loader import load_config_file
from stock_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    RemovalConfig,
    StockEntryConfig,
)
from stock_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "LedgerConfig",
    "LoggingConfig",
    "RemovalConfig",
    "StockEntryConfig",
    "get_active_config",
]


def get_active_config(config_path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to
            stock_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config_file(path)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
        },
    )
    return config
