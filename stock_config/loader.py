"""
Configuration loader (``stock_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``stock_config.schema`` dataclasses.  The single public entry point for
runtime config is ``stock_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections and unknown keys are errors, not silently ignored.
* Every value is type- and range-checked; failures raise
  ``ConfigurationError`` naming the dotted path of the bad value.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  canonical JSON form of the parsed configuration.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid value  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    RemovalConfig,
    StockEntryConfig,
)
from stock_kernel.exceptions import ConfigurationError

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(name, "section must be a mapping")
    return value


def _reject_unknown(section: str, raw: dict[str, Any], schema: type) -> None:
    known = {f.name for f in fields(schema)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigurationError(f"{section}.{unknown[0]}", "unknown key")


def _int(path: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(path, f"must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(path, f"must be >= {minimum}, got {value}")
    return value


def _float(path: str, value: Any, minimum: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(path, f"must be a number, got {value!r}")
    if value < minimum:
        raise ConfigurationError(path, f"must be >= {minimum}, got {value}")
    return float(value)


def _bool(path: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(path, f"must be true or false, got {value!r}")
    return value


def _str(path: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(path, "must be a non-empty string")
    return value.strip()


def parse_database(raw: dict[str, Any]) -> DatabaseConfig:
    _reject_unknown("database", raw, DatabaseConfig)
    config = DatabaseConfig()
    if "url" in raw:
        config = replace(config, url=_str("database.url", raw["url"]))
    if "echo" in raw:
        config = replace(config, echo=_bool("database.echo", raw["echo"]))
    if "pool_size" in raw:
        config = replace(config, pool_size=_int("database.pool_size", raw["pool_size"], 1))
    if "max_overflow" in raw:
        config = replace(
            config, max_overflow=_int("database.max_overflow", raw["max_overflow"], 0)
        )
    if "pool_timeout" in raw:
        config = replace(
            config, pool_timeout=_int("database.pool_timeout", raw["pool_timeout"], 1)
        )
    if "sqlite_busy_timeout" in raw:
        config = replace(
            config,
            sqlite_busy_timeout=_float(
                "database.sqlite_busy_timeout", raw["sqlite_busy_timeout"], 0.0
            ),
        )
    if "install_triggers" in raw:
        config = replace(
            config,
            install_triggers=_bool("database.install_triggers", raw["install_triggers"]),
        )
    return config


def parse_removal(raw: dict[str, Any]) -> RemovalConfig:
    _reject_unknown("removal", raw, RemovalConfig)
    defaults = RemovalConfig()
    return RemovalConfig(
        min_purpose_length=_int(
            "removal.min_purpose_length",
            raw.get("min_purpose_length", defaults.min_purpose_length),
            1,
        ),
        min_confirmer_length=_int(
            "removal.min_confirmer_length",
            raw.get("min_confirmer_length", defaults.min_confirmer_length),
            1,
        ),
        max_retries=_int(
            "removal.max_retries", raw.get("max_retries", defaults.max_retries), 0
        ),
        retry_backoff_seconds=_float(
            "removal.retry_backoff_seconds",
            raw.get("retry_backoff_seconds", defaults.retry_backoff_seconds),
            0.0,
        ),
    )


def parse_stock_entry(raw: dict[str, Any]) -> StockEntryConfig:
    _reject_unknown("stock_entry", raw, StockEntryConfig)
    defaults = StockEntryConfig()
    units = defaults.allowed_units
    if "allowed_units" in raw:
        value = raw["allowed_units"]
        if not isinstance(value, list) or not value:
            raise ConfigurationError("stock_entry.allowed_units", "must be a non-empty list")
        units = tuple(
            _str(f"stock_entry.allowed_units[{i}]", unit).lower()
            for i, unit in enumerate(value)
        )
    return StockEntryConfig(
        allowed_units=units,
        require_company=_bool(
            "stock_entry.require_company",
            raw.get("require_company", defaults.require_company),
        ),
        max_name_length=_int(
            "stock_entry.max_name_length",
            raw.get("max_name_length", defaults.max_name_length),
            1,
        ),
    )


def parse_logging(raw: dict[str, Any]) -> LoggingConfig:
    _reject_unknown("logging", raw, LoggingConfig)
    level = str(raw.get("level", LoggingConfig().level)).upper()
    if level not in _LOG_LEVELS:
        raise ConfigurationError("logging.level", f"must be one of {', '.join(_LOG_LEVELS)}")
    return LoggingConfig(level=level)


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a configuration document into a LedgerConfig.

    Postconditions:
        - ``checksum`` is the SHA-256 of the parsed (defaults applied)
          configuration, so equivalent files share a checksum.
    """
    allowed = {"config_id", "version", "database", "removal", "stock_entry", "logging"}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigurationError(unknown[0], "unknown section")

    config = LedgerConfig(
        config_id=_str("config_id", data.get("config_id", "default")),
        version=_int("version", data.get("version", 1), 1),
        database=parse_database(_section(data, "database")),
        removal=parse_removal(_section(data, "removal")),
        stock_entry=parse_stock_entry(_section(data, "stock_entry")),
        logging=parse_logging(_section(data, "logging")),
    )
    return replace(config, checksum=compute_checksum(config.to_dict()))


def load_config_file(path: Path) -> LedgerConfig:
    return parse_config(load_yaml_file(path))
