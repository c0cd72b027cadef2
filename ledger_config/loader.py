"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads YAML files, merges overlays onto the packaged defaults and parses
the result into ``ledger_config.schema`` dataclasses.  The single public
entry point for runtime config is ``ledger_config.get_engine_settings()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or an out-of-range value  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    DatabaseSettings,
    EngineSettings,
    InventoryDefaults,
    QuerySettings,
    RecorderSettings,
)

_SECTIONS = {
    "database": DatabaseSettings,
    "recorder": RecorderSettings,
    "queries": QuerySettings,
    "inventory": InventoryDefaults,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge_overlay(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``overlay`` replace keys in ``base``."""
    merged = {name: dict(values or {}) for name, values in base.items()}
    for name, values in overlay.items():
        if name not in _SECTIONS:
            raise ValueError(f"Unknown configuration section: {name!r}")
        if not isinstance(values, dict):
            raise ValueError(f"Section {name!r} must be a mapping")
        merged.setdefault(name, {}).update(values)
    return merged


def _parse_decimal(section: str, key: str, value: Any) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{section}.{key}: not a decimal: {value!r}") from None


def _build_section(name: str, values: dict[str, Any]):
    cls = _SECTIONS[name]
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown keys in section {name!r}: {sorted(unknown)}")
    if cls is InventoryDefaults:
        values = {k: _parse_decimal(name, k, v) for k, v in values.items()}
    return cls(**values)


def _validate(settings: EngineSettings) -> None:
    errors = []
    if not settings.database.url:
        errors.append("database.url is required")
    if settings.recorder.max_record_retries < 1:
        errors.append("recorder.max_record_retries must be >= 1")
    if settings.recorder.retry_backoff_seconds < 0:
        errors.append("recorder.retry_backoff_seconds must be >= 0")
    if settings.recorder.lock_timeout_seconds <= 0:
        errors.append("recorder.lock_timeout_seconds must be > 0")
    queries = settings.queries
    if queries.max_page_size < 1:
        errors.append("queries.max_page_size must be >= 1")
    if not 1 <= queries.default_page_size <= queries.max_page_size:
        errors.append("queries.default_page_size must be within 1..max_page_size")
    inventory = settings.inventory
    if inventory.minimum_stock_level < 0 or inventory.reorder_point < 0:
        errors.append("inventory thresholds must not be negative")
    if (
        inventory.maximum_stock_level is not None
        and inventory.maximum_stock_level < inventory.minimum_stock_level
    ):
        errors.append("inventory.maximum_stock_level must be >= minimum_stock_level")
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def parse_settings(data: dict[str, Any], sources: tuple[str, ...] = ()) -> EngineSettings:
    """Build and validate ``EngineSettings`` from a merged configuration dict."""
    if "database" not in data:
        raise ValueError("Configuration is missing the 'database' section")
    sections = {name: _build_section(name, values) for name, values in data.items()}
    settings = EngineSettings(
        checksum=compute_checksum(data),
        sources=sources,
        **sections,
    )
    _validate(settings)
    return settings


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
