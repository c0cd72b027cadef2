"""
Ledger engine configuration.

``get_engine_settings()`` is the only public configuration entry point:
packaged defaults, then an optional YAML overlay, then the
``LEDGER_DATABASE_URL`` environment variable.
"""

from __future__ import annotations

import os
from pathlib import Path

from ledger_config.loader import load_yaml_file, merge_overlay, parse_settings
from ledger_config.schema import (
    DatabaseSettings,
    EngineSettings,
    InventoryDefaults,
    QuerySettings,
    RecorderSettings,
)
from ledger_kernel.logging_config import get_logger

__all__ = [
    "DatabaseSettings",
    "EngineSettings",
    "InventoryDefaults",
    "QuerySettings",
    "RecorderSettings",
    "get_engine_settings",
]

_logger = get_logger("config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
DATABASE_URL_ENV = "LEDGER_DATABASE_URL"


def get_engine_settings(path: Path | str | None = None) -> EngineSettings:
    """
    Load, merge and validate the engine configuration.

    Args:
        path: Optional YAML file overlaid on the packaged defaults.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the merged configuration is invalid.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    sources = [str(DEFAULTS_PATH)]

    if path is not None:
        data = merge_overlay(data, load_yaml_file(Path(path)))
        sources.append(str(path))

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        data = merge_overlay(data, {"database": {"url": env_url}})
        sources.append(f"env:{DATABASE_URL_ENV}")

    settings = parse_settings(data, tuple(sources))

    _logger.info(
        "ledger_config_loaded",
        extra={
            "checksum": settings.checksum,
            "sources": list(settings.sources),
            "max_record_retries": settings.recorder.max_record_retries,
            "max_page_size": settings.queries.max_page_size,
        },
    )
    return settings
