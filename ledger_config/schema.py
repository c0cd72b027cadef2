"""
Configuration Schema (``ledger_config.schema``).

Frozen dataclasses describing the engine's runtime settings.  Values are
parsed from YAML by ``ledger_config.loader`` and validated once, at load
time; nothing downstream re-checks them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class RecorderSettings:
    """How ``record()`` retries and how long it waits for the account lock."""

    max_record_retries: int = 5
    retry_backoff_seconds: float = 0.05
    lock_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class QuerySettings:
    default_page_size: int = 50
    max_page_size: int = 100


@dataclass(frozen=True)
class InventoryDefaults:
    """Thresholds given to inventory accounts opened without their own."""

    minimum_stock_level: Decimal = Decimal("0")
    maximum_stock_level: Decimal | None = Decimal("1000")
    reorder_point: Decimal = Decimal("0")


@dataclass(frozen=True)
class EngineSettings:
    """Complete, validated engine configuration."""

    database: DatabaseSettings
    recorder: RecorderSettings = field(default_factory=RecorderSettings)
    queries: QuerySettings = field(default_factory=QuerySettings)
    inventory: InventoryDefaults = field(default_factory=InventoryDefaults)
    checksum: str = ""
    sources: tuple[str, ...] = ()
