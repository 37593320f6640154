"""
Settlement configuration schema.

The YAML document is parsed into these frozen dataclasses by the loader.
Nothing outside settlement_config reads the YAML itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PayoutFormula(str, Enum):
    """Which formula the payout path commits."""

    UNIFIED = "unified"
    LEGACY = "legacy"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class PayoutConfig:
    """Payout guards and reference generation."""

    formula: PayoutFormula = PayoutFormula.UNIFIED
    reference_prefix: str = "PAYOUT"
    payable_statuses: tuple[str, ...] = ("approved", "statement_sent")
    terminal_status: str = "charged"


@dataclass(frozen=True)
class SettlementConfig:
    """Root configuration object returned by ``get_active_config()``."""

    config_id: str
    version: int
    database: DatabaseConfig
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    payout: PayoutConfig = field(default_factory=PayoutConfig)
    checksum: str = ""
