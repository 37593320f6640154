"""
settlement_config -- single public entrypoint for settlement configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files directly; services receive the pieces they need as arguments.

Architecture position:
    Configuration -- sits above ``settlement_kernel`` and beside
    ``settlement_services``.  The kernel MUST NEVER import from
    ``settlement_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested document does not exist.
    - ``yaml.YAMLError`` -- the document is not valid YAML.
    - ``ConfigError`` -- values are missing or invalid.

Audit relevance:
    Every successful call emits ``settlement_config_loaded`` with the
    config id, version and checksum, tying payouts back to the exact
    configuration that governed them.
"""

from __future__ import annotations

from pathlib import Path

from settlement_config.loader import load_config_file
from settlement_config.schema import (
    DatabaseConfig,
    LoggingConfig,
    PayoutConfig,
    PayoutFormula,
    SettlementConfig,
)
from settlement_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> SettlementConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Path to a YAML document.  Defaults to the packaged
            ``defaults.yaml``.

    Returns:
        A frozen, validated ``SettlementConfig``.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config_file(path)

    _logger.info(
        "settlement_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "payout_formula": config.payout.formula.value,
            "source": str(path),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "LoggingConfig",
    "PayoutConfig",
    "PayoutFormula",
    "SettlementConfig",
    "get_active_config",
]
