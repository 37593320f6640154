"""
YAML loader for settlement configuration.

Parses a single YAML document into ``settlement_config.schema`` frozen
dataclasses.  Every problem found is collected and reported together in
one ``ConfigError``.

Failure modes:
    - Missing file      -> ``FileNotFoundError`` propagates.
    - Malformed YAML    -> ``yaml.YAMLError`` propagates.
    - Invalid values    -> ``ConfigError`` listing every problem.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import (
    DatabaseConfig,
    LoggingConfig,
    PayoutConfig,
    PayoutFormula,
    SettlementConfig,
)
from settlement_kernel.domain.reconciliation import ReconciliationStatus
from settlement_kernel.exceptions import ConfigError

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping()) - {"NOTSET", "WARN", "FATAL"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str, problems: list[str]) -> dict[str, Any]:
    value = data.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        problems.append(f"{name}: expected a mapping")
        return {}
    return value


def parse_database(data: dict[str, Any], problems: list[str]) -> DatabaseConfig:
    url = data.get("url")
    if not url or not isinstance(url, str):
        problems.append("database.url: required")
        url = ""
    for key in ("pool_size", "max_overflow"):
        value = data.get(key, 10)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            problems.append(f"database.{key}: expected a non-negative integer")
    return DatabaseConfig(
        url=url,
        echo=bool(data.get("echo", False)),
        pool_size=data.get("pool_size", 10),
        max_overflow=data.get("max_overflow", 10),
    )


def parse_logging(data: dict[str, Any], problems: list[str]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        problems.append(f"logging.level: unknown level {level!r}")
    return LoggingConfig(level=level)


def parse_payout(data: dict[str, Any], problems: list[str]) -> PayoutConfig:
    defaults = PayoutConfig()

    formula_raw = data.get("formula", defaults.formula.value)
    try:
        formula = PayoutFormula(formula_raw)
    except ValueError:
        problems.append(
            f"payout.formula: expected one of "
            f"{[f.value for f in PayoutFormula]}, got {formula_raw!r}"
        )
        formula = defaults.formula

    prefix = data.get("reference_prefix", defaults.reference_prefix)
    if not isinstance(prefix, str) or not prefix.strip():
        problems.append("payout.reference_prefix: must be a non-empty string")
        prefix = defaults.reference_prefix

    known_statuses = {s.value for s in ReconciliationStatus}

    statuses = data.get("payable_statuses", list(defaults.payable_statuses))
    if not isinstance(statuses, list) or not statuses:
        problems.append("payout.payable_statuses: must be a non-empty list")
        statuses = list(defaults.payable_statuses)
    for status in statuses:
        if status not in known_statuses:
            problems.append(f"payout.payable_statuses: unknown status {status!r}")
        elif status == ReconciliationStatus.DRAFT.value:
            problems.append("payout.payable_statuses: a draft is never payable")

    terminal = data.get("terminal_status", defaults.terminal_status)
    if terminal not in known_statuses:
        problems.append(f"payout.terminal_status: unknown status {terminal!r}")
    elif terminal in statuses:
        problems.append("payout.terminal_status: must not be payable")

    return PayoutConfig(
        formula=formula,
        reference_prefix=prefix.strip(),
        payable_statuses=tuple(statuses),
        terminal_status=terminal,
    )


def parse_config(data: dict[str, Any], source: str) -> SettlementConfig:
    """
    Build a ``SettlementConfig`` from a parsed YAML document.

    Raises:
        ConfigError: listing every invalid or missing value.
    """
    problems: list[str] = []

    config_id = data.get("config_id")
    if not config_id:
        problems.append("config_id: required")
    version = data.get("version", 1)
    if not isinstance(version, int) or isinstance(version, bool):
        problems.append("version: expected an integer")

    database = parse_database(_section(data, "database", problems), problems)
    logging_config = parse_logging(_section(data, "logging", problems), problems)
    payout = parse_payout(_section(data, "payout", problems), problems)

    if problems:
        raise ConfigError(source, problems)

    return SettlementConfig(
        config_id=str(config_id),
        version=version,
        database=database,
        logging=logging_config,
        payout=payout,
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> SettlementConfig:
    return parse_config(load_yaml_file(path), str(path))
