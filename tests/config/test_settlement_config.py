"""Tests for settlement configuration loading (settlement_config)."""

from pathlib import Path

import pytest
import yaml

from settlement_config import DEFAULT_CONFIG_PATH, get_active_config
from settlement_config.loader import compute_checksum, load_yaml_file, parse_config
from settlement_config.schema import PayoutFormula
from settlement_kernel.exceptions import ConfigError


def _write(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "settlement.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def _valid() -> dict:
    return load_yaml_file(DEFAULT_CONFIG_PATH)


class TestDefaults:

    def test_packaged_defaults(self):
        config = get_active_config()
        assert config.config_id == "settlement-default"
        assert config.version == 1
        assert config.payout.formula is PayoutFormula.UNIFIED
        assert config.payout.reference_prefix == "PAYOUT"
        assert config.payout.payable_statuses == ("approved", "statement_sent")
        assert config.payout.terminal_status == "charged"
        assert config.logging.level == "INFO"
        assert config.database.url.startswith("sqlite")

    def test_checksum_is_stable(self):
        first = get_active_config()
        second = get_active_config()
        assert first.checksum == second.checksum == compute_checksum(_valid())
        assert len(first.checksum) == 64

    def test_load_is_logged(self, captured_logs):
        config = get_active_config()
        loaded = [r for r in captured_logs() if r["message"] == "settlement_config_loaded"]
        assert loaded[0]["checksum"] == config.checksum
        assert loaded[0]["payout_formula"] == "unified"


class TestCustomDocuments:

    def test_legacy_formula(self, tmp_path):
        data = _valid()
        data["payout"]["formula"] = "legacy"
        data["logging"]["level"] = "debug"
        config = get_active_config(_write(tmp_path, data))
        assert config.payout.formula is PayoutFormula.LEGACY
        assert config.logging.level == "DEBUG"

    def test_missing_sections_use_defaults(self):
        config = parse_config(
            {"config_id": "minimal", "database": {"url": "sqlite://"}}, "inline"
        )
        assert config.payout.formula is PayoutFormula.UNIFIED
        assert config.logging.level == "INFO"

    def test_every_problem_reported(self):
        data = _valid()
        data["payout"]["formula"] = "average"
        data["payout"]["payable_statuses"] = ["approved", "paid"]
        data["logging"]["level"] = "LOUD"
        del data["config_id"]

        with pytest.raises(ConfigError) as exc_info:
            parse_config(data, "inline")

        problems = exc_info.value.problems
        assert len(problems) == 4
        assert any(p.startswith("payout.formula") for p in problems)
        assert any("'paid'" in p for p in problems)
        assert any(p.startswith("logging.level") for p in problems)
        assert "config_id: required" in problems
        assert exc_info.value.code == "CONFIG_ERROR"

    def test_terminal_status_must_not_be_payable(self):
        data = _valid()
        data["payout"]["terminal_status"] = "approved"
        with pytest.raises(ConfigError, match="must not be payable"):
            parse_config(data, "inline")

    def test_draft_cannot_be_payable(self):
        data = _valid()
        data["payout"]["payable_statuses"] = ["draft", "approved"]
        with pytest.raises(ConfigError) as exc_info:
            parse_config(data, "inline")
        assert exc_info.value.problems == [
            "payout.payable_statuses: a draft is never payable"
        ]

    def test_database_url_required(self):
        data = _valid()
        data["database"] = {"pool_size": -1}
        with pytest.raises(ConfigError) as exc_info:
            parse_config(data, "inline")
        assert "database.url: required" in exc_info.value.problems
        assert "database.pool_size: expected a non-negative integer" in exc_info.value.problems

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")
