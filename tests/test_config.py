"""
Configuration System Tests

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from secops.automation.config import (
    AutomationConfig,
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    ConfigValue,
    build_ledger,
    build_sealer,
    validate_protocol_overrides,
)
from secops.automation.escalation import CounterResetPolicy
from secops.automation.ledger import InMemoryLedger, JsonlLedger
from secops.automation.protocols import get_protocol
from secops.automation.sealer import AesGcmSealer, NullSealer


class TestConfigValue:
    """Single values."""

    def test_default_and_set(self):
        value = ConfigValue(default=3, validator=lambda x: x > 0)
        assert value.get() == 3
        value.set(5)
        assert value.get() == 5
        with pytest.raises(ConfigValidationError):
            value.set(0)

    def test_env_var_wins(self, monkeypatch):
        value = ConfigValue(default=30.0, env_var="SECOPS_TEST_TIMEOUT")
        value.set(10.0)
        monkeypatch.setenv("SECOPS_TEST_TIMEOUT", "2.5")
        assert value.get() == 2.5

    def test_string_coercion_on_set(self):
        value = ConfigValue(default=True)
        value.set("off")
        assert value.get() is False

    def test_secret_display(self):
        value = ConfigValue(default="", secret=True)
        assert value.display() == ""
        value.set("00" * 32)
        assert value.display() == "***"

    def test_change_callback(self):
        seen = []
        value = ConfigValue(default="json")
        value.on_change(lambda old, new: seen.append((old, new)))
        value.set("text")
        assert seen == [(None, "text")]


class TestProtocolOverrides:
    """jsonschema-validated protocols: document."""

    def test_valid_document(self):
        assert validate_protocol_overrides({
            "phishing_prevention": {"max_retries": 5, "enabled": False},
            "realtime_anomaly": {"detection_limit": 0.2, "counter_reset_policy": "remediation"},
        }) == []

    def test_schema_errors(self):
        errors = validate_protocol_overrides({
            "phishing_prevention": {"max_retries": 0, "colour": "red"},
        })
        assert any("protocols.phishing_prevention.max_retries" in e for e in errors)
        assert any("colour" in e for e in errors)

    def test_unknown_protocol(self):
        assert validate_protocol_overrides({"no_such_protocol": {}}) == [
            "protocols.no_such_protocol: unknown protocol",
        ]

    def test_single_limit_needs_single_threshold(self):
        errors = validate_protocol_overrides({"oracle_data_verification": {"detection_limit": 80}})
        assert len(errors) == 1
        assert errors[0].startswith("protocols.oracle_data_verification: ")

    def test_per_attribute_limits(self):
        assert validate_protocol_overrides({
            "oracle_data_verification": {"detection_limits": {"consistency": 80, "response_time": 10}},
        }) == []
        errors = validate_protocol_overrides({
            "oracle_data_verification": {"detection_limits": {"latency": 1}},
        })
        assert errors and "latency" in errors[0]
        errors = validate_protocol_overrides({
            "oracle_data_verification": {"detection_limits": {"consistency": "low"}},
        })
        assert any("protocols.oracle_data_verification.detection_limits.consistency" in e for e in errors)

    def test_single_tier_threshold_rejected(self):
        errors = validate_protocol_overrides({"asset_freezing": {"escalation_threshold": 3}})
        assert errors == ["protocols.asset_freezing: asset_freezing: a single-tier protocol escalates on the first violation"]

    def test_resolve_protocol(self):
        config = AutomationConfig(protocols={"pos_slashing": {"max_retries": 7, "enabled": False}})
        spec = config.resolve_protocol(get_protocol("pos_slashing"))
        assert spec.max_retries == 7
        assert not config.protocol_enabled("pos_slashing")
        assert config.protocol_enabled("phishing_prevention")


class TestConfigManager:
    """Singleton manager: files, paths, validation."""

    def setup_method(self):
        ConfigManager.reset_instance()

    def teardown_method(self):
        ConfigManager.reset_instance()

    def test_singleton(self):
        assert ConfigManager() is ConfigManager()

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "secops.yaml"
        path.write_text(
            "engine:\n"
            "  counter_reset_policy: remediation\n"
            "ledger:\n"
            "  backend: jsonl\n"
            "protocols:\n"
            "  bandwidth_throttling:\n"
            "    interval_seconds: 30\n"
        )
        mgr = ConfigManager()
        mgr.load_from_file(path)
        assert mgr.get("engine.counter_reset_policy") == "remediation"
        assert mgr.config.reset_policy() == CounterResetPolicy.REMEDIATION
        assert mgr.get("ledger.backend") == "jsonl"
        assert mgr.get("protocols.bandwidth_throttling.interval_seconds") == 30

    def test_load_rejects_invalid_overrides(self, tmp_path):
        path = tmp_path / "secops.yaml"
        path.write_text("protocols:\n  bandwidth_throttling:\n    batch_size: -1\n")
        with pytest.raises(ConfigValidationError):
            ConfigManager().load_from_file(path)

    def test_load_errors(self, tmp_path):
        mgr = ConfigManager()
        with pytest.raises(ConfigError):
            mgr.load_from_file(tmp_path / "missing.yaml")
        bad = tmp_path / "bad.yaml"
        bad.write_text("engine: [unclosed\n")
        with pytest.raises(ConfigError):
            mgr.load_from_file(bad)

    def test_set_and_get_paths(self):
        mgr = ConfigManager()
        mgr.set("observability.log_format", "text")
        mgr.set("protocols.phishing_prevention.max_retries", 4)
        assert mgr.get("observability.log_format") == "text"
        assert mgr.get("protocols.phishing_prevention") == {"max_retries": 4}
        with pytest.raises(ConfigError):
            mgr.get("engine.nope")
        with pytest.raises(ConfigError):
            mgr.set("engine", "x")
        with pytest.raises(ConfigValidationError):
            mgr.set("protocols.phishing_prevention.max_retries", 0)
        assert mgr.get("protocols.phishing_prevention.max_retries") == 4

    def test_validate(self, monkeypatch):
        mgr = ConfigManager()
        assert mgr.validate() == []
        monkeypatch.setenv("SECOPS_LEDGER_BACKEND", "postgres")
        assert mgr.validate() == ["ledger.backend: validation failed for value postgres"]

    def test_schema_and_dict(self):
        mgr = ConfigManager()
        mgr.set("sealer.key_hex", "ab" * 32)
        schema = mgr.export_schema()
        assert schema["properties"]["sealer"]["key_hex"]["env_var"] == "SECOPS_SEALER_KEY"
        assert "additionalProperties" in schema["properties"]["protocols"]
        data = mgr.config.to_dict()
        assert data["sealer"]["key_hex"] == "***"
        assert mgr.config.to_dict(redact=False)["sealer"]["key_hex"] == "ab" * 32
        assert "counter_reset_policy" in mgr.config.to_yaml()

    def test_load_defaults_ignores_broken_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        (tmp_path / "secops.yaml").write_text("- not a mapping\n")
        ConfigManager().load_defaults()
        assert ConfigManager().get("ledger.backend") == "memory"


class TestBuilders:
    """Sealer and ledger construction from configuration."""

    def test_sealer(self):
        config = AutomationConfig()
        assert isinstance(build_sealer(config), AesGcmSealer)
        config.sealer.key_hex.set("11" * 32)
        assert isinstance(build_sealer(config), AesGcmSealer)
        config.sealer.enabled.set(False)
        assert isinstance(build_sealer(config), NullSealer)

    def test_ledger(self, tmp_path):
        config = AutomationConfig()
        assert isinstance(build_ledger(config), InMemoryLedger)
        config.ledger.backend.set("jsonl")
        config.ledger.path.set(str(tmp_path / "ledger.jsonl"))
        ledger = build_ledger(config)
        assert isinstance(ledger, JsonlLedger)
        assert ledger.path == tmp_path / "ledger.jsonl"
