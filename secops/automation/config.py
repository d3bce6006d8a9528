"""
Automation Configuration System

YAML files, environment variables and runtime overrides for every
automation engine in the process.

Configuration Sources (in order of precedence):
    1. Environment variables (SECOPS_*)
    2. Runtime overrides
    3. User config file (~/.secops/config.yaml)
    4. Project config file (./secops.yaml or ./config/secops.yaml)
    5. Default values

Per-protocol overrides live under the ``protocols:`` key and are checked
against a JSON Schema before they are accepted:

    protocols:
      transaction_anomaly:
        max_retries: 5
        detection_limit: 0.2
      oracle_data_verification:
        detection_limits: {consistency: 80, response_time: 10}
      bandwidth_throttling:
        enabled: false

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar, Union

import yaml
from jsonschema import Draft202012Validator

from secops.automation.errors import AutomationError
from secops.automation.escalation import CounterResetPolicy
from secops.automation.ledger import InMemoryLedger, JsonlLedger, LedgerRecorder
from secops.automation.protocols import CATALOG, ProtocolSpec
from secops.automation.sealer import AesGcmSealer, NullSealer, PayloadSealer

T = TypeVar("T")

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes", "on")


class ConfigError(AutomationError):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    One tunable setting.

    The environment variable, when bound and present, always wins over a
    value set at runtime or from a file. Strings are coerced to the type of
    the default.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    secret: bool = False
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        raw = os.environ.get(self.env_var) if self.env_var else None
        if raw is not None:
            return self._coerce(raw)
        return self.default if self._value is None else self._value

    def set(self, value: T) -> None:
        """Validate and store a runtime value, then notify callbacks."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator is not None and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value}")

        previous, self._value = self._value, value
        for callback in self._callbacks:
            callback(previous, value)

    def display(self) -> Any:
        """Value safe to print; secrets are masked."""
        value = self.get()
        return "***" if self.secret and value else value

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        self._callbacks.append(callback)

    def _coerce(self, raw: str) -> T:
        kind = type(self.default)
        if kind is bool:
            return raw.strip().lower() in _TRUTHY  # type: ignore
        if kind in (int, float):
            try:
                return kind(raw)  # type: ignore
            except ValueError as e:
                raise ConfigValidationError(f"Cannot convert {raw!r} to {kind.__name__}") from e
        return raw  # type: ignore


def _iter_values(section: Any, prefix: str = "") -> Iterator[Tuple[str, ConfigValue]]:
    """Yield (dotted path, ConfigValue) for every leaf under a config dataclass."""
    for f in fields(section):
        attr = getattr(section, f.name)
        path = f"{prefix}{f.name}"
        if isinstance(attr, ConfigValue):
            yield path, attr
        elif is_dataclass(attr):
            yield from _iter_values(attr, f"{path}.")


_RESET_POLICIES = tuple(p.value for p in CounterResetPolicy)


@dataclass
class EngineConfig:
    """Configuration shared by every automation cycle."""
    counter_reset_policy: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=CounterResetPolicy.RECOVERY.value,
        env_var="SECOPS_COUNTER_RESET_POLICY",
        description="When violation counts reset (recovery, remediation)",
        validator=lambda x: x in _RESET_POLICIES,
    ))
    stop_timeout_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=30.0,
        env_var="SECOPS_STOP_TIMEOUT",
        description="Seconds to wait for an in-flight pass when stopping",
        validator=lambda x: x > 0,
    ))


@dataclass
class SealerConfig:
    """Configuration for payload sealing."""
    enabled: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="SECOPS_SEALER_ENABLED",
        description="Seal payloads before they reach the authority",
    ))
    key_hex: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="SECOPS_SEALER_KEY",
        description="AES-256-GCM key, 64 hex characters",
        validator=lambda x: x == "" or len(x) == 64,
        secret=True,
    ))


@dataclass
class LedgerConfig:
    """Configuration for the ledger backend."""
    backend: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="memory",
        env_var="SECOPS_LEDGER_BACKEND",
        description="Ledger backend (memory, jsonl)",
        validator=lambda x: x in ("memory", "jsonl"),
    ))
    path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="secops-ledger.jsonl",
        env_var="SECOPS_LEDGER_PATH",
        description="Ledger file for the jsonl backend",
    ))
    fsync: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="SECOPS_LEDGER_FSYNC",
        description="fsync the ledger file after every append",
    ))


@dataclass
class ObservabilityConfig:
    """Logging setup for the CLI and long-running engines."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="SECOPS_LOG_LEVEL",
        description="Log level (debug, info, warning, error, critical)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="SECOPS_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


PROTOCOL_OVERRIDES_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Protocol overrides",
    "type": "object",
    "additionalProperties": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "enabled": {"type": "boolean"},
            "interval_seconds": {"type": "number", "exclusiveMinimum": 0},
            "escalation_threshold": {"type": "integer", "minimum": 1},
            "max_retries": {"type": "integer", "minimum": 1},
            "batch_size": {"type": "integer", "minimum": 1},
            "emergency_cooldown_seconds": {"type": "number", "minimum": 0},
            "counter_reset_policy": {"enum": list(_RESET_POLICIES)},
            "detection_limit": {"type": "number"},
            "detection_limits": {
                "type": "object",
                "additionalProperties": {"type": "number"},
            },
        },
    },
}


def validate_protocol_overrides(data: Any) -> List[str]:
    """Check a ``protocols:`` document. Returns a list of error messages."""
    validator = Draft202012Validator(PROTOCOL_OVERRIDES_SCHEMA)
    errors = [
        ".".join(["protocols", *(str(p) for p in e.absolute_path)]) + f": {e.message}"
        for e in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    ]
    if not isinstance(data, dict):
        return errors
    errors.extend(f"protocols.{name}: unknown protocol" for name in data if name not in CATALOG)
    if not errors:
        # Schema-valid overrides can still name clauses a predicate lacks.
        for name, values in data.items():
            try:
                CATALOG[name].with_overrides(**{k: v for k, v in values.items() if k != "enabled"})
            except ValueError as e:
                errors.append(f"protocols.{name}: {e}")
    return errors


@dataclass
class AutomationConfig:
    """
    Root configuration for security automation.

    Sections hold ConfigValue leaves; ``protocols`` is the validated
    override document keyed by protocol name.
    """
    engine: EngineConfig = field(default_factory=EngineConfig)
    sealer: SealerConfig = field(default_factory=SealerConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    protocols: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """Plain nested dict, secrets masked unless ``redact`` is False."""
        data: Dict[str, Any] = {}
        for path, value in _iter_values(self):
            section, _, name = path.rpartition(".")
            data.setdefault(section, {})[name] = value.display() if redact else value.get()
        data["protocols"] = {name: dict(values) for name, values in self.protocols.items()}
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def reset_policy(self) -> CounterResetPolicy:
        return CounterResetPolicy(self.engine.counter_reset_policy.get())

    def protocol_enabled(self, name: str) -> bool:
        return bool(self.protocols.get(name, {}).get("enabled", True))

    def resolve_protocol(self, spec: ProtocolSpec) -> ProtocolSpec:
        """Apply the configured overrides for one protocol."""
        overrides = {k: v for k, v in self.protocols.get(spec.name, {}).items() if k != "enabled"}
        return spec.with_overrides(**overrides)


def build_sealer(config: AutomationConfig) -> PayloadSealer:
    """Sealer described by the configuration; a fresh random key when none is set."""
    if not config.sealer.enabled.get():
        return NullSealer()
    key_hex = config.sealer.key_hex.get()
    if key_hex:
        return AesGcmSealer.from_hex(key_hex)
    logger.warning("No sealer key configured, using an ephemeral key")
    return AesGcmSealer(AesGcmSealer.generate_key())


def build_ledger(config: AutomationConfig) -> LedgerRecorder:
    """Ledger backend described by the configuration."""
    if config.ledger.backend.get() == "jsonl":
        return JsonlLedger(config.ledger.path.get(), fsync=config.ledger.fsync.get())
    return InMemoryLedger()


class ConfigManager:
    """
    Process-wide owner of the AutomationConfig.

    Thread-safe singleton. Files are remembered so ``reload`` can re-read
    them; watchers are called after every reload.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = AutomationConfig()
        self._config_paths: List[Path] = []
        self._watchers: List[Callable[[AutomationConfig], None]] = []
        self._initialized = True

    @classmethod
    def reset_instance(cls) -> None:
        """Discard the singleton so the next access starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> AutomationConfig:
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """
        Merge a YAML file into the configuration.

        Raises:
            ConfigError: The file is missing, unparsable or not a mapping.
            ConfigValidationError: A value or the protocols document is invalid.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e

        if not data:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must hold a mapping: {path}")

        self._apply_dict(data)
        if path not in self._config_paths:
            self._config_paths.append(path)

    def load_defaults(self) -> None:
        """Load the standard config files that exist; broken ones are skipped."""
        candidates = (
            Path("secops.yaml"),
            Path("config/secops.yaml"),
            Path.home() / ".secops" / "config.yaml",
        )
        for path in candidates:
            if not path.exists():
                continue
            try:
                self.load_from_file(path)
            except ConfigError as e:
                logger.warning("Ignoring default config %s: %s", path, e)

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        if "protocols" in data:
            self.set_protocol_overrides(data["protocols"] or {})

        leaves = dict(_iter_values(self._config))
        for section, values in data.items():
            if section == "protocols" or not isinstance(values, dict):
                continue
            for name, value in values.items():
                leaf = leaves.get(f"{section}.{name}")
                if leaf is None:
                    logger.debug("Ignoring unknown config key %s.%s", section, name)
                    continue
                leaf.set(value)

    def set_protocol_overrides(self, overrides: Dict[str, Any]) -> None:
        """Replace the per-protocol override document after validating it."""
        errors = validate_protocol_overrides(overrides)
        if errors:
            raise ConfigValidationError("; ".join(errors))
        self._config.protocols = {name: dict(values or {}) for name, values in overrides.items()}

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("engine.counter_reset_policy", "remediation")
                 config.set("protocols.phishing_prevention.max_retries", 5)
        """
        parts = path.split(".")
        if parts[0] == "protocols":
            if len(parts) != 3:
                raise ConfigError(f"Invalid config path: {path}")
            overrides = {name: dict(values) for name, values in self._config.protocols.items()}
            overrides.setdefault(parts[1], {})[parts[2]] = value
            self.set_protocol_overrides(overrides)
            return

        leaf = dict(_iter_values(self._config)).get(path)
        if leaf is None:
            raise ConfigError(f"Invalid config path: {path}")
        leaf.set(value)

    def get(self, path: str) -> Any:
        """
        Get a value, a whole section, or a protocol override by path.

        Example: config.get("ledger.backend")
        """
        parts = path.split(".")
        if parts[0] == "protocols":
            value: Any = self._config.protocols
            for part in parts[1:]:
                if not isinstance(value, dict) or part not in value:
                    raise ConfigError(f"Invalid config path: {path}")
                value = value[part]
            return value

        leaves = dict(_iter_values(self._config))
        if path in leaves:
            return leaves[path].get()
        section = {
            key[len(path) + 1:]: leaf.get()
            for key, leaf in leaves.items() if key.startswith(f"{path}.")
        }
        if not section:
            raise ConfigError(f"Invalid config path: {path}")
        return section

    def watch(self, callback: Callable[[AutomationConfig], None]) -> None:
        """Call ``callback`` with the configuration after each reload."""
        self._watchers.append(callback)

    def reload(self) -> None:
        for path in self._config_paths:
            if path.exists():
                self.load_from_file(path)

        for watcher in self._watchers:
            watcher(self._config)

    def validate(self) -> List[str]:
        """Check every effective value, environment included. Returns error messages."""
        errors: List[str] = []
        for path, leaf in _iter_values(self._config):
            try:
                current = leaf.get()
            except ConfigError as e:
                errors.append(f"{path}: {e}")
                continue
            if leaf.validator is not None and not leaf.validator(current):
                errors.append(f"{path}: validation failed for value {leaf.display()}")

        errors.extend(validate_protocol_overrides(self._config.protocols))
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Describe every setting, with the protocols document as JSON Schema."""
        properties: Dict[str, Any] = {}
        for path, leaf in _iter_values(self._config):
            section, _, name = path.rpartition(".")
            entry: Dict[str, Any] = {
                "type": type(leaf.default).__name__,
                "default": leaf.default,
                "description": leaf.description,
            }
            if leaf.env_var:
                entry["env_var"] = leaf.env_var
            properties.setdefault(section, {})[name] = entry

        properties["protocols"] = PROTOCOL_OVERRIDES_SCHEMA
        return {"title": "secops configuration", "properties": properties}


def get_config() -> AutomationConfig:
    """Get the current automation configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    return ConfigManager()
