#!/usr/bin/env python3
"""
secops: inspect protocols, manage configuration and dry-run engines.

    secops protocols list|show NAME
    secops config get|set|show|validate|schema
    secops simulate NAME --scenario FILE [--passes N] [--emergency KEY ...]

``simulate`` drives one engine against an in-memory authority built from a
YAML scenario and prints the passes, the ledger and the escalation table.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import yaml

from secops.automation import __version__
from secops.automation.authority import InMemoryAuthority
from secops.automation.config import build_ledger, build_sealer, get_config, get_config_manager
from secops.automation.engine import AutomationCycle
from secops.automation.ledger import JsonlLedger
from secops.automation.metrics import MetricsCollector
from secops.automation.observability import configure_logging
from secops.automation.protocols import ProtocolSpec, get_protocol, list_protocols


class OutputFormat(Enum):
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


TABLE_CELL_WIDTH = 40


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    if fmt is OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    if fmt is OutputFormat.TABLE:
        return _format_table(data)
    return json.dumps(data, indent=2, default=str)


def _format_table(data: Any) -> str:
    """Rows of dicts as an aligned table; a dict as ``key: value`` lines."""
    if isinstance(data, dict):
        return "\n".join(f"{key}: {value}" for key, value in data.items())
    if not (isinstance(data, list) and data and isinstance(data[0], dict)):
        return str(data)

    columns = list(data[0])
    cells = [[str(row.get(col, ""))[:TABLE_CELL_WIDTH] for col in columns] for row in data]
    widths = [max([len(col)] + [len(row[i]) for row in cells]) for i, col in enumerate(columns)]

    def line(values: List[str]) -> str:
        return " | ".join(v.ljust(w) for v, w in zip(values, widths)).rstrip()

    return "\n".join([line(columns), "-+-".join("-" * w for w in widths)] + [line(row) for row in cells])


class SecopsCLI:
    """Argument parsing and ``_handle_<command>[_<subcommand>]`` dispatch."""

    def __init__(self):
        parser = argparse.ArgumentParser(prog="secops", description="Security automation engines CLI")
        parser.add_argument("--version", "-V", action="version", version=f"secops {__version__}")
        parser.add_argument(
            "--format", "-f", choices=[f.value for f in OutputFormat], default="json",
            help="Output format (default: json)",
        )
        parser.add_argument("--config", "-c", help="Configuration file (default: secops.yaml lookup)")
        parser.add_argument("--quiet", "-q", action="store_true", help="Suppress error messages")
        commands = parser.add_subparsers(dest="command")

        protocols = commands.add_parser("protocols", help="Inspect the protocol catalog")
        protocols_sub = protocols.add_subparsers(dest="subcommand")
        protocols_sub.add_parser("list", help="List built-in protocols")
        protocols_sub.add_parser("show", help="Show one protocol with overrides applied").add_argument("name")

        config = commands.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")
        config_sub.add_parser("get", help="Get a value").add_argument("path", help="e.g. ledger.backend")
        set_cmd = config_sub.add_parser("set", help="Set a value")
        set_cmd.add_argument("path")
        set_cmd.add_argument("value", help="YAML scalar")
        config_sub.add_parser("show", help="Show all configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

        simulate = commands.add_parser("simulate", help="Run passes against a scripted in-memory authority")
        simulate.add_argument("name", help="Protocol name")
        simulate.add_argument("--scenario", "-s", required=True, help="Scenario YAML file")
        simulate.add_argument("--passes", "-n", type=int, default=1)
        simulate.add_argument("--batch-size", type=int, help="Override batch size")
        simulate.add_argument(
            "--emergency", "-e", action="append", default=[],
            help="Entity key to apply the emergency action to after the passes",
        )
        simulate.add_argument("--skip-cooldown", action="store_true", help="Do not wait out the emergency cooldown")

        self.parser = parser

    def run(self, args: Optional[List[str]] = None) -> int:
        parsed = self.parser.parse_args(args)
        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            mgr = get_config_manager()
            if parsed.config:
                mgr.load_from_file(parsed.config)
            else:
                mgr.load_defaults()
            result = self._dispatch(parsed)
        except Exception as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code if isinstance(e, CLIError) else 1

        if result is not None:
            print(format_output(result, OutputFormat(parsed.format)))
        return 0

    def _dispatch(self, args: argparse.Namespace) -> Any:
        subcmd = getattr(args, "subcommand", None)
        handler = getattr(self, f"_handle_{args.command}_{subcmd}" if subcmd else f"_handle_{args.command}", None)
        if handler is None:
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}", exit_code=2)
        return handler(args)

    def _handle_protocols_list(self, args: argparse.Namespace) -> Any:
        config = get_config()
        specs = [config.resolve_protocol(s) for s in list_protocols()]
        return [
            {
                "name": spec.name,
                "title": spec.title,
                "interval_seconds": spec.interval_seconds,
                "enabled": config.protocol_enabled(spec.name),
                "emergency": spec.emergency.operation if spec.emergency else "",
            }
            for spec in specs
        ]

    def _handle_protocols_show(self, args: argparse.Namespace) -> Any:
        config = get_config()
        spec = config.resolve_protocol(self._protocol(args.name))
        return {**spec.to_dict(), "enabled": config.protocol_enabled(spec.name)}

    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        return {"path": args.path, "value": get_config_manager().get(args.path)}

    def _handle_config_set(self, args: argparse.Namespace) -> Any:
        value = yaml.safe_load(args.value)
        get_config_manager().set(args.path, value)
        return {"path": args.path, "value": value, "status": "updated"}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        if not args.quiet:
            for error in errors:
                print(f"Invalid: {error}", file=sys.stderr)
        return {"valid": not errors, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()

    def _handle_simulate(self, args: argparse.Namespace) -> Any:
        if args.passes < 0:
            raise CLIError("--passes must not be negative", exit_code=2)

        config = get_config()
        configure_logging(
            config.observability.log_level.get(),
            config.observability.log_format.get(),
            stream=sys.stderr,
        )

        spec = self._protocol(args.name)
        if not config.protocol_enabled(spec.name):
            raise CLIError(f"Protocol '{spec.name}' is disabled in configuration")
        if args.batch_size:
            get_config_manager().set(f"protocols.{spec.name}.batch_size", args.batch_size)

        scenario_path = Path(args.scenario)
        if not scenario_path.exists():
            raise CLIError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}

        authority = InMemoryAuthority.from_scenario(spec.name, scenario)
        recorder = build_ledger(config)
        options = {"sleep": lambda _: None} if args.skip_cooldown else {}
        engine = AutomationCycle(
            spec, authority, recorder, build_sealer(config),
            config=config, metrics=MetricsCollector(), **options,
        )

        passes = [engine.run_pass() for _ in range(args.passes)]
        emergencies = [engine.emergency_action(key) for key in args.emergency]
        entries = recorder.read_all() if isinstance(recorder, JsonlLedger) else recorder.entries()

        return {
            "protocol": spec.name,
            "passes": [
                {k: v for k, v in p.to_dict().items() if k != "outcomes"} for p in passes
            ],
            "emergencies": [
                {"entity_key": o.entity_key, "operation": o.operation, "succeeded": o.succeeded}
                for o in emergencies
            ],
            "ledger": [e.to_dict() for e in entries],
            "escalation": {key: rec.to_dict() for key, rec in engine.snapshot().items()},
            "stats": engine.stats(),
        }

    def _protocol(self, name: str) -> ProtocolSpec:
        try:
            return get_protocol(name)
        except KeyError:
            raise CLIError(f"Unknown protocol: {name}", exit_code=2) from None


def main() -> int:
    return SecopsCLI().run()


if __name__ == "__main__":
    sys.exit(main())
