#!/usr/bin/env python3
"""
Command-line interface for rbridge.

Runs records through an interpreter function, checks an interpreter
setup and writes configuration files.

Copyright 2025 Firefly Software Solutions Inc
Licensed under the Apache License, Version 2.0
"""

import argparse
import json
import sys
import time
from typing import Any, Dict, Iterable, Iterator, List, Optional

from rbridge import __version__
from rbridge.config import BridgeConfig, ConfigurationManager, LoggingConfig
from rbridge.core import InvocationOutcome
from rbridge.exceptions import FatalBridgeError, RBridgeError
from rbridge.integration import RFunctionBridge
from rbridge.logging import RBridgeLoggingManager
from rbridge.utils import elapsed_ms, format_duration_ms, generate_call_id


def setup_logging(level: str = "INFO", format_type: str = "json") -> RBridgeLoggingManager:
    """Configure logging for the CLI; log lines go to stderr, results to stdout."""
    logging_config = LoggingConfig(level=level.upper(), format=format_type)
    manager = RBridgeLoggingManager(logging_config, stream=sys.stderr)
    manager.setup_logging()
    return manager


def build_config(args: argparse.Namespace) -> BridgeConfig:
    """Configuration from the --config file, the environment and command-line overrides."""
    overrides: Dict[str, Any] = {}
    if args.function:
        overrides["function_name"] = args.function
    if args.library:
        overrides["libraries"] = args.library
    if args.init_script:
        overrides["init_script"] = args.init_script
    if args.max_wait_ms is not None:
        overrides["max_wait_ms"] = args.max_wait_ms

    interpreter: Dict[str, Any] = {}
    if args.executable:
        interpreter["executable"] = args.executable
    if args.interpreter_arg:
        interpreter["startup_args"] = args.interpreter_arg
    if interpreter:
        overrides["interpreter"] = interpreter

    return ConfigurationManager.load_config(config_file=args.config, **overrides)


def read_records(values: List[str], stream) -> Iterator[str]:
    """Record arguments, or the non-blank lines of ``stream`` when there are none."""
    if values:
        yield from values
        return
    for line in stream:
        line = line.strip()
        if line:
            yield line


def run_records(bridge: RFunctionBridge, records: Iterable[str], out) -> int:
    """
    Invoke the bridge once per JSON record and print one outcome line each.

    Returns:
        0 if every call succeeded, 1 otherwise
    """
    exit_code = 0

    for text in records:
        call_id = generate_call_id()
        started = time.monotonic()
        values: List[Any] = []
        try:
            values = bridge.type_converter.coerce_record(json.loads(text))
            result = bridge.invoke(values)
            outcome = InvocationOutcome(
                call_id=call_id, input=values, result=result, duration_ms=elapsed_ms(started)
            )
        except (RBridgeError, ValueError) as e:
            outcome = InvocationOutcome.from_error(call_id, values, e, elapsed_ms(started))
            exit_code = 1

        print(outcome.to_json(), file=out, flush=True)

        if outcome.fatal:
            break

    return exit_code


def invoke_command(args: argparse.Namespace) -> int:
    try:
        config = build_config(args)
    except (ValueError, FileNotFoundError) as e:
        print(f"❌ Invalid configuration: {e}", file=sys.stderr)
        return 2

    bridge = RFunctionBridge(config)
    try:
        bridge.prepare()
    except FatalBridgeError as e:
        print(f"❌ Could not start interpreter: {e}", file=sys.stderr)
        return 1

    try:
        return run_records(bridge, read_records(args.values, sys.stdin), sys.stdout)
    finally:
        bridge.cleanup()


def check_command(args: argparse.Namespace) -> int:
    """Start the interpreter with the configured libraries and init code, then stop it."""
    try:
        config = build_config(args)
    except (ValueError, FileNotFoundError) as e:
        print(f"❌ Invalid configuration: {e}", file=sys.stderr)
        return 2

    for warning in config.validate_configuration():
        print(f"⚠️  {warning}")

    print(f"Starting interpreter: {' '.join(config.interpreter.get_command())}")
    started = time.monotonic()
    bridge = RFunctionBridge(config)
    try:
        bridge.prepare()
    except FatalBridgeError as e:
        print(f"❌ Interpreter check failed: {e}")
        return 1

    try:
        print(f"✓ Interpreter ready in {format_duration_ms(elapsed_ms(started))} (pid {bridge.process_id})")
        print(f"✓ Libraries loaded: {', '.join(config.get_libraries())}")
        print(f"✓ Function: {config.function_name}")
    finally:
        bridge.cleanup()

    print("\n✅ Interpreter check passed!")
    return 0


def create_config_command(args: argparse.Namespace) -> int:
    ConfigurationManager.create_default_config_file(args.output, function_name=args.function)
    print(f"Sample configuration written to {args.output}")
    return 0


def _add_bridge_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Configuration file (json, yaml or toml)")
    parser.add_argument("--function", help="Name of the interpreter function to invoke")
    parser.add_argument(
        "--library", action="append", help="Library to load before any call (repeatable)"
    )
    parser.add_argument("--init-script", help="Script sent once after the libraries are loaded")
    parser.add_argument("--executable", help="Interpreter executable")
    parser.add_argument(
        "--interpreter-arg",
        action="append",
        help="Interpreter startup argument, replaces the defaults (repeatable)",
    )
    parser.add_argument("--max-wait-ms", type=int, help="Maximum wait for one response")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rbridge",
        description="rbridge - Invoke an R function once per record",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rbridge invoke --function recommend --library arules --init-script recommend.R '["liquor","red/blush wine"]'
  rbridge invoke --config bridge.yaml < records.jsonl
  rbridge check --config bridge.yaml             # Start the interpreter and stop it again
  rbridge create-config bridge.yaml             # Create sample config
        """,
    )

    parser.add_argument("--version", action="version", version=f"rbridge {__version__}")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set logging level",
    )
    parser.add_argument(
        "--log-format", choices=["json", "text"], default="json", help="Set log output format"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    invoke_parser = subparsers.add_parser("invoke", help="Invoke the function on JSON records")
    _add_bridge_arguments(invoke_parser)
    invoke_parser.add_argument(
        "values", nargs="*", help="JSON array per record; read from stdin when omitted"
    )

    check_parser = subparsers.add_parser("check", help="Check that the interpreter starts")
    _add_bridge_arguments(check_parser)

    config_parser = subparsers.add_parser("create-config", help="Create sample configuration file")
    config_parser.add_argument("output", help="Output configuration file path")
    config_parser.add_argument("--function", default="predict", help="Function name to configure")

    subparsers.add_parser("version", help="Show version")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "version":
        print(f"rbridge {__version__}")
        return 0

    if args.command == "create-config":
        return create_config_command(args)

    manager = setup_logging(level=args.log_level, format_type=args.log_format)
    try:
        if args.command == "invoke":
            return invoke_command(args)
        return check_command(args)
    finally:
        manager.shutdown()


if __name__ == "__main__":
    sys.exit(main())
