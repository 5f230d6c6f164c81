"""CLI entry point for outline-api.

Handles argument parsing, builds the client configuration and dispatches to
one management API operation. JSON results are pretty-printed to stdout.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import httpx

from outline_api.client import OutlineClient
from outline_api.config_loader import apply_overrides, load_client_config
from outline_api.errors import ConfigError, OutlineError
from outline_api.models import DEFAULT_TIMEOUT, AccessKeyParams, ClientConfig


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def non_negative_int(value: str) -> int:
    """Parse and validate a non-negative integer value.

    Raises:
        argparse.ArgumentTypeError: If value is not an integer >= 0.
    """
    try:
        result = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'.")
    if result < 0:
        raise argparse.ArgumentTypeError(f"Value must not be negative, got {result}.")
    return result


@dataclass
class CommandArgs:
    """Parsed arguments for one subcommand."""

    command: str
    config: Path | None = None
    api_url: str | None = None
    ca_cert: str | None = None
    insecure: bool = False
    timeout: float | None = None
    verbose: bool = False
    key_id: str | None = None
    name: str | None = None
    limit_bytes: int | None = None
    params: AccessKeyParams = field(default_factory=AccessKeyParams)


def _add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML config file with api_url, ca_cert, timeout",
    )
    parser.add_argument(
        "--api-url",
        help="Management API URL (overrides the config file)",
    )
    parser.add_argument(
        "--ca-cert",
        help="PEM file trusted for the server certificate",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Do not verify the server certificate",
    )
    parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help=f"Per-call deadline in seconds (default: {DEFAULT_TIMEOUT})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log each exchange to stderr",
    )


def _add_key_fields(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", help="Key name")
    parser.add_argument("--password", help="Key secret")
    parser.add_argument("--method", help="Encryption method")
    parser.add_argument(
        "--data-limit-bytes",
        type=non_negative_int,
        help="Data limit in bytes",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="outline-api",
        description="Manage access keys on an Outline server through its management API.",
    )

    common = argparse.ArgumentParser(add_help=False)
    _add_connection_arguments(common)

    subparsers = parser.add_subparsers(dest="command", required=True, help="Operation")

    subparsers.add_parser("list-keys", parents=[common], help="List all access keys")

    get_parser = subparsers.add_parser("get-key", parents=[common], help="Show one access key")
    get_parser.add_argument("key_id", help="Access key id")

    create_parser = subparsers.add_parser(
        "create-key", parents=[common], help="Create an access key"
    )
    _add_key_fields(create_parser)

    update_parser = subparsers.add_parser(
        "update-key", parents=[common], help="Create or replace the access key with an id"
    )
    update_parser.add_argument("key_id", help="Access key id")
    _add_key_fields(update_parser)

    delete_parser = subparsers.add_parser(
        "delete-key", parents=[common], help="Delete an access key"
    )
    delete_parser.add_argument("key_id", help="Access key id")

    rename_parser = subparsers.add_parser(
        "rename-key", parents=[common], help="Rename an access key"
    )
    rename_parser.add_argument("key_id", help="Access key id")
    rename_parser.add_argument("name", help="New name")

    limit_parser = subparsers.add_parser(
        "set-data-limit", parents=[common], help="Set an access key's data limit"
    )
    limit_parser.add_argument("key_id", help="Access key id")
    limit_parser.add_argument("limit_bytes", type=non_negative_int, help="Limit in bytes")

    remove_limit_parser = subparsers.add_parser(
        "remove-data-limit", parents=[common], help="Remove an access key's data limit"
    )
    remove_limit_parser.add_argument("key_id", help="Access key id")

    subparsers.add_parser("server-info", parents=[common], help="Show server information")
    subparsers.add_parser(
        "transfer-metrics", parents=[common], help="Show bytes transferred per access key"
    )

    return parser


def parse_command_args(namespace: argparse.Namespace) -> CommandArgs:
    """Convert parsed namespace to CommandArgs dataclass."""
    params = AccessKeyParams(
        name=getattr(namespace, "name", None) if namespace.command != "rename-key" else None,
        password=getattr(namespace, "password", None),
        method=getattr(namespace, "method", None),
        data_limit_bytes=getattr(namespace, "data_limit_bytes", None),
    )
    return CommandArgs(
        command=namespace.command,
        config=namespace.config,
        api_url=namespace.api_url,
        ca_cert=namespace.ca_cert,
        insecure=namespace.insecure,
        timeout=namespace.timeout,
        verbose=namespace.verbose,
        key_id=getattr(namespace, "key_id", None),
        name=getattr(namespace, "name", None),
        limit_bytes=getattr(namespace, "limit_bytes", None),
        params=params,
    )


def parse_args(args: list[str] | None = None) -> CommandArgs:
    """Parse command-line arguments and return typed args dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)
    if namespace.config is None and namespace.api_url is None:
        parser.error("one of --config or --api-url is required")
    return parse_command_args(namespace)


def build_config(args: CommandArgs) -> ClientConfig:
    """Merge the config file (if any) with command-line overrides.

    Raises:
        ConfigError: If the result is not a valid configuration.
    """
    overrides = {
        "api_url": args.api_url,
        "ca_cert": args.ca_cert,
        "insecure": True if args.insecure else None,
        "timeout": args.timeout,
    }
    if args.config is not None:
        return apply_overrides(load_client_config(args.config), **overrides)

    try:
        return ClientConfig.model_validate(
            {key: value for key, value in overrides.items() if value is not None}
        )
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _print_json(text: str) -> None:
    print(json.dumps(json.loads(text), indent=2, ensure_ascii=False))


_COMMANDS: dict[str, Callable[[OutlineClient, CommandArgs], str | None]] = {
    "list-keys": lambda client, args: client.list_access_keys(),
    "get-key": lambda client, args: client.get_access_key(args.key_id),
    "create-key": lambda client, args: client.create_access_key(args.params),
    "update-key": lambda client, args: client.update_access_key(args.key_id, args.params),
    "delete-key": lambda client, args: client.delete_access_key(args.key_id),
    "rename-key": lambda client, args: client.rename_access_key(args.key_id, args.name),
    "set-data-limit": lambda client, args: client.set_access_key_data_limit(
        args.key_id, args.limit_bytes
    ),
    "remove-data-limit": lambda client, args: client.remove_access_key_data_limit(args.key_id),
    "server-info": lambda client, args: client.get_server_info(),
    "transfer-metrics": lambda client, args: client.get_transfer_metrics(),
}


def run_command(args: CommandArgs, transport: httpx.BaseTransport | None = None) -> int:
    """Run one operation and print its result.

    Returns:
        0 on success, 1 on any configuration or API error.
    """
    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    try:
        with OutlineClient.from_config(config, transport=transport) as client:
            result = _COMMANDS[args.command](client, args)
    except OutlineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if result is not None:
        _print_json(result)
    elif args.key_id is not None:
        print(f"{args.command}: ok (access key {args.key_id})")
    return 0


def main() -> int:
    """Main entry point."""
    try:
        parsed = parse_args()
        logging.basicConfig(
            level=logging.DEBUG if parsed.verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
        )
        return run_command(parsed)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
