"""Member Node command-line interface.

Usage:
    python -m membernode serve [--config PATH] [--host HOST] [--port PORT]
    python -m membernode check-config [--config PATH]
    python -m membernode capacity [--config PATH]
    python -m membernode generate-id --scheme {DOI,UUID} [--config PATH]

Every command except ``serve`` prints a JSON document to stdout.

Exit codes:
    0: Success
    1: Internal error
    2: Configuration or protocol error
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from membernode.adapter import build_adapter
from membernode.config import ConfigError, MemberNodeConfig, load_config
from membernode.errors import MemberNodeError
from membernode.models import Session

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def _output_json(data: dict[str, Any]) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _error_result(code: str, message: str) -> dict[str, Any]:
    return {"code": code, "message": message, "ok": False}


def _load(args: argparse.Namespace) -> MemberNodeConfig:
    return load_config(args.config)


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from membernode.api.main import create_app

    app = create_app(build_adapter(_load(args)))
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)
    return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    config = _load(args)
    _output_json(
        {
            "backend": config.data_repo_configuration.backend,
            "node_id": config.node_id,
            "ok": True,
            "scope_name": config.scope_name,
            "storage_capacity_bytes": config.storage_capacity_bytes,
        }
    )
    return 0


def cmd_capacity(args: argparse.Namespace) -> int:
    adapter = build_adapter(_load(args))
    try:
        _output_json({"capacity_remaining": adapter.capacity_remaining(), "ok": True})
    finally:
        adapter.close()
    return 0


def cmd_generate_id(args: argparse.Namespace) -> int:
    adapter = build_adapter(_load(args))
    try:
        identifier = adapter.generate_identifier(Session(subject=args.subject), args.scheme)
    finally:
        adapter.close()
    _output_json({"identifier": identifier, "ok": True, "scheme": args.scheme.upper()})
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="membernode",
        description="DataONE Member Node adapter CLI",
    )
    parser.add_argument(
        "--config",
        default=None,
        metavar="PATH",
        help="YAML configuration file (defaults to MEMBERNODE_CONFIG_PATH)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Serve the Member Node HTTP API")
    serve_parser.add_argument("--host", default=DEFAULT_HOST, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Bind port")
    serve_parser.add_argument(
        "--log-level",
        default="info",
        choices=["critical", "error", "warning", "info", "debug"],
        help="Log level",
    )

    subparsers.add_parser("check-config", help="Validate the configuration and print it")
    subparsers.add_parser("capacity", help="Print the remaining storage capacity in bytes")

    generate_parser = subparsers.add_parser("generate-id", help="Mint a new identifier")
    generate_parser.add_argument(
        "--scheme",
        required=True,
        help="Identifier scheme (DOI or UUID)",
    )
    generate_parser.add_argument(
        "--subject",
        default="public",
        help="Subject to mint the identifier for",
    )

    return parser


COMMANDS = {
    "serve": cmd_serve,
    "check-config": cmd_check_config,
    "capacity": cmd_capacity,
    "generate-id": cmd_generate_id,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return COMMANDS[args.command](args)
    except ConfigError as e:
        _output_json(_error_result("CONFIG_ERROR", str(e)))
        return 2
    except MemberNodeError as e:
        _output_json(_error_result(e.name, e.message))
        return 2
    except Exception as e:
        logger.exception("Unexpected error in command %s", args.command)
        _output_json(_error_result("INTERNAL_ERROR", f"{type(e).__name__}: {e}"))
        return 1


if __name__ == "__main__":
    sys.exit(main())
