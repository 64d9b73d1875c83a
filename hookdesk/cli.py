"""CLI entry point for hookdesk.

Provides ``hookdesk hook``, ``serve``, ``cleanup`` and ``sessions``.

Import ordering matters: ``load_config()`` must run before importing
``hookdesk.main`` because that module calls ``configure_logging()`` at import
time, and settings are read from the environment it populates.
"""

from __future__ import annotations

import argparse
import json
import os
import sys


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point (``hookdesk`` command)."""
    parser = argparse.ArgumentParser(
        prog="hookdesk",
        description="hookdesk - session tracking and permission relay for coding CLI hooks",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("hook", help="Handle one hook event from stdin (configure as the CLI hook command)")

    serve_parser = sub.add_parser("serve", help="Start the daemon")
    serve_parser.add_argument("--host", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, help="Port to bind to")

    cleanup_parser = sub.add_parser("cleanup", help="Remove expired permission files")
    cleanup_parser.add_argument(
        "--timeout", type=float, help="Age in seconds after which files expire"
    )

    sub.add_parser("sessions", help="Print tracked sessions as JSON")

    args = parser.parse_args(argv)

    if args.command == "hook":
        _run_hook()
    elif args.command == "serve":
        _run_serve(args)
    elif args.command == "cleanup":
        _run_cleanup(args)
    elif args.command == "sessions":
        _run_sessions()
    else:
        parser.print_help()
        sys.exit(1)


def _bootstrap() -> None:
    from hookdesk.config import load_config
    from hookdesk.log_config import configure_logging

    load_config()
    configure_logging()


def _run_hook() -> None:
    """Handle ``hookdesk hook``. Always exits 0 so the CLI never blocks on us."""
    _bootstrap()

    from hookdesk.hooks import HookEventProcessor

    HookEventProcessor().run(sys.stdin, sys.stdout)


def _run_serve(args: argparse.Namespace) -> None:
    """Handle ``hookdesk serve``."""
    # Apply CLI flag overrides BEFORE loading config
    if args.host:
        os.environ["HOOKDESK_HOST"] = args.host
    if args.port:
        os.environ["HOOKDESK_PORT"] = str(args.port)

    from hookdesk.config import load_config

    load_config()

    from hookdesk.main import run

    run()


def _run_cleanup(args: argparse.Namespace) -> None:
    _bootstrap()

    from hookdesk.gateway import gateway

    removed = gateway.cleanup_expired(args.timeout)
    print(f"Removed {removed} expired permission file(s)")


def _run_sessions() -> None:
    _bootstrap()

    from hookdesk.registry import registry

    records = [record.model_dump(mode="json") for record in registry.load()]
    print(json.dumps(records, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
