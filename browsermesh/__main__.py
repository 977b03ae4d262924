#!/usr/bin/env python3
"""
Broker configuration entry point.

Resolves configuration from defaults, environment and CLI flags,
configures logging, and prints the resolved configuration (secrets
masked) as JSON.

Usage:
    python -m browsermesh --proxies --context ctx_123 --port 8931

    # Environment works too
    BROWSERMESH_LOG_LEVEL=DEBUG python -m browsermesh
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional, Sequence

from browsermesh import __version__
from browsermesh.core.config import resolve_config
from browsermesh.observability.logging import LogLevel, setup_logging

logger = logging.getLogger("browsermesh")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="browsermesh",
        description="Session broker for remote browser automation",
    )
    # Every flag defaults to None so only flags actually given override env
    parser.add_argument("--proxies", action="store_const", const=True, default=None,
                        help="Route remote sessions through provider proxies")
    parser.add_argument("--context", metavar="ID", default=None,
                        help="Provider context id to attach sessions to")
    parser.add_argument("--host", default=None, help="Host to bind the tool transport to")
    parser.add_argument("--port", type=int, default=None, help="Port for the tool transport")
    parser.add_argument("--log-level", dest="log_level", default=None,
                        choices=[level.name for level in LogLevel])
    parser.add_argument("--log-json", dest="log_json", action="store_const", const=True,
                        default=None, help="Emit JSON log lines (default)")
    parser.add_argument("--no-log-json", dest="log_json", action="store_const", const=False,
                        help="Emit human-readable log lines")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    result = resolve_config(vars(args))
    if result.is_err():
        print(f"Configuration error: {result.error}", file=sys.stderr)
        return 1

    config = result.unwrap()
    setup_logging(
        LogLevel.parse(config.observability.log_level),
        json_output=config.observability.log_json,
    )
    logger.info("Configuration resolved", extra={"version": __version__})
    print(json.dumps(config.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
