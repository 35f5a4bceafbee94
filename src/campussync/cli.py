"""Command line entry point: `campussync watch` / `campussync stats`."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from typing import Any, Optional, Sequence, TextIO

from dotenv import dotenv_values

from campussync.auth import AuthInfo
from campussync.config import ClientConfig
from campussync.controller import CampusApiClient
from campussync.errors import CampusSyncError, FetchError
from campussync.local import ScopeFilter
from campussync.manager import CampusConsole
from campussync.models import TABLES

logger = logging.getLogger("campussync.cli")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="campussync",
        description="Live views of campus users, resources and bookings.",
    )
    parser.add_argument("--env-file", help="Read CAMPUSSYNC_* settings from this .env file")
    parser.add_argument("--token", help="Bearer access token (default: CAMPUSSYNC_ACCESS_TOKEN)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: CAMPUSSYNC_LOG_LEVEL or INFO)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    watch = sub.add_parser("watch", help="Print a table on every change until interrupted")
    watch.add_argument("table", choices=sorted(TABLES))
    watch.add_argument(
        "--filter",
        dest="scope",
        type=ScopeFilter.parse,
        help="Scope filter, e.g. status=eq.AVAILABLE",
    )

    sub.add_parser("stats", help="Print dashboard statistics")
    return parser


def format_items(kind: str, table: str, items: Sequence[dict[str, Any]]) -> str:
    """One JSON line describing a collection state."""
    return json.dumps(
        {"event": kind, "table": table, "count": len(items), "items": list(items)},
        default=str,
        sort_keys=True,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = ClientConfig.from_env(args.env_file)
    except ValueError as exc:
        print(f"campussync: invalid configuration: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(level=args.log_level or config.log_level, format=LOG_FORMAT)

    auth = _resolve_auth(args.token, args.env_file)
    try:
        return asyncio.run(_run(args, config, auth))
    except KeyboardInterrupt:
        return 130
    except CampusSyncError as exc:
        logger.error(f"{exc.__class__.__name__}: {exc}")
        return 1


def _resolve_auth(token: Optional[str], env_file: Optional[str]) -> Optional[AuthInfo]:
    if token:
        return AuthInfo(access_token=token)
    environ: dict[str, str] = {}
    if env_file is not None:
        environ.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    environ.update(os.environ)
    return AuthInfo.from_env(environ)


async def _run(args: argparse.Namespace, config: ClientConfig, auth: Optional[AuthInfo]) -> int:
    if args.command == "stats":
        async with CampusApiClient(config, auth) as api:
            stats = await api.get_dashboard_stats()
        print(json.dumps(asdict(stats), sort_keys=True))
        return 0

    async with CampusConsole(config, auth) as console:
        return await watch_table(console, args.table, args.scope, out=sys.stdout)


async def watch_table(
    console: CampusConsole,
    table: str,
    scope: Optional[ScopeFilter],
    *,
    out: TextIO,
) -> int:
    """Print the table on snapshot and every change; return on stream failure."""
    stopped = asyncio.Event()
    failures: list[CampusSyncError] = []

    def on_snapshot(items: Sequence[dict[str, Any]]) -> None:
        print(format_items("snapshot", table, items), file=out, flush=True)

    def on_change(items: Sequence[dict[str, Any]]) -> None:
        print(format_items("change", table, items), file=out, flush=True)

    def on_error(error: CampusSyncError) -> None:
        failures.append(error)
        if isinstance(error, FetchError):
            logger.error(f"Could not load {table}: {error}")
        else:
            logger.error(f"Live updates stopped for {table}: {error}")
        stopped.set()

    handle = console.watch(
        table,
        scope,
        on_change=on_change,
        on_snapshot=on_snapshot,
        on_error=on_error,
    )
    try:
        await stopped.wait()
    finally:
        await console.unwatch(handle)
    return 1 if failures else 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
