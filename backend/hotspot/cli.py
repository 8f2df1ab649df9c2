from __future__ import annotations

import argparse
import json
import sys
from functools import partial
from typing import Any, Sequence

import anyio

from .db.dynamodb.errors import DdbError
from .observability.logging import configure_logging, get_logger
from .repositories import access_points_repo, locations_repo, profiles_repo, session_logs_repo
from .settings import settings

log = get_logger("hotspot.cli")

_LISTERS = {
    "locations": locations_repo.list_locations,
    "aps": access_points_repo.list_access_points,
    "profiles": profiles_repo.list_profiles,
    "session-logs": session_logs_repo.list_session_logs,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hotspot", description="Query the hotspot DynamoDB tables")
    sub = parser.add_subparsers(dest="command", required=True)

    get = sub.add_parser("get", help="Fetch a single item by key")
    get.add_argument("entity", choices=["location", "ap", "profile", "session-log"])
    get.add_argument("hash", help="Hash key value (ID, or Mac for access points)")
    get.add_argument("range", nargs="?", default=None, help="Range key value (Provider, profiles only)")

    lst = sub.add_parser("list", help="Scan one page of a table")
    lst.add_argument("entity", choices=sorted(_LISTERS))
    lst.add_argument("--limit", type=int, default=None)
    lst.add_argument("--cursor", default=None, help="LastEvaluatedKey token from a previous page")

    btw = sub.add_parser("between", help="Session logs in a time range across years")
    btw.add_argument("--years", type=int, nargs="+", required=True)
    btw.add_argument("--start", type=float, default=None, help="Epoch millis (default: now - 7 days)")
    btw.add_argument("--end", type=float, default=None, help="Epoch millis (default: now)")
    btw.add_argument("--filter-name", default=None)
    btw.add_argument("--filter-value", default=None)
    btw.add_argument("--cursors", nargs="+", default=None, help="One token per year from a previous page")
    btw.add_argument("--limit", type=int, default=None)
    return parser


async def run_command(args: argparse.Namespace) -> Any:
    if args.command == "get":
        if args.entity == "location":
            return await locations_repo.get_location(args.hash)
        if args.entity == "ap":
            return await access_points_repo.get_access_point(args.hash)
        if args.entity == "profile":
            return await profiles_repo.get_profile(args.hash, args.range)
        return await session_logs_repo.get_session_log(args.hash)

    if args.command == "list":
        return await _LISTERS[args.entity](limit=args.limit, cursor=args.cursor)

    return await session_logs_repo.session_logs_between(
        years=args.years,
        start=args.start,
        end=args.end,
        name=args.filter_name,
        value=args.filter_value,
        cursors=args.cursors,
        limit=args.limit,
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    # stdout carries the command output.
    configure_logging(level=settings.log_level, stream=sys.stderr)
    log.info("cli_start", command=args.command, settings=settings.to_log_safe_dict())

    try:
        result = anyio.run(partial(run_command, args))
    except DdbError as e:
        log.error(
            "cli_failed",
            command=args.command,
            error_type=type(e).__name__,
            error=str(e),
            table_name=e.table_name,
        )
        return 1

    json.dump(result, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    return 0
