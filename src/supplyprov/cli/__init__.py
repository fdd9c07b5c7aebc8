"""
SupplyProv CLI entry point.
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from supplyprov.core.runtime import SupplyProvRuntime
from supplyprov.core.settings import get_settings
from supplyprov.protocol.errors import SupplyProvError
from supplyprov.utils.logging import configure_logging

from . import commands


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="supplyprov",
        description="Confidential supply-chain records with proof-checked verification",
    )
    parser.add_argument(
        "--output", "-o", choices=["table", "json", "jsonl"], default="table",
        help="Output format (default: table)",
    )
    parser.add_argument(
        "--wal-dir", default=None,
        help="Use the durable WAL store in this directory (overrides SUPPLYPROV_STORE_*)",
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: settings)")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create", help="Create an encrypted record")
    p.add_argument("--owner", required=True)
    p.add_argument("--name", required=True)
    p.add_argument("--value", type=int, required=True, help="Secret integer to encrypt")
    p.add_argument("--id", default=None, help="Caller-supplied record id")
    p.add_argument("--description", default=None)
    p.add_argument("--lifecycle", default=None, help="manufactured | in_transit | delivered")
    p.add_argument("--location", default=None)
    p.add_argument("--public-value", dest="public_value", type=int, default=None)
    p.set_defaults(func=commands.cmd_create)

    p = sub.add_parser("get", help="Show one record")
    p.add_argument("record_id")
    p.set_defaults(func=commands.cmd_get)

    p = sub.add_parser("list", help="List records")
    p.add_argument("--search", default=None)
    group = p.add_mutually_exclusive_group()
    group.add_argument("--verified", dest="verified", action="store_true", default=None)
    group.add_argument("--unverified", dest="verified", action="store_false")
    p.add_argument("--lifecycle", default=None)
    p.add_argument("--owner", default=None)
    p.set_defaults(func=commands.cmd_list, verified=None)

    p = sub.add_parser("verify", help="Decrypt and verify a record")
    p.add_argument("record_id")
    p.add_argument("--timeout", type=float, default=None)
    p.set_defaults(func=commands.cmd_verify)

    p = sub.add_parser("update", help="Edit public attributes (owner only)")
    p.add_argument("record_id")
    p.add_argument("--actor", required=True)
    p.add_argument("--name", default=None)
    p.add_argument("--description", default=None)
    p.add_argument("--lifecycle", default=None)
    p.add_argument("--location", default=None)
    p.add_argument("--public-value", dest="public_value", type=int, default=None)
    p.set_defaults(func=commands.cmd_update)

    p = sub.add_parser("stats", help="Show record counters")
    p.set_defaults(func=commands.cmd_stats)

    p = sub.add_parser("status", help="Show store integrity and availability")
    p.set_defaults(func=commands.cmd_status)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)
    p.set_defaults(func=commands.cmd_serve)

    return parser


def build_runtime(args) -> SupplyProvRuntime:
    settings = get_settings()
    if args.wal_dir:
        store = settings.store.model_copy(update={"backend": "wal", "wal_dir": args.wal_dir})
        settings = settings.model_copy(update={"store": store})
    return SupplyProvRuntime(settings=settings)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level or get_settings().runtime.log_level)

    try:
        with build_runtime(args) as runtime:
            args.func(runtime, args)
    except SupplyProvError as e:
        commands.report_error(e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
