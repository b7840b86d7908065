"""Operator CLI.

Examples:
    python scripts/admin.py migrate
    python scripts/admin.py reset-player p_123 --yes
    python scripts/admin.py validate-catalog --root .
    python scripts/admin.py --redis-url redis://localhost:6379/1 resolve-once
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from labforge.admin import reset_player, validate_catalog
from labforge.catalog.registry import CatalogIntegrityError, CatalogLoadError
from labforge.infra.redis_client import create_redis
from labforge.migrations import migrate_all_ledgers
from labforge.settings import get_log_level


def _cmd_migrate(args: argparse.Namespace) -> int:
    r = create_redis(args.redis_url)
    try:
        print(json.dumps(migrate_all_ledgers(r=r)))
    finally:
        r.close()
    return 0


def _cmd_reset_player(args: argparse.Namespace) -> int:
    if not args.yes:
        print(f"Refusing to reset {args.player_id} without --yes", file=sys.stderr)
        return 2
    r = create_redis(args.redis_url)
    try:
        print(json.dumps(reset_player(r=r, player_id=args.player_id)))
    finally:
        r.close()
    return 0


def _cmd_validate_catalog(args: argparse.Namespace) -> int:
    try:
        summary = validate_catalog(root=Path(args.root).resolve())
    except (CatalogLoadError, CatalogIntegrityError) as e:
        print(f"Catalog invalid: {e}", file=sys.stderr)
        return 1
    print(json.dumps(summary, indent=2))
    return 0


def _cmd_resolve_once(args: argparse.Namespace) -> int:
    from labforge.catalog.startup import init_catalog_for_app
    from labforge.resolver import run_resolver_once

    init_catalog_for_app()
    r = create_redis(args.redis_url)
    try:
        results = run_resolver_once(r=r)
    finally:
        r.close()
    print(json.dumps({pid: len(emitted) for pid, emitted in results.items()}))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="labforge-admin")
    parser.add_argument("--redis-url", default=None, help="Overrides REDIS_URL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("migrate", help="Rewrite every stored ledger at the current schema version").set_defaults(
        func=_cmd_migrate
    )

    reset = sub.add_parser("reset-player", help="Delete all state for one player")
    reset.add_argument("player_id")
    reset.add_argument("--yes", action="store_true", help="Confirm the reset")
    reset.set_defaults(func=_cmd_reset_player)

    validate = sub.add_parser("validate-catalog", help="Strictly load and check <root>/catalog/*.json")
    validate.add_argument("--root", default=".")
    validate.set_defaults(func=_cmd_validate_catalog)

    sub.add_parser("resolve-once", help="Run one resolver pass over the due index").set_defaults(
        func=_cmd_resolve_once
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=get_log_level())
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
