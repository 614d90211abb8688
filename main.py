#!/usr/bin/env python3
"""
DoRegister -- self-service registration and login backend.

This is the operator CLI. The HTTP service itself runs with:
  uvicorn api.main:app

Usage:
  python main.py init-db
  python main.py count
  python main.py list
  python main.py list --page 2
  python main.py delete 4 7 12

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the account database (default: sqlite file
                 under accounts/).
  PAGE_SIZE      Records per page for `list` (default: 20).
  SECRET_KEY     Required unless DEBUG=true; the CLI loads the same settings
                 as the API.
"""

import argparse
import logging
import sys

from accounts.store import TABLE_NAME, AccountStore
from core.config import get_settings
from core.errors import StoreError

logger = logging.getLogger("doregister.cli")


def _cmd_init_db(store: AccountStore, args: argparse.Namespace) -> int:
    store.ensure_schema()
    print(f"  Table '{TABLE_NAME}' is ready.")
    return 0


def _cmd_count(store: AccountStore, args: argparse.Namespace) -> int:
    print(store.count())
    return 0


def _cmd_list(store: AccountStore, args: argparse.Namespace) -> int:
    """Print one page of the newest-first listing as a fixed-width table."""
    page = store.page(args.page, args.per_page or get_settings().page_size)
    if not page.records:
        print("  No registrations found.")
        return 0

    print(f"  {'ID':>6}  {'Full name':<28} {'Email':<36} {'Country':<16} Registered")
    print(f"  {'-' * 6}  {'-' * 28} {'-' * 36} {'-' * 16} {'-' * 19}")
    for record in page.records:
        registered = (record.created_at or "")[:19].replace("T", " ")
        print(f"  {record.id:>6}  {record.full_name[:28]:<28} {record.email[:36]:<36} {record.country[:16]:<16} {registered}")
    print(f"\n  Page {page.page} of {page.total_pages} ({page.total} total)")
    return 0


def _cmd_delete(store: AccountStore, args: argparse.Namespace) -> int:
    deleted = store.delete_by_ids(args.ids)
    logger.info("CLI deleted %d record(s)", deleted)
    print(f"  {deleted} record(s) deleted.")
    return 0


_COMMANDS = {
    "init-db": _cmd_init_db,
    "count": _cmd_count,
    "list": _cmd_list,
    "delete": _cmd_delete,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="doregister",
        description="Manage the DoRegister account database.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db
  python main.py list --page 2
  python main.py delete 4 7 12
  DATABASE_URL=sqlite:///other.db python main.py count
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="Override DATABASE_URL for this invocation",
    )
    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    sub.add_parser("init-db", help="Create the accounts table if it does not exist")
    sub.add_parser("count", help="Print the number of registered accounts")

    list_parser = sub.add_parser("list", help="List registrations, newest first")
    list_parser.add_argument("--page", type=int, default=1, metavar="N", help="Page number (default: 1)")
    list_parser.add_argument(
        "--per-page",
        type=int,
        default=None,
        metavar="N",
        help="Records per page (default: PAGE_SIZE)",
    )

    delete_parser = sub.add_parser("delete", help="Delete registrations by id")
    # Kept as strings: invalid ids are skipped by the store, not rejected by argparse.
    delete_parser.add_argument("ids", nargs="+", metavar="ID", help="One or more account ids")
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s %(message)s")
    args = build_parser().parse_args(argv)
    try:
        store = AccountStore(args.database_url or get_settings().database_url)
    except StoreError as e:
        print(f"  [!] {e.message}", file=sys.stderr)
        return 1
    try:
        return _COMMANDS[args.command](store, args)
    except StoreError as e:
        print(f"  [!] {e.message}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
