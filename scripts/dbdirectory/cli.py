"""Operator CLI: check connectivity and exercise the configured templates."""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys

from scripts.dbdirectory.config import DirectoryConfig, load_config
from scripts.dbdirectory.db import Database
from scripts.dbdirectory.logging_config import configure_logging
from scripts.dbdirectory.paging import Pageable
from scripts.dbdirectory.repository import IdentityRepository

logger = logging.getLogger("dbdirectory.cli")


def _open(config: DirectoryConfig) -> tuple[Database, IdentityRepository]:
    db = Database(config.connection)
    return db, IdentityRepository(db, config.templates)


def _print_rows(rows: list[dict]) -> None:
    if not rows:
        print("No users found.")
        return
    fmt = "{:<36}  {:<24}  {:<32}  {:<16}  {}"
    print(fmt.format("ID", "USERNAME", "EMAIL", "FIRST NAME", "LAST NAME"))
    print("-" * 130)
    for r in rows:
        print(fmt.format(
            str(r.get("id"))[:36],
            (r.get("username") or "")[:24],
            (r.get("email") or "")[:32],
            (r.get("firstName") or "")[:16],
            r.get("lastName") or "",
        ))


def cmd_ping(args: argparse.Namespace) -> None:
    """Run the dialect's probe statement through the pool."""
    config = load_config()
    db, _ = _open(config)
    try:
        ok = db.ping()
        print(f"{config.connection.dialect.desc}: {'OK' if ok else 'UNREACHABLE'}")
        if not ok:
            sys.exit(1)
    finally:
        db.close()


def cmd_count(args: argparse.Namespace) -> None:
    config = load_config()
    db, repo = _open(config)
    try:
        print(repo.count(args.search))
    finally:
        db.close()


def cmd_lookup(args: argparse.Namespace) -> None:
    config = load_config()
    db, repo = _open(config)
    try:
        if args.id:
            row = repo.find_by_id(args.id)
        else:
            row = repo.find_by_login_name(args.login, args.email_login)
        if row is None:
            print("User not found.")
            sys.exit(1)
        print(json.dumps(row, indent=2, sort_keys=True))
    finally:
        db.close()


def cmd_search(args: argparse.Namespace) -> None:
    config = load_config()
    db, repo = _open(config)
    try:
        pageable = Pageable(args.first, args.max) if args.max else None
        _print_rows(repo.search(args.term, pageable))
    finally:
        db.close()


def cmd_verify(args: argparse.Namespace) -> None:
    """Check a password against the stored credential."""
    config = load_config()
    db, repo = _open(config)
    try:
        password = getpass.getpass(f"Password for {args.username}: ")
        valid = repo.validate_credential(args.username, password, args.email_login)
        print("VALID" if valid else "INVALID")
        if not valid:
            sys.exit(1)
    finally:
        db.close()


def cmd_set_password(args: argparse.Namespace) -> None:
    """Store a freshly salted credential for a user."""
    config = load_config()
    db, repo = _open(config)
    try:
        password = getpass.getpass(f"New password for {args.username}: ")
        if password != getpass.getpass("Repeat: "):
            print("Passwords do not match.")
            sys.exit(1)
        if not repo.rotate_credential(args.username, password):
            print("Credential update failed, see log.")
            sys.exit(1)
        print("Credential updated.")
    finally:
        db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbdirectory",
        description="SQL identity directory operator tool",
    )
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ping_parser = subparsers.add_parser("ping", help="Check database connectivity")
    ping_parser.set_defaults(func=cmd_ping)

    count_parser = subparsers.add_parser("count", help="Count users")
    count_parser.add_argument("--search", "-s", default=None, help="Count only matches of this term")
    count_parser.set_defaults(func=cmd_count)

    lookup_parser = subparsers.add_parser("lookup", help="Look up one user")
    target = lookup_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--id", help="External user id")
    target.add_argument("--login", help="Username (or email with --email-login)")
    lookup_parser.add_argument("--email-login", action="store_true", help="Also match email addresses")
    lookup_parser.set_defaults(func=cmd_lookup)

    search_parser = subparsers.add_parser("search", help="List or search users")
    search_parser.add_argument("--term", "-t", default=None, help="Search term (default: list all)")
    search_parser.add_argument("--first", type=int, default=0, help="Offset of the first row")
    search_parser.add_argument("--max", type=int, default=None, help="Page size (default: all rows)")
    search_parser.set_defaults(func=cmd_search)

    verify_parser = subparsers.add_parser("verify", help="Validate a user's password")
    verify_parser.add_argument("--username", "-u", required=True)
    verify_parser.add_argument("--email-login", action="store_true", help="Also match email addresses")
    verify_parser.set_defaults(func=cmd_verify)

    passwd_parser = subparsers.add_parser("set-password", help="Rotate a user's password")
    passwd_parser.add_argument("--username", "-u", required=True)
    passwd_parser.set_defaults(func=cmd_set_password)

    return parser


def main() -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args()
    configure_logging(args.log_level)
    args.func(args)
