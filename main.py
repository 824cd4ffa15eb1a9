#!/usr/bin/env python3
"""
TalentsPal -- authentication service for the TalentsPal recruiting platform.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080 --reload
  python main.py seed
  python main.py seed --file reference.json
  python main.py create-admin --email admin@example.com --name "Site Admin"

Environment variables are read through core.config (see .env.example):
  SECRET_KEY    Required unless DEBUG=true.
  DATABASE_URL  SQLAlchemy URL; defaults to ./talentspal.db.
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from core.config import get_settings

    port = args.port or get_settings().port
    uvicorn.run("asgi:app", host=args.host, port=port, reload=args.reload)
    return 0


def _seed(args: argparse.Namespace) -> int:
    from auth.seed import load_reference_file, seed_reference_data
    from auth.store import UserStore

    data = None
    if args.file:
        try:
            data = load_reference_file(args.file)
        except ValueError as e:
            print(f"  [!] {e}")
            return 1
    store = UserStore()
    try:
        inserted = seed_reference_data(store, data)
    finally:
        store.close()
    for kind, count in inserted.items():
        print(f"  {kind}: {count} added")
    return 0


def _create_admin(args: argparse.Namespace) -> int:
    from auth.models import AdminProfile, User
    from auth.store import UserStore
    from auth.tokens import hash_password
    from core.validation import check_password_complexity

    password = args.password or getpass.getpass("Admin password: ")
    message = check_password_complexity(password)
    if message:
        print(f"  [!] {message}")
        return 1

    store = UserStore()
    try:
        user = User(
            email=args.email.strip().lower(),
            full_name=args.name,
            profile=AdminProfile(),
            password_hash=hash_password(password),
            is_email_verified=True,
        )
        user.id = store.create_user(user)
    except IntegrityError:
        print(f"  [!] An account with email {args.email} already exists.")
        return 1
    finally:
        store.close()
    print(f"  Admin {user.email} created (id {user.id}).")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="talentspal",
        description="TalentsPal authentication service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py seed
  python main.py seed --file reference.json
  python main.py create-admin --email admin@example.com --name "Site Admin"
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: PORT setting)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    serve.set_defaults(func=_serve)

    seed = sub.add_parser("seed", help="Load cities, universities, majors and industries")
    seed.add_argument(
        "--file",
        metavar="PATH",
        help='JSON file shaped like {"cities": [...], "universities": [...], ...}; built-in defaults if omitted',
    )
    seed.set_defaults(func=_seed)

    admin = sub.add_parser("create-admin", help="Create a verified, active admin account")
    admin.add_argument("--email", required=True, help="Admin email address")
    admin.add_argument("--name", required=True, help="Full name")
    admin.add_argument("--password", default=None, help="Password (prompted when omitted)")
    admin.set_defaults(func=_create_admin)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
