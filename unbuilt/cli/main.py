#!/usr/bin/env python3
"""Maintenance CLI for the Unbuilt backend.

Usage:
    unbuilt init-db                          Initialize the database
    unbuilt seed-templates                   Insert the bundled plan templates
    unbuilt seed-resources                   Insert the starter resource library
    unbuilt create-user <email> <password>   Create an account
    unbuilt set-plan <email> <plan>          Change a user's subscription tier
    unbuilt unlock-user <email>              Clear a login lockout
    unbuilt list-users                       List accounts
    unbuilt serve [--port N] [--reload]       Run the API server
"""

import argparse
import sys

from unbuilt.core.auth import register_user
from unbuilt.core.config import PLAN_LIMITS
from unbuilt.core.database import init_db, get_db
from unbuilt.core.models import User
from unbuilt.services import ResourceService, TemplateService


def _find_user(db, email: str) -> User:
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if not user:
        print(f"User not found: {email}")
        sys.exit(1)
    return user


def cmd_init_db(args):
    """Initialize the database."""
    print("Initializing database...")
    init_db()
    print("Database initialized successfully!")


def cmd_seed_templates(args):
    with get_db() as db:
        added = TemplateService(db).seed_default_templates()
    print(f"Templates added: {added}")


def cmd_seed_resources(args):
    with get_db() as db:
        added = ResourceService(db).seed_library()
    print(f"Resources added: {added}")


def cmd_create_user(args):
    """Create an account, optionally on a paid tier or as an admin."""
    with get_db() as db:
        user = register_user(db, args.email, args.password, args.name)
        user.plan = args.plan
        user.is_admin = args.admin
        db.flush()
        print(f"Created user {user.email} ({user.id}) on the {user.plan} plan")


def cmd_set_plan(args):
    with get_db() as db:
        user = _find_user(db, args.email)
        previous = user.plan
        user.plan = args.plan
        print(f"{user.email}: {previous} -> {user.plan}")


def cmd_unlock_user(args):
    with get_db() as db:
        user = _find_user(db, args.email)
        user.account_locked = False
        user.lockout_expires = None
        user.failed_login_attempts = 0
        print(f"Unlocked {user.email}")


def cmd_list_users(args):
    """List accounts, newest first."""
    with get_db() as db:
        users = db.query(User).order_by(User.created_at.desc()).limit(args.limit).all()

        if not users:
            print("No users found.")
            return

        print(f"\n{'User ID':<40} {'Email':<35} {'Plan':<12} {'Searches':<9} {'Locked':<6}")
        print(f"{'-'*40} {'-'*35} {'-'*12} {'-'*9} {'-'*6}")

        for user in users:
            email = user.email[:32] + "..." if len(user.email) > 35 else user.email
            locked = "yes" if user.account_locked else "no"
            print(f"{str(user.id):<40} {email:<35} {user.plan:<12} {user.search_count:<9} {locked:<6}")


def cmd_serve(args):
    import uvicorn

    print(f"Starting Unbuilt API on http://{args.host}:{args.port}")
    uvicorn.run("unbuilt.api.main:app", host=args.host, port=args.port, reload=args.reload)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Unbuilt maintenance CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init-db
    subparsers.add_parser("init-db", help="Initialize the database")

    # seeds
    subparsers.add_parser("seed-templates", help="Insert the bundled plan templates")
    subparsers.add_parser("seed-resources", help="Insert the starter resource library")

    # create-user
    create_parser = subparsers.add_parser("create-user", help="Create an account")
    create_parser.add_argument("email", help="Login email")
    create_parser.add_argument("password", help="Initial password")
    create_parser.add_argument("--name", help="Display name")
    create_parser.add_argument("--plan", choices=sorted(PLAN_LIMITS), default="free", help="Subscription tier")
    create_parser.add_argument("--admin", action="store_true", help="Grant admin access")

    # set-plan
    plan_parser = subparsers.add_parser("set-plan", help="Change a user's subscription tier")
    plan_parser.add_argument("email", help="Login email")
    plan_parser.add_argument("plan", choices=sorted(PLAN_LIMITS), help="New tier")

    # unlock-user
    unlock_parser = subparsers.add_parser("unlock-user", help="Clear a login lockout")
    unlock_parser.add_argument("email", help="Login email")

    # list-users
    list_parser = subparsers.add_parser("list-users", help="List accounts")
    list_parser.add_argument("--limit", type=int, default=20, help="Limit number of results")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument("--port", "-p", type=int, default=8000, help="Port (default: 8000)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Dispatch to command handler
    commands = {
        "init-db": cmd_init_db,
        "seed-templates": cmd_seed_templates,
        "seed-resources": cmd_seed_resources,
        "create-user": cmd_create_user,
        "set-plan": cmd_set_plan,
        "unlock-user": cmd_unlock_user,
        "list-users": cmd_list_users,
        "serve": cmd_serve,
    }

    handler = commands.get(args.command)
    if handler:
        handler(args)
    else:
        print(f"Unknown command: {args.command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
