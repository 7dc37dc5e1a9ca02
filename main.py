#!/usr/bin/env python3
"""
passvault - password-manager API.

Serves the HTTP API and applies database migrations.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep passvault imports lazy (inside main) so `--help` works without the
# server dependencies installed.
#


def migrate() -> int:
    """Apply pending migrations to the configured Postgres database."""
    from passvault.storage.config import build_postgres_dsn, load_db_config
    from passvault.storage.migrate import MigrationError, apply_migrations

    dsn = build_postgres_dsn(load_db_config())
    if not dsn:
        print("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars).", file=sys.stderr)
        return 2
    try:
        n, versions = apply_migrations(dsn=dsn)
    except MigrationError as e:
        print(f"Migration failed: {e}", file=sys.stderr)
        return 1
    if n:
        print(f"Applied {n} migration(s): {', '.join(versions)}")
    else:
        print("No pending migrations.")
    return 0


def main() -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="passvault password-manager API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Apply database migrations
  python main.py --migrate

  # Run the API server
  python main.py --serve --port 8080
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API server")
    parser.add_argument("--migrate", action="store_true", help="Apply pending database migrations and exit")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")

    args = parser.parse_args()

    if args.migrate:
        return migrate()

    if args.serve:
        from passvault.api.server import run

        run(host=args.host, port=args.port)
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
