"""Billing database management CLI.

Creates and drops the relational bill store schema (bills, line_items).

Usage:
    python src/manage.py setup-db                                  # Create tables
    python src/manage.py drop-db                                   # Drop tables
    python src/manage.py setup-db --database-uri postgresql://...  # Explicit target
"""

import argparse
import os
import sys

DEFAULT_DATABASE_URI = "sqlite:///billing.db"


def _store(database_uri):
    from billing.store.sql_adapter import SqlBillStore

    return SqlBillStore(database_uri)


def setup_database(database_uri):
    """Create the bill store tables."""
    print(f"Creating bill store schema at {database_uri}...")
    _store(database_uri).create_all()
    print("Done.")


def drop_database(database_uri):
    """Drop the bill store tables."""
    print(f"Dropping bill store schema at {database_uri}...")
    _store(database_uri).drop_all()
    print("Done.")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Billing database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("setup-db", "Create all database tables"), ("drop-db", "Drop all database tables")):
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument(
            "--database-uri",
            default=os.environ.get("BILL_STORE_DATABASE_URI", DEFAULT_DATABASE_URI),
            help="SQLAlchemy database URI (default: $BILL_STORE_DATABASE_URI or sqlite:///billing.db)",
        )

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_database(args.database_uri)
    elif args.command == "drop-db":
        drop_database(args.database_uri)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
