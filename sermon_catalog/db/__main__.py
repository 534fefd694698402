#!/usr/bin/env python3
"""
Database maintenance commands.

Usage:
    python -m sermon_catalog.db init      # Create tables
    python -m sermon_catalog.db check     # Test the connection
"""

import argparse
import sys

from sermon_catalog.db import check_database_connection, init_database


def main():
    parser = argparse.ArgumentParser(description="Sermon catalog database maintenance")
    parser.add_argument("command", choices=["init", "check"], help="Operation to run")
    args = parser.parse_args()

    if args.command == "init":
        ok = init_database()
        print("Database initialized" if ok else "Database initialization failed")
    else:
        ok = check_database_connection()
        print("Database connection OK" if ok else "Database connection failed")
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
