#!/usr/bin/env python3
"""
Initialize the database schema from scratch.

This script will:
1. Drop the existing database file (if --reset flag is provided)
2. Create all tables from the current SQLAlchemy models

Usage:
    python scripts/init_db.py          # Create tables (safe, doesn't drop)
    python scripts/init_db.py --reset  # Drop and recreate (DANGEROUS!)
"""

import argparse
import os
from filevault.config import Config
from filevault.models.base import init_db


def main():
    parser = argparse.ArgumentParser(description='Initialize database schema')
    parser.add_argument('--reset', action='store_true',
                        help='Drop existing database and recreate (DANGEROUS!)')
    args = parser.parse_args()

    if not Config.DATABASE_URL.startswith('sqlite:///'):
        if args.reset:
            print("--reset only supports SQLite databases; drop the tables by hand.")
            return
        print(f"Creating database tables at: {Config.DATABASE_URL}")
        init_db(Config.DATABASE_URL)
        print("Database initialized.")
        return

    db_path = Config.DATABASE_URL.replace('sqlite:///', '')

    if args.reset and os.path.exists(db_path):
        print(f"Dropping existing database: {db_path}")
        response = input("Are you sure? Every file record, blob record and share will be lost. (yes/no): ")
        if response.lower() != 'yes':
            print("Aborted.")
            return
        os.remove(db_path)
        print(f"Deleted {db_path} (stored blobs are left in place)")

    print(f"Creating database tables at: {db_path}")
    init_db(Config.DATABASE_URL, echo=True)
    print("Database initialized.")


if __name__ == '__main__':
    main()
