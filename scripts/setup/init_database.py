#!/usr/bin/env python3
"""
NOVA - Database Initialization Script

Creates the SQLite schema ahead of the first server start. The server also
creates missing tables on connect, so this is only needed to pre-provision
a database (or to reset one).

Usage:
    poetry run python scripts/setup/init_database.py [--reset]
"""

import sqlite3
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from nova.core.config import config
from nova.services.database import SCHEMA


def create_schema(conn: sqlite3.Connection):
    """Create database schema"""
    cursor = conn.cursor()
    for statement in SCHEMA:
        cursor.execute(statement)
    conn.commit()
    print("[OK] Database schema created successfully")


def enable_wal_mode(conn: sqlite3.Connection):
    """Enable WAL mode for better concurrency"""
    cursor = conn.cursor()

    cursor.execute("PRAGMA journal_mode=WAL")
    result = cursor.fetchone()
    print(f"[INFO] Journal mode: {result[0]}")

    cursor.execute("PRAGMA busy_timeout=5000")

    conn.commit()
    print("[OK] WAL mode enabled")


def verify_schema(conn: sqlite3.Connection):
    """Print tables and indexes"""
    cursor = conn.cursor()

    cursor.execute("""
        SELECT name FROM sqlite_master
        WHERE type='table' AND name NOT LIKE 'sqlite_%'
        ORDER BY name
    """)
    tables = cursor.fetchall()
    print(f"\n[INFO] Tables: {len(tables)}")
    for table in tables:
        cursor.execute(f"PRAGMA table_info({table[0]})")
        print(f"       - {table[0]} ({len(cursor.fetchall())} columns)")

    cursor.execute("""
        SELECT name, tbl_name FROM sqlite_master
        WHERE type='index' AND name NOT LIKE 'sqlite_%'
        ORDER BY name
    """)
    indexes = cursor.fetchall()
    print(f"\n[INFO] Indexes: {len(indexes)}")
    for index in indexes:
        print(f"       - {index[0]} on {index[1]}")


def main():
    """Main initialization function"""
    print("[CHECK] NOVA Database Initialization")

    db_path = config.DATABASE_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)

    if db_path.exists() and "--reset" in sys.argv:
        backup_path = db_path.with_suffix(db_path.suffix + ".backup")
        db_path.rename(backup_path)
        print(f"[INFO] Existing database backed up to: {backup_path}")

    print(f"\n[INFO] Database: {db_path}")
    conn = sqlite3.connect(str(db_path))

    try:
        create_schema(conn)
        enable_wal_mode(conn)
        verify_schema(conn)

        print("\n[OK] Database initialization complete!")
        return 0

    except sqlite3.Error as e:
        print(f"\n[FAIL] Database initialization failed: {e}")
        return 1

    finally:
        conn.close()


if __name__ == '__main__':
    sys.exit(main())
