import sqlite3
import sys

from loguru import logger

from db import SCHEMA_VERSION, Database


def migrate(db_path: str = "accel.db") -> int:
    """Bring ``db_path`` to the current schema and return the version it had."""
    conn = sqlite3.connect(db_path)
    try:
        before = conn.execute("PRAGMA user_version;").fetchone()[0]
    finally:
        conn.close()
    Database(db_path)
    if before < SCHEMA_VERSION:
        logger.info(f"{db_path}: schema {before} -> {SCHEMA_VERSION}")
    else:
        logger.info(f"{db_path}: already at schema {before}")
    return before


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else "accel.db"
    migrate(path)
