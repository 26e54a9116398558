"""
Database connection management.

Provides the SQLite connection backing the local reservation store.
"""

import sqlite3
from pathlib import Path


def get_connection(db_path: str = "voice_reservations.db") -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Args:
        db_path: Path to SQLite database file; parent directories are created

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path))
