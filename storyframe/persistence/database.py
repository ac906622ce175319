"""
SQLite Database Connection and Schema Management.
"""
import sqlite3
import logging
from pathlib import Path
from contextlib import contextmanager

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_PATH = "data/storyframe.db"
MEMORY_DATABASE = ":memory:"


def connect(db_path: str = DEFAULT_DATABASE_PATH) -> sqlite3.Connection:
    """
    Open a SQLite connection and make sure the schema exists.
    Autocommit mode; use transaction() for multi-statement writes.
    """
    if db_path != MEMORY_DATABASE:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(
        db_path,
        check_same_thread=False,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")

    logger.info(f"SQLite connection established: {db_path}")

    init_schema(conn)
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection):
    """
    Context manager for database transactions.
    Auto-commits on success, rolls back on exception.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.execute("COMMIT")
    except Exception:
        conn.execute("ROLLBACK")
        raise


def init_schema(conn: sqlite3.Connection) -> None:
    """
    Initialize database schema.
    Creates tables if they don't exist.
    """
    conn.executescript("""
        -- Schemaless documents, one row per record
        CREATE TABLE IF NOT EXISTS records (
            id TEXT PRIMARY KEY,
            collection TEXT NOT NULL,
            data TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_records_collection
            ON records(collection);
    """)

    logger.info("Database schema initialized")
