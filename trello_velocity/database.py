"""SQLite connection manager for the sprint velocity ledger."""

import logging
import os
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

# Schema version, bump when adding migrations
CURRENT_SCHEMA_VERSION = 1

DEFAULT_DB_PATH = "sprint.db"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Key-value store; rowid order is the enumeration order of the ledger
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL
);
"""


def get_db_path() -> str:
    """Get database path from environment or default."""
    return os.getenv("VELOCITY_DB", DEFAULT_DB_PATH)


def ledger_exists(db_path: str) -> bool:
    """True if anything is present at the ledger path, except an empty file.

    SQLite treats an empty file as an empty database, so a zero-byte file
    is considered absent. Anything else at the path (including a directory)
    counts as present and must open as a ledger.
    """
    path = Path(db_path)
    if not path.exists():
        return False
    return not (path.is_file() and path.stat().st_size == 0)


def get_connection(db_path: str | None = None) -> sqlite3.Connection:
    """Create a new read-write SQLite connection, creating the file if needed.

    Args:
        db_path: Database file path. None uses env/default.
                 ":memory:" for in-memory database (testing).

    Returns:
        Configured sqlite3.Connection.
    """
    path = db_path if db_path is not None else get_db_path()

    # Ensure parent directory exists for file-based databases
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    return conn


def get_readonly_connection(db_path: str) -> sqlite3.Connection:
    """Open an existing database without creating or modifying it.

    Raises:
        sqlite3.OperationalError: If the file cannot be opened.
    """
    uri = f"{Path(db_path).resolve().as_uri()}?mode=ro"
    conn = sqlite3.connect(uri, uri=True)
    conn.row_factory = sqlite3.Row
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create tables if they don't exist.

    Idempotent, safe to call before every write.
    """
    conn.executescript(SCHEMA_SQL)

    existing = conn.execute(
        "SELECT version FROM schema_version WHERE version = ?",
        (CURRENT_SCHEMA_VERSION,),
    ).fetchone()
    if not existing:
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (CURRENT_SCHEMA_VERSION,),
        )
        conn.commit()
        logger.debug("Ledger schema initialized (version %d)", CURRENT_SCHEMA_VERSION)
