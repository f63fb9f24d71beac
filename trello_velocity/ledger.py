"""Sprint velocity ledger backed by a SQLite key-value table."""

import logging
import sqlite3
from dataclasses import dataclass

from .database import (
    get_connection,
    get_db_path,
    get_readonly_connection,
    init_schema,
    ledger_exists,
)

logger = logging.getLogger(__name__)

LAST_SPRINT_KEY = "last_sprint_number"
VELOCITY_KEY_PREFIX = "velocity."

MIN_SPRINT_NUMBER = 1
MAX_SPRINT_NUMBER = 255
# Values are stored as a single byte
MAX_VELOCITY = 255


class LedgerUnavailableError(Exception):
    """Raised when an existing ledger file cannot be read."""


class LedgerWriteError(Exception):
    """Raised when a ledger write cannot be committed."""


@dataclass(frozen=True)
class SprintRecord:
    sprint_number: int
    velocity: int


def _decode_byte(key: str, value: bytes) -> int:
    if not value:
        msg = f"Ledger entry {key!r} is empty"
        raise LedgerUnavailableError(msg)
    return value[0]


class SprintLedger:
    """Per-sprint velocity history plus the last recorded sprint number.

    Every call opens its own connection and closes it before returning;
    no handle is held between calls.

    A missing ledger file reads as empty. A file that exists but cannot
    be read raises LedgerUnavailableError.
    """

    def __init__(self, db_path: str | None = None):
        self.db_path = db_path if db_path is not None else get_db_path()

    def _read(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        if not ledger_exists(self.db_path):
            logger.debug("No ledger at %s, treating as empty", self.db_path)
            return []
        try:
            conn = get_readonly_connection(self.db_path)
        except sqlite3.Error as exc:
            msg = f"Cannot open ledger {self.db_path}: {exc}"
            raise LedgerUnavailableError(msg) from exc
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            msg = f"Cannot read ledger {self.db_path}: {exc}"
            raise LedgerUnavailableError(msg) from exc
        finally:
            conn.close()

    def get_last_sprint_number(self) -> int:
        """Get the highest sprint number ever recorded (0 if none)."""
        rows = self._read("SELECT value FROM kv_store WHERE key = ?", (LAST_SPRINT_KEY,))
        if not rows:
            return 0
        return _decode_byte(LAST_SPRINT_KEY, rows[0]["value"])

    def get_velocity(self, sprint_number: int) -> int | None:
        """Get the recorded velocity of one sprint, or None."""
        key = f"{VELOCITY_KEY_PREFIX}{sprint_number}"
        rows = self._read("SELECT value FROM kv_store WHERE key = ?", (key,))
        if not rows:
            return None
        return _decode_byte(key, rows[0]["value"])

    def get_all_records(self) -> list[SprintRecord]:
        """Get all velocity records in the store's enumeration order.

        The order is first-insertion order of each sprint key, not
        sprint number order. A sprint recorded late (e.g. a manual
        correction for an old sprint) appears at the end.
        """
        rows = self._read("SELECT key, value FROM kv_store ORDER BY rowid")
        records: list[SprintRecord] = []
        for row in rows:
            key = row["key"]
            if not key.startswith(VELOCITY_KEY_PREFIX):
                continue
            suffix = key[len(VELOCITY_KEY_PREFIX) :]
            if not (suffix.isascii() and suffix.isdigit()):
                logger.warning("Skipping malformed ledger key %r", key)
                continue
            records.append(
                SprintRecord(
                    sprint_number=int(suffix),
                    velocity=_decode_byte(key, row["value"]),
                )
            )
        return records

    def record(self, sprint_number: int, velocity: int) -> None:
        """Atomically store a sprint's velocity and advance the marker.

        The last sprint number becomes max(current, sprint_number) and the
        velocity entry is inserted or overwritten. Both writes happen in one
        savepoint: either both land or neither does.

        Raises:
            ValueError: If sprint_number or velocity is out of range.
            LedgerWriteError: If the store cannot be created or the
                transaction cannot be committed.
            LedgerUnavailableError: If the stored last sprint number is
                corrupt; nothing is written.
        """
        if not MIN_SPRINT_NUMBER <= sprint_number <= MAX_SPRINT_NUMBER:
            msg = (
                f"Sprint number must be between {MIN_SPRINT_NUMBER} and "
                f"{MAX_SPRINT_NUMBER}, got {sprint_number}"
            )
            raise ValueError(msg)
        if not 0 <= velocity <= MAX_VELOCITY:
            msg = f"Velocity must be between 0 and {MAX_VELOCITY}, got {velocity}"
            raise ValueError(msg)

        try:
            conn = get_connection(self.db_path)
        except (sqlite3.Error, OSError) as exc:
            msg = f"Cannot create ledger {self.db_path}: {exc}"
            raise LedgerWriteError(msg) from exc

        try:
            init_schema(conn)
            self._write(conn, sprint_number, velocity)
        except sqlite3.Error as exc:
            msg = f"Cannot write sprint {sprint_number} to ledger {self.db_path}: {exc}"
            raise LedgerWriteError(msg) from exc
        finally:
            conn.close()

        logger.info("Recorded velocity %d for sprint %d", velocity, sprint_number)

    @staticmethod
    def _write(conn: sqlite3.Connection, sprint_number: int, velocity: int) -> None:
        conn.execute("SAVEPOINT record_velocity")
        try:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (LAST_SPRINT_KEY,)
            ).fetchone()
            current = _decode_byte(LAST_SPRINT_KEY, row["value"]) if row else 0

            # 1. Advance the marker, never move it back
            if sprint_number > current:
                conn.execute(
                    """INSERT INTO kv_store (key, value) VALUES (?, ?)
                       ON CONFLICT(key) DO UPDATE SET value = excluded.value""",
                    (LAST_SPRINT_KEY, bytes([sprint_number])),
                )

            # 2. Upsert the velocity; keeps the key's rowid (enumeration position)
            conn.execute(
                """INSERT INTO kv_store (key, value) VALUES (?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value""",
                (f"{VELOCITY_KEY_PREFIX}{sprint_number}", bytes([velocity])),
            )

            conn.execute("RELEASE record_velocity")
        except Exception:
            conn.execute("ROLLBACK TO record_velocity")
            conn.execute("RELEASE record_velocity")
            raise
        conn.commit()
