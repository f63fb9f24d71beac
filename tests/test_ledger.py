"""Tests for SprintLedger persistence."""

import sqlite3

import pytest

from trello_velocity.database import get_connection
from trello_velocity.ledger import (
    LedgerUnavailableError,
    LedgerWriteError,
    SprintLedger,
    SprintRecord,
)


@pytest.fixture()
def db_path(tmp_path):
    return str(tmp_path / "sprint.db")


@pytest.fixture()
def ledger(db_path):
    return SprintLedger(db_path)


def _dump(db_path: str) -> list[tuple[str, bytes]]:
    """Raw store contents in enumeration order."""
    conn = get_connection(db_path)
    try:
        rows = conn.execute("SELECT key, value FROM kv_store ORDER BY rowid").fetchall()
        return [(r["key"], bytes(r["value"])) for r in rows]
    finally:
        conn.close()


class TestEmptyLedger:
    def test_last_sprint_number_zero(self, ledger):
        assert ledger.get_last_sprint_number() == 0

    def test_no_records(self, ledger):
        assert ledger.get_all_records() == []

    def test_get_velocity_none(self, ledger):
        assert ledger.get_velocity(1) is None

    def test_reads_do_not_create_file(self, ledger, tmp_path):
        ledger.get_last_sprint_number()
        ledger.get_all_records()
        assert not (tmp_path / "sprint.db").exists()

    def test_zero_length_file_reads_as_empty(self, ledger, tmp_path):
        (tmp_path / "sprint.db").touch()
        assert ledger.get_last_sprint_number() == 0
        assert ledger.get_all_records() == []


class TestRecord:
    def test_first_record(self, ledger):
        ledger.record(1, 7)
        assert ledger.get_last_sprint_number() == 1
        assert ledger.get_velocity(1) == 7
        assert ledger.get_all_records() == [SprintRecord(1, 7)]

    def test_last_sprint_number_is_max(self, ledger):
        ledger.record(3, 10)
        ledger.record(5, 12)
        assert ledger.get_last_sprint_number() == 5

    def test_lower_sprint_does_not_decrease_marker(self, ledger):
        ledger.record(5, 12)
        ledger.record(2, 4)
        assert ledger.get_last_sprint_number() == 5
        assert ledger.get_velocity(2) == 4

    def test_rerecord_overwrites_velocity(self, ledger):
        ledger.record(1, 7)
        ledger.record(1, 9)
        assert ledger.get_velocity(1) == 9
        assert ledger.get_all_records() == [SprintRecord(1, 9)]

    def test_idempotent(self, ledger, db_path):
        ledger.record(1, 7)
        ledger.record(2, 4)
        before = _dump(db_path)
        ledger.record(2, 4)
        assert _dump(db_path) == before

    def test_zero_velocity_allowed(self, ledger):
        ledger.record(1, 0)
        assert ledger.get_velocity(1) == 0

    def test_upper_bounds(self, ledger):
        ledger.record(255, 255)
        assert ledger.get_last_sprint_number() == 255
        assert ledger.get_velocity(255) == 255

    def test_single_byte_values(self, ledger, db_path):
        ledger.record(4, 21)
        assert _dump(db_path) == [
            ("last_sprint_number", b"\x04"),
            ("velocity.4", b"\x15"),
        ]

    @pytest.mark.parametrize(
        ("sprint", "velocity"), [(0, 1), (256, 1), (1, -1), (1, 256)]
    )
    def test_out_of_range_rejected(self, ledger, tmp_path, sprint, velocity):
        with pytest.raises(ValueError, match="must be between"):
            ledger.record(sprint, velocity)
        assert not (tmp_path / "sprint.db").exists()

    def test_creates_parent_directory(self, tmp_path):
        ledger = SprintLedger(str(tmp_path / "data" / "sprint.db"))
        ledger.record(1, 3)
        assert ledger.get_velocity(1) == 3


class TestEnumerationOrder:
    def test_insertion_order_not_sprint_order(self, ledger):
        """A late correction for an old sprint is enumerated last."""
        ledger.record(2, 5)
        ledger.record(3, 8)
        ledger.record(1, 3)
        assert [r.sprint_number for r in ledger.get_all_records()] == [2, 3, 1]

    def test_overwrite_keeps_position(self, ledger):
        ledger.record(1, 5)
        ledger.record(2, 3)
        ledger.record(1, 6)
        assert ledger.get_all_records() == [SprintRecord(1, 6), SprintRecord(2, 3)]

    def test_skips_malformed_keys(self, ledger, db_path):
        ledger.record(1, 5)
        conn = get_connection(db_path)
        conn.execute("INSERT INTO kv_store (key, value) VALUES ('velocity.x', x'01')")
        conn.execute(
            "INSERT INTO kv_store (key, value) VALUES (?, x'02')", ("velocity.\u00b2",)
        )
        conn.commit()
        conn.close()
        assert ledger.get_all_records() == [SprintRecord(1, 5)]


class TestAtomicity:
    def test_failed_write_rolls_back_marker(self, ledger, db_path):
        """A failure after the marker update leaves neither write visible."""
        ledger.record(1, 7)
        conn = get_connection(db_path)
        conn.execute(
            """CREATE TRIGGER reject_sprint_2 BEFORE INSERT ON kv_store
               WHEN NEW.key = 'velocity.2'
               BEGIN SELECT RAISE(ABORT, 'rejected'); END"""
        )
        conn.commit()
        conn.close()

        with pytest.raises(LedgerWriteError, match="rejected"):
            ledger.record(2, 4)

        assert ledger.get_last_sprint_number() == 1
        assert ledger.get_all_records() == [SprintRecord(1, 7)]

    def test_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        ledger = SprintLedger(str(blocker / "sprint.db"))
        with pytest.raises(LedgerWriteError):
            ledger.record(1, 1)

    def test_corrupt_file_write_raises(self, db_path, ledger):
        with open(db_path, "wb") as f:
            f.write(b"this is not a sqlite database" * 10)
        with pytest.raises(LedgerWriteError):
            ledger.record(1, 1)


class TestUnreadableLedger:
    def test_corrupt_file_raises(self, db_path, ledger):
        with open(db_path, "wb") as f:
            f.write(b"this is not a sqlite database" * 10)
        with pytest.raises(LedgerUnavailableError):
            ledger.get_last_sprint_number()
        with pytest.raises(LedgerUnavailableError):
            ledger.get_all_records()

    def test_directory_raises(self, tmp_path):
        path = tmp_path / "sprint.db"
        path.mkdir()
        ledger = SprintLedger(str(path))
        with pytest.raises(LedgerUnavailableError):
            ledger.get_last_sprint_number()
        with pytest.raises(LedgerUnavailableError):
            ledger.get_all_records()

    def test_foreign_database_raises(self, db_path, ledger):
        conn = sqlite3.connect(db_path)
        conn.execute("CREATE TABLE other (x INTEGER)")
        conn.commit()
        conn.close()
        with pytest.raises(LedgerUnavailableError):
            ledger.get_all_records()

    def test_empty_marker_blocks_write(self, db_path, ledger):
        ledger.record(3, 5)
        conn = get_connection(db_path)
        conn.execute(
            "UPDATE kv_store SET value = x'' WHERE key = 'last_sprint_number'"
        )
        conn.commit()
        conn.close()

        with pytest.raises(LedgerUnavailableError, match="empty"):
            ledger.record(4, 1)

        conn = get_connection(db_path)
        rows = conn.execute("SELECT key, value FROM kv_store ORDER BY rowid").fetchall()
        conn.close()
        assert [(r["key"], bytes(r["value"])) for r in rows] == [
            ("last_sprint_number", b""),
            ("velocity.3", b"\x05"),
        ]

    def test_empty_value_raises(self, db_path, ledger):
        ledger.record(1, 1)
        conn = get_connection(db_path)
        conn.execute("UPDATE kv_store SET value = x'' WHERE key = 'velocity.1'")
        conn.commit()
        conn.close()
        with pytest.raises(LedgerUnavailableError, match="empty"):
            ledger.get_velocity(1)
