"""Tests for transient storage error classification and deadline helpers."""

from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from src.cm_common.database import is_transient_db_error
from src.cm_common.datetime_utils import deadline_from, has_passed


class _PgError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(sqlstate)
        self.sqlstate = sqlstate


class TestIsTransientDbError:
    def test_deadlock_is_transient(self) -> None:
        exc = DBAPIError("UPDATE", {}, _PgError("40P01"))
        assert is_transient_db_error(exc) is True

    def test_serialization_failure_is_transient(self) -> None:
        assert is_transient_db_error(DBAPIError("UPDATE", {}, _PgError("40001"))) is True

    def test_operational_error_is_transient(self) -> None:
        assert is_transient_db_error(OperationalError("SELECT 1", {}, Exception("gone"))) is True

    def test_invalidated_connection_is_transient(self) -> None:
        exc = DBAPIError("SELECT 1", {}, Exception("reset"), connection_invalidated=True)
        assert is_transient_db_error(exc) is True

    def test_integrity_error_is_not_transient(self) -> None:
        exc = IntegrityError("INSERT", {}, _PgError("23505"))
        assert is_transient_db_error(exc) is False

    def test_plain_network_errors(self) -> None:
        assert is_transient_db_error(ConnectionResetError()) is True
        assert is_transient_db_error(TimeoutError()) is True
        assert is_transient_db_error(ValueError("nope")) is False


class TestDeadlines:
    def test_deadline_is_inclusive(self) -> None:
        start = datetime(2026, 1, 1, tzinfo=UTC)
        deadline = deadline_from(start, days=7)
        assert deadline == start + timedelta(days=7)
        assert has_passed(deadline, deadline) is True
        assert has_passed(deadline, deadline - timedelta(microseconds=1)) is False
