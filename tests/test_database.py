"""Tests for database helpers."""

from sqlalchemy.exc import DBAPIError

from app.database import is_serialization_failure, to_async_url


class _DriverError(Exception):
    pass


def _dbapi_error(**attrs) -> DBAPIError:
    orig = _DriverError("driver error")
    for name, value in attrs.items():
        setattr(orig, name, value)
    return DBAPIError("INSERT INTO appointments", {}, orig)


def test_asyncpg_serialization_failure_detected() -> None:
    """asyncpg reports the SQLSTATE as ``sqlstate``."""
    assert is_serialization_failure(_dbapi_error(sqlstate="40001"))


def test_psycopg_serialization_failure_detected() -> None:
    """psycopg reports the SQLSTATE as ``pgcode``."""
    assert is_serialization_failure(_dbapi_error(pgcode="40001"))


def test_other_errors_are_not_serialization_failures() -> None:
    """Unrelated codes and code-less errors are left alone."""
    assert not is_serialization_failure(_dbapi_error(sqlstate="23505"))
    assert not is_serialization_failure(_dbapi_error())


def test_to_async_url() -> None:
    """Sync URLs are rewritten to their async drivers."""
    assert to_async_url("postgresql://u:p@db/app") == "postgresql+asyncpg://u:p@db/app"
    assert to_async_url("sqlite:///./scheduling.db") == "sqlite+aiosqlite:///./scheduling.db"
    assert to_async_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"
