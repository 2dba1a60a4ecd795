"""
Unit tests for PostgresUnitOfWork error mapping and run_migrations.

Connection problems surface as StoreUnavailable so the API can answer
503 instead of leaking driver errors. Migrations run against a mocked
pool from a temporary directory.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from unittest.mock import MagicMock

import psycopg
import pytest
from psycopg_pool import PoolTimeout

from src.adapters.repository.postgres import PostgresUnitOfWork, run_migrations
from src.domain.exceptions import StoreUnavailable


def pool_with_connection(conn: MagicMock) -> MagicMock:
    @contextmanager
    def connection(timeout=None):
        yield conn

    pool = MagicMock()
    pool.connection.side_effect = connection
    return pool


def test_pool_timeout_is_store_unavailable() -> None:
    pool = MagicMock()
    pool.connection.side_effect = PoolTimeout("no connection")

    with pytest.raises(StoreUnavailable):
        with PostgresUnitOfWork(pool, timeout_seconds=0.1):
            pass


def test_passes_timeout_to_pool() -> None:
    pool = pool_with_connection(MagicMock())
    with PostgresUnitOfWork(pool, timeout_seconds=2.5):
        pass
    pool.connection.assert_called_once_with(timeout=2.5)


def test_operational_error_in_block_is_store_unavailable() -> None:
    pool = pool_with_connection(MagicMock())

    with pytest.raises(StoreUnavailable):
        with PostgresUnitOfWork(pool):
            raise psycopg.OperationalError("server closed the connection")


def test_domain_errors_pass_through() -> None:
    pool = pool_with_connection(MagicMock())

    with pytest.raises(ValueError):
        with PostgresUnitOfWork(pool):
            raise ValueError("not a store problem")


def test_repositories_bound_to_connection() -> None:
    conn = MagicMock()
    with PostgresUnitOfWork(pool_with_connection(conn)) as uow:
        assert uow.registrations._conn is conn
        assert uow.users._conn is conn
    conn.transaction.assert_called_once_with()


class TestRunMigrations:
    def test_applies_files_in_name_order(self, tmp_path: Path) -> None:
        (tmp_path / "002_users.sql").write_text("CREATE TABLE IF NOT EXISTS users ();")
        (tmp_path / "001_requests.sql").write_text("CREATE TABLE IF NOT EXISTS requests ();")
        (tmp_path / "notes.txt").write_text("ignored")
        conn = MagicMock()

        run_migrations(pool_with_connection(conn), tmp_path)

        executed = [c.args[0] for c in conn.execute.call_args_list]
        assert executed == [
            "CREATE TABLE IF NOT EXISTS requests ();",
            "CREATE TABLE IF NOT EXISTS users ();",
        ]

    def test_failure_stops_and_raises(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        (tmp_path / "001_bad.sql").write_text("CREATE TABLE (;")
        (tmp_path / "002_next.sql").write_text("SELECT 1;")
        conn = MagicMock()
        conn.execute.side_effect = psycopg.errors.SyntaxError("syntax error at or near \"(\"")

        with caplog.at_level(logging.ERROR), pytest.raises(RuntimeError, match="001_bad.sql"):
            run_migrations(pool_with_connection(conn), tmp_path)

        assert conn.execute.call_count == 1
        assert "Migration 001_bad.sql failed" in caplog.text

    def test_missing_directory_is_skipped(self, tmp_path: Path) -> None:
        pool = MagicMock()
        run_migrations(pool, tmp_path / "absent")
        pool.connection.assert_not_called()

    def test_default_directory_holds_the_schema(self) -> None:
        conn = MagicMock()
        run_migrations(pool_with_connection(conn))

        executed = " ".join(c.args[0] for c in conn.execute.call_args_list)
        assert "registration_requests" in executed
        assert "users" in executed
