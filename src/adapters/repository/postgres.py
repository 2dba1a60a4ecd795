"""
PostgreSQL repository adapter - Implements the registration store ports.

This module provides the PostgreSQL implementation of the domain's
UnitOfWork, RegistrationRepository and UserRepository ports using
psycopg3 with raw SQL.

Concurrency Design - Conditional Updates:
----------------------------------------
Every state change is a single-row UPDATE guarded by the values the
caller read:

    UPDATE registration_requests SET ...
    WHERE id = %s
      AND status = %s
      AND verification_attempts = %s
      AND verification_code_hash IS NOT DISTINCT FROM %s

If a concurrent request changed the row first, zero rows match and the
domain reports a conflict (or re-reads, for attempt counting). No row
locks are held between the read and the write.

The partial unique index ``registration_requests_unresolved_email``
guarantees at most one PENDING/APPROVED row per email; concurrent inserts
for the same email resolve to exactly one winner.

Completing a registration updates the request and inserts the user in
the same transaction (PostgresUnitOfWork), so a COMPLETED row without a
user, or a user whose request still holds a live token, cannot exist.
"""

import logging
import uuid
from contextlib import ExitStack
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import psycopg
from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from src.domain.exceptions import AccountExists, StoreUnavailable
from src.domain.models import NewUser, Page, RegistrationRequest, RegistrationStatus, Role, User

logger = logging.getLogger(__name__)

_REQUEST_COLUMNS = """
    id, email, first_name, last_name, requested_role, status,
    email_verified_at, verification_code_hash, verification_code_expires_at,
    verification_attempts, completion_token_hash, completion_token_expires_at,
    requested_at, decided_at, decided_by, admin_notes, rejection_reason, completed_at
"""

_USER_COLUMNS = "id, email, first_name, last_name, role, password_hash, is_active, created_at"


def _to_request(row: dict[str, Any]) -> RegistrationRequest:
    return RegistrationRequest(
        id=str(row["id"]),
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        requested_role=Role(row["requested_role"]),
        status=RegistrationStatus(row["status"]),
        requested_at=row["requested_at"],
        email_verified_at=row["email_verified_at"],
        verification_code_hash=row["verification_code_hash"],
        verification_code_expires_at=row["verification_code_expires_at"],
        verification_attempts=row["verification_attempts"],
        completion_token_hash=row["completion_token_hash"],
        completion_token_expires_at=row["completion_token_expires_at"],
        decided_at=row["decided_at"],
        decided_by=row["decided_by"],
        admin_notes=row["admin_notes"],
        rejection_reason=row["rejection_reason"],
        completed_at=row["completed_at"],
    )


def _to_user(row: dict[str, Any]) -> User:
    return User(
        id=str(row["id"]),
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        role=Role(row["role"]),
        password_hash=row["password_hash"],
        is_active=row["is_active"],
        created_at=row["created_at"],
    )


def _parse_id(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


class PostgresRegistrationRepository:
    """
    Implements RegistrationRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Bound to one connection whose transaction is owned by the unit of work.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def insert(self, request: RegistrationRequest) -> bool:
        """
        Insert a PENDING request.

        Runs inside a savepoint so a unique violation on the unresolved-email
        index leaves the surrounding transaction usable.

        Returns:
            True if inserted, False if an unresolved request already exists
        """
        sql = f"""
            INSERT INTO registration_requests ({_REQUEST_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        params = (
            uuid.UUID(request.id),
            request.email,
            request.first_name,
            request.last_name,
            request.requested_role.value,
            request.status.value,
            request.email_verified_at,
            request.verification_code_hash,
            request.verification_code_expires_at,
            request.verification_attempts,
            request.completion_token_hash,
            request.completion_token_expires_at,
            request.requested_at,
            request.decided_at,
            request.decided_by,
            request.admin_notes,
            request.rejection_reason,
            request.completed_at,
        )
        try:
            with self._conn.transaction(), self._conn.cursor() as cursor:
                cursor.execute(sql, params)
        except errors.UniqueViolation:
            return False
        return True

    def get(self, request_id: str) -> RegistrationRequest | None:
        parsed = _parse_id(request_id)
        if parsed is None:
            return None
        sql = f"SELECT {_REQUEST_COLUMNS} FROM registration_requests WHERE id = %s"
        return self._fetch_one(sql, (parsed,))

    def find_unresolved(self, email: str) -> RegistrationRequest | None:
        sql = f"""
            SELECT {_REQUEST_COLUMNS} FROM registration_requests
            WHERE email = %s AND status IN ('PENDING', 'APPROVED')
        """
        return self._fetch_one(sql, (email,))

    def find_latest(self, email: str) -> RegistrationRequest | None:
        sql = f"""
            SELECT {_REQUEST_COLUMNS} FROM registration_requests
            WHERE email = %s
            ORDER BY requested_at DESC
            LIMIT 1
        """
        return self._fetch_one(sql, (email,))

    def update(self, previous: RegistrationRequest, updated: RegistrationRequest) -> bool:
        """
        Conditionally replace the mutable columns of one row.

        Returns:
            True if exactly one row matched the previous snapshot
        """
        sql = """
            UPDATE registration_requests
            SET status = %s,
                email_verified_at = %s,
                verification_code_hash = %s,
                verification_code_expires_at = %s,
                verification_attempts = %s,
                completion_token_hash = %s,
                completion_token_expires_at = %s,
                decided_at = %s,
                decided_by = %s,
                admin_notes = %s,
                rejection_reason = %s,
                completed_at = %s
            WHERE id = %s
              AND status = %s
              AND verification_attempts = %s
              AND verification_code_hash IS NOT DISTINCT FROM %s
        """
        params = (
            updated.status.value,
            updated.email_verified_at,
            updated.verification_code_hash,
            updated.verification_code_expires_at,
            updated.verification_attempts,
            updated.completion_token_hash,
            updated.completion_token_expires_at,
            updated.decided_at,
            updated.decided_by,
            updated.admin_notes,
            updated.rejection_reason,
            updated.completed_at,
            uuid.UUID(previous.id),
            previous.status.value,
            previous.verification_attempts,
            previous.verification_code_hash,
        )
        with self._conn.cursor() as cursor:
            cursor.execute(sql, params)
            return cursor.rowcount == 1

    def list_page(self, status: RegistrationStatus | None, page: int, limit: int) -> Page:
        where = ""
        params: tuple[Any, ...] = ()
        if status is not None:
            where = "WHERE status = %s"
            params = (status.value,)

        with self._conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(f"SELECT COUNT(*) AS total FROM registration_requests {where}", params)
            total = cursor.fetchone()["total"]
            cursor.execute(
                f"""
                SELECT {_REQUEST_COLUMNS} FROM registration_requests {where}
                ORDER BY requested_at DESC, id
                LIMIT %s OFFSET %s
                """,
                (*params, limit, (page - 1) * limit),
            )
            items = [_to_request(row) for row in cursor.fetchall()]
        return Page(items=items, page=page, limit=limit, total=total)

    def expire_stale(self, now: datetime, pending_requested_before: datetime) -> int:
        """
        Batch-expire overdue rows; conditional on status so concurrent sweeps agree.
        """
        sql = """
            UPDATE registration_requests
            SET status = 'EXPIRED',
                verification_code_hash = NULL,
                verification_code_expires_at = NULL,
                completion_token_hash = NULL,
                completion_token_expires_at = NULL
            WHERE (status = 'PENDING' AND requested_at < %s)
               OR (status = 'APPROVED' AND completion_token_expires_at < %s)
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (pending_requested_before, now))
            return cursor.rowcount

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> RegistrationRequest | None:
        with self._conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
        return _to_request(row) if row is not None else None


class PostgresUserRepository:
    """Implements UserRepository protocol via psycopg3."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def find_by_email(self, email: str) -> User | None:
        with self._conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s", (email,))
            row = cursor.fetchone()
        return _to_user(row) if row is not None else None

    def create(self, new_user: NewUser) -> User:
        """
        Insert a user.

        Raises:
            AccountExists: email already taken (the transaction is then aborted
                and the unit of work rolls back)
        """
        sql = f"""
            INSERT INTO users (id, email, first_name, last_name, role, password_hash, is_active, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_USER_COLUMNS}
        """
        params = (
            uuid.uuid4(),
            new_user.email,
            new_user.first_name,
            new_user.last_name,
            new_user.role.value,
            new_user.password_hash,
            new_user.is_active,
            datetime.now(timezone.utc),
        )
        try:
            with self._conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(sql, params)
                row = cursor.fetchone()
        except errors.UniqueViolation:
            raise AccountExists(new_user.email) from None
        return _to_user(row)


class PostgresUnitOfWork:
    """
    Implements UnitOfWork protocol: one pooled connection, one transaction.

    Commits on clean exit and rolls back when the block raises. Pool
    timeouts and connection/statement failures surface as StoreUnavailable.
    """

    registrations: PostgresRegistrationRepository
    users: PostgresUserRepository

    def __init__(self, pool: ConnectionPool, timeout_seconds: float | None = None) -> None:
        self._pool = pool
        self._timeout = timeout_seconds
        self._stack: ExitStack | None = None

    def __enter__(self) -> "PostgresUnitOfWork":
        stack = ExitStack()
        try:
            conn = stack.enter_context(self._pool.connection(timeout=self._timeout))
            stack.enter_context(conn.transaction())
        except (PoolTimeout, psycopg.OperationalError) as e:
            stack.close()
            logger.error("Registration store unavailable: %s", type(e).__name__)
            raise StoreUnavailable("Registration store unavailable") from e

        self._stack = stack
        self.registrations = PostgresRegistrationRepository(conn)
        self.users = PostgresUserRepository(conn)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        stack, self._stack = self._stack, None
        try:
            stack.__exit__(exc_type, exc, tb)
        except psycopg.OperationalError as e:
            raise StoreUnavailable("Registration store unavailable") from e
        if isinstance(exc, psycopg.OperationalError):
            logger.error("Registration store unavailable: %s", type(exc).__name__)
            raise StoreUnavailable("Registration store unavailable") from exc


MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"


def run_migrations(pool: ConnectionPool, migrations_dir: Path = MIGRATIONS_DIR) -> None:
    """
    Apply every *.sql file in migrations_dir, in filename order.

    Each file runs in its own connection checkout and must be idempotent
    (IF NOT EXISTS), since all of them run again on every startup.

    Raises:
        RuntimeError: a migration failed; the remaining files are not run
    """
    if not migrations_dir.is_dir():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))
    logger.info("Applying %d migration(s) from %s", len(sql_files), migrations_dir)

    for sql_file in sql_files:
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
        except psycopg.Error as e:
            logger.error("Migration %s failed: %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
        logger.info("Applied migration %s", sql_file.name)
