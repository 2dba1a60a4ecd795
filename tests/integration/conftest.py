"""
Shared fixtures for PostgreSQL integration tests.

Tests in this package are skipped when the configured database cannot be
reached. Migrations are applied once per session; both tables are
truncated before each test.
"""

from collections.abc import Callable, Generator
from dataclasses import replace

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository.postgres import PostgresUnitOfWork, run_migrations
from src.config.settings import get_settings
from src.domain.registration import RegistrationService


@pytest.fixture(scope="session")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for integration tests, or skip without a database."""
    settings = get_settings()
    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=False)
    try:
        pool.open(wait=True, timeout=3)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL not reachable at DATABASE_URL")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture(autouse=True)
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty both tables before each test."""
    with pool.connection() as conn:
        conn.execute("TRUNCATE registration_requests, users")
    yield


@pytest.fixture
def uow_factory(pool: ConnectionPool) -> Callable[[], PostgresUnitOfWork]:
    return lambda: PostgresUnitOfWork(pool, timeout_seconds=5.0)


@pytest.fixture
def pg_service(service: RegistrationService, uow_factory: Callable[[], PostgresUnitOfWork]) -> RegistrationService:
    """The in-memory service fixture rewired onto Postgres."""
    return replace(service, uow_factory=uow_factory)
