"""
Expiry sweep - moves stale registration requests to EXPIRED.

Run once from cron via the ``onboarding-sweep`` console script, or
periodically inside the API process (see ``sweep_periodically``). Each
pass is one conditional batch update, so overlapping passes from several
processes agree on the result.
"""

import asyncio
import logging
from collections.abc import Callable

from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresUnitOfWork
from src.adapters.smtp.console import ConsoleNotifier
from src.config.settings import get_settings
from src.config.wiring import build_registration_service
from src.domain.exceptions import Unavailable
from src.domain.notifications import NotificationDispatcher
from src.domain.registration import RegistrationService

logger = logging.getLogger(__name__)


def run_sweep(service: RegistrationService) -> int:
    """Run one sweep pass and return the number of requests expired."""
    moved = service.expire_stale()
    logger.info("Sweep pass complete: %d request(s) expired", moved)
    return moved


async def sweep_periodically(
    service_factory: Callable[[], RegistrationService], interval_seconds: float
) -> None:
    """
    Run sweep passes forever, ``interval_seconds`` apart.

    Store outages are logged and retried on the next tick. Cancel the task
    to stop.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(run_sweep, service_factory())
        except Unavailable:
            logger.warning("Sweep pass skipped: registration store unavailable")


def main() -> None:
    """Console entry point: one sweep pass against the configured database."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=1,
        kwargs={"options": f"-c statement_timeout={settings.statement_timeout_ms}"},
        open=True,
    )
    dispatcher = NotificationDispatcher(ConsoleNotifier(), timeout_seconds=settings.notifier_timeout_seconds)
    try:
        service = build_registration_service(
            settings,
            lambda: PostgresUnitOfWork(pool, timeout_seconds=settings.pool_timeout_seconds),
            dispatcher,
        )
        run_sweep(service)
    finally:
        dispatcher.close()
        pool.close()


if __name__ == "__main__":
    main()
