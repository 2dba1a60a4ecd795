"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

from collections.abc import Callable
from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresUnitOfWork
from src.adapters.security.sessions import InvalidSessionToken, JwtSessionIssuer
from src.adapters.smtp.console import ConsoleNotifier
from src.config.settings import get_settings
from src.config.wiring import build_registration_service, session_issuer_from_settings
from src.domain.approval import ApprovalGate
from src.domain.models import Actor
from src.domain.notifications import NotificationDispatcher
from src.domain.ports import UnitOfWork
from src.domain.registration import RegistrationService


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    """Process-wide notification dispatcher (owns a small worker pool)."""
    settings = get_settings()
    return NotificationDispatcher(ConsoleNotifier(), timeout_seconds=settings.notifier_timeout_seconds)


@lru_cache
def get_session_issuer() -> JwtSessionIssuer:
    return session_issuer_from_settings(get_settings())


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Open one Postgres transaction per unit of work."""
    pool = get_pool(request)
    timeout = get_settings().pool_timeout_seconds
    return lambda: PostgresUnitOfWork(pool, timeout_seconds=timeout)


def get_registration_service(request: Request) -> RegistrationService:
    """
    Create registration service with injected dependencies.

    Wires together the store, notifier and identity collaborators.
    """
    return build_registration_service(get_settings(), get_uow_factory(request), get_dispatcher())


def get_approval_gate(
    service: RegistrationService = Depends(get_registration_service),
) -> ApprovalGate:
    return ApprovalGate(service=service)


# Bearer token security scheme for OpenAPI documentation
http_bearer = HTTPBearer(auto_error=False)


def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    issuer: JwtSessionIssuer = Depends(get_session_issuer),
) -> Actor:
    """
    Resolve the caller from an ``Authorization: Bearer <jwt>`` header.

    Returns 401 for a missing, malformed, expired or badly signed token.
    Role checks are left to the approval gate (403).
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return issuer.decode(credentials.credentials)
    except InvalidSessionToken:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
