"""
Service wiring - builds domain services from settings.

Shared by the API dependencies and the sweep job so both run the
workflow with the same policy and collaborators.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from src.adapters.security.passwords import BcryptPasswordHasher
from src.adapters.security.sessions import JwtSessionIssuer
from src.config.settings import Settings
from src.domain.accounts import AccountMaterializer
from src.domain.notifications import NotificationDispatcher
from src.domain.ports import UnitOfWork
from src.domain.registration import RegistrationService, utc_now
from src.domain.secret_generator import SecretGenerator
from src.domain.state_machine import RegistrationPolicy


def policy_from_settings(settings: Settings) -> RegistrationPolicy:
    return RegistrationPolicy(
        code_ttl=timedelta(seconds=settings.verification_code_ttl_seconds),
        max_attempts=settings.verification_max_attempts,
        token_ttl=timedelta(seconds=settings.completion_token_ttl_seconds),
        decision_window=timedelta(seconds=settings.decision_window_seconds),
    )


def session_issuer_from_settings(settings: Settings) -> JwtSessionIssuer:
    return JwtSessionIssuer(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl_seconds=settings.session_ttl_seconds,
    )


def build_registration_service(
    settings: Settings,
    uow_factory: Callable[[], UnitOfWork],
    dispatcher: NotificationDispatcher,
    clock: Callable[[], datetime] = utc_now,
) -> RegistrationService:
    """Assemble a RegistrationService from settings and a store."""
    materializer = AccountMaterializer(
        password_hasher=BcryptPasswordHasher(rounds=settings.bcrypt_cost),
        session_issuer=session_issuer_from_settings(settings),
    )
    return RegistrationService(
        uow_factory=uow_factory,
        notifications=dispatcher,
        materializer=materializer,
        secret_generator=SecretGenerator(pepper=settings.secret_pepper.encode()),
        policy=policy_from_settings(settings),
        clock=clock,
        completion_url=settings.completion_url,
    )
