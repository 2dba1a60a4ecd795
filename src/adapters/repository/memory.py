"""
In-memory repository adapter - Implements the registration store ports.

Used by the unit and adversarial test suites and for running the API
without a database. A unit of work holds the store-wide lock for its
whole duration and restores a snapshot if the block raises, which gives
the same atomicity the Postgres adapter gets from a transaction.

Conditional updates compare against the caller's snapshot exactly like
the SQL WHERE clause does, so lost-update behavior is the same.
"""

import threading
import uuid
from datetime import datetime, timezone

from src.domain.exceptions import AccountExists
from src.domain.models import NewUser, Page, RegistrationRequest, RegistrationStatus, User
from src.domain.state_machine import Expired, apply


class InMemoryStore:
    """Shared state behind all in-memory units of work."""

    def __init__(self) -> None:
        self.requests: dict[str, RegistrationRequest] = {}
        self.users: dict[str, User] = {}
        self.lock = threading.RLock()

    def unit_of_work(self) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self)


class InMemoryRegistrationRepository:
    """
    Implements RegistrationRepository protocol over a dict.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def insert(self, request: RegistrationRequest) -> bool:
        with self._store.lock:
            if request.status.is_unresolved and self.find_unresolved(request.email) is not None:
                return False
            self._store.requests[request.id] = request
            return True

    def get(self, request_id: str) -> RegistrationRequest | None:
        return self._store.requests.get(request_id)

    def find_unresolved(self, email: str) -> RegistrationRequest | None:
        for request in self._store.requests.values():
            if request.email == email and request.status.is_unresolved:
                return request
        return None

    def find_latest(self, email: str) -> RegistrationRequest | None:
        latest = None
        for request in self._store.requests.values():
            if request.email == email and (latest is None or request.requested_at >= latest.requested_at):
                latest = request
        return latest

    def update(self, previous: RegistrationRequest, updated: RegistrationRequest) -> bool:
        with self._store.lock:
            current = self._store.requests.get(previous.id)
            if (
                current is None
                or current.status != previous.status
                or current.verification_attempts != previous.verification_attempts
                or current.verification_code_hash != previous.verification_code_hash
            ):
                return False
            self._store.requests[previous.id] = updated
            return True

    def list_page(self, status: RegistrationStatus | None, page: int, limit: int) -> Page:
        rows = [r for r in self._store.requests.values() if status is None or r.status == status]
        rows.sort(key=lambda r: r.requested_at, reverse=True)
        start = (page - 1) * limit
        return Page(items=rows[start : start + limit], page=page, limit=limit, total=len(rows))

    def expire_stale(self, now: datetime, pending_requested_before: datetime) -> int:
        moved = 0
        with self._store.lock:
            for request in list(self._store.requests.values()):
                overdue = (
                    request.status == RegistrationStatus.PENDING
                    and request.requested_at < pending_requested_before
                ) or (
                    request.status == RegistrationStatus.APPROVED
                    and request.completion_token_expires_at is not None
                    and request.completion_token_expires_at < now
                )
                if overdue:
                    self._store.requests[request.id] = apply(request, Expired(now))
                    moved += 1
        return moved


class InMemoryUserRepository:
    """Implements UserRepository protocol over a dict keyed by email."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def find_by_email(self, email: str) -> User | None:
        return self._store.users.get(email)

    def create(self, new_user: NewUser) -> User:
        with self._store.lock:
            if new_user.email in self._store.users:
                raise AccountExists(new_user.email)
            user = User(
                id=str(uuid.uuid4()),
                email=new_user.email,
                first_name=new_user.first_name,
                last_name=new_user.last_name,
                role=new_user.role,
                password_hash=new_user.password_hash,
                is_active=new_user.is_active,
                created_at=datetime.now(timezone.utc),
            )
            self._store.users[user.email] = user
            return user


class InMemoryUnitOfWork:
    """Implements UnitOfWork protocol with a lock plus snapshot rollback."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store
        self.registrations = InMemoryRegistrationRepository(store)
        self.users = InMemoryUserRepository(store)
        self._snapshot: tuple[dict, dict] | None = None

    def __enter__(self) -> "InMemoryUnitOfWork":
        self._store.lock.acquire()
        self._snapshot = (dict(self._store.requests), dict(self._store.users))
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None and self._snapshot is not None:
                requests, users = self._snapshot
                self._store.requests.clear()
                self._store.requests.update(requests)
                self._store.users.clear()
                self._store.users.update(users)
        finally:
            self._snapshot = None
            self._store.lock.release()
