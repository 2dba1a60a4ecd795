"""
Approval gate - administrator-only operations.

Authorization happens here, before the state machine is consulted: a
non-administrator gets Forbidden whether or not the request exists.
"""

import logging
from dataclasses import dataclass

from .exceptions import Forbidden
from .models import Actor, Page, RegistrationRequest, RegistrationStatus, Role
from .registration import RegistrationService

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass
class ApprovalGate:
    """Wraps approve/reject/list with an ADMIN role check."""

    service: RegistrationService

    def list_requests(
        self,
        actor: Actor,
        status: RegistrationStatus | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Page:
        """Page through requests, optionally filtered by status. Read-only."""
        self._authorize(actor, "list")
        page = max(1, page)
        limit = min(max(1, limit), MAX_PAGE_SIZE)
        return self.service.list_requests(status, page, limit)

    def approve(self, actor: Actor, request_id: str, notes: str | None = None) -> RegistrationRequest:
        self._authorize(actor, "approve")
        return self.service.approve(request_id, actor.user_id, notes)

    def reject(
        self, actor: Actor, request_id: str, reason: str, notes: str | None = None
    ) -> RegistrationRequest:
        self._authorize(actor, "reject")
        return self.service.reject(request_id, actor.user_id, reason, notes)

    def _authorize(self, actor: Actor, action: str) -> None:
        if actor.role != Role.ADMIN:
            logger.warning("User %s with role %s denied %s", actor.user_id, actor.role.value, action)
            raise Forbidden("Administrator role required")
