"""
Notification dispatch - bounded, non-fatal delivery.

State transitions commit before any notification is attempted. Delivery
runs on a small worker pool and the caller waits at most
``timeout_seconds``; a slow or failing notifier is logged and otherwise
ignored, because the transition that triggered it is already durable.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any

from .ports import Notifier

logger = logging.getLogger(__name__)

VERIFICATION_CODE = "verification_code"
REGISTRATION_APPROVED = "registration_approved"
REGISTRATION_REJECTED = "registration_rejected"


class NotificationDispatcher:
    """Wraps a Notifier with a timeout and failure demotion."""

    def __init__(self, notifier: Notifier, timeout_seconds: float = 5.0, max_workers: int = 4) -> None:
        self._notifier = notifier
        self._timeout = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def dispatch(self, email: str, payload: dict[str, Any]) -> bool:
        """
        Attempt delivery of one notification.

        Returns:
            True if the notifier returned within the timeout, False otherwise
        """
        kind = payload.get("kind", "unknown")
        try:
            future = self._executor.submit(self._notifier.send, email, payload)
            future.result(timeout=self._timeout)
        except FutureTimeout:
            logger.warning("Notification %s to %s timed out after %.1fs", kind, email, self._timeout)
            return False
        except Exception as e:
            # Exception text may echo the payload; log the type only
            logger.warning("Notification %s to %s failed: %s", kind, email, type(e).__name__)
            return False
        return True

    def close(self) -> None:
        self._executor.shutdown(wait=False)
