"""
Console notifier adapter - Implements Notifier protocol.

This module provides a console-based implementation of the domain's
notifier port for demo and development: rendered messages are written to
a text stream (stdout by default) as a stand-in for an SMTP transport.

Only delivery metadata goes through the logging system. Codes and tokens
appear in the rendered message for the recipient and nowhere else.
"""

import logging
import sys
import threading
from typing import Any, TextIO

logger = logging.getLogger(__name__)


def render(payload: dict[str, Any]) -> tuple[str, str]:
    """
    Build (subject, body) for a notification payload.

    Raises:
        ValueError: unknown notification kind
    """
    kind = payload.get("kind")
    name = payload.get("first_name") or "there"

    if kind == "verification_code":
        minutes = int(payload["expires_in_seconds"]) // 60
        return (
            "Verify your email address",
            f"Hello {name},\n\nYour verification code is {payload['code']}.\n"
            f"It expires in {minutes} minutes.",
        )
    if kind == "registration_approved":
        hours = int(payload["expires_in_seconds"]) // 3600
        return (
            "Your registration has been approved",
            f"Hello {name},\n\nYour request for {payload['role']} access was approved.\n"
            f"Open {payload['completion_url']} and enter this completion token to set "
            f"your password:\n\n    {payload['token']}\n\nThe token is valid for {hours} hours.",
        )
    if kind == "registration_rejected":
        return (
            "Your registration request",
            f"Hello {name},\n\nYour registration request was not approved.\n"
            f"Reason: {payload['reason']}",
        )
    raise ValueError(f"Unknown notification kind: {kind}")


class ConsoleNotifier:
    """
    Implements Notifier protocol via a text stream.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def send(self, email: str, payload: dict[str, Any]) -> None:
        """
        Write the rendered message (simulates email delivery).

        Args:
            email: Recipient email address (normalized by domain layer)
            payload: Notification kind and template values
        """
        subject, body = render(payload)
        stream = self._stream or sys.stdout
        with self._lock:
            stream.write(f"To: {email}\nSubject: {subject}\n\n{body}\n\n")
            stream.flush()
        logger.info("[NOTIFY] %s sent to %s", payload["kind"], email)
