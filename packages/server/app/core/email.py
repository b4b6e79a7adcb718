"""
Outbound email transport.

Two backends, picked by ``CAYCO_EMAIL_BACKEND``:

- ``http``: JSON POST to a transactional email API (Resend-compatible body:
  ``from``, ``to``, ``subject``, ``html``) with a bearer key.
- ``console``: logs the message instead of sending it; the default for local
  development and tests.

Senders never raise for delivery problems. They return an ``EmailResult``
and the caller decides what a failure means for the request.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx
import structlog

from app.core.config import Settings, get_settings

log = structlog.get_logger()


@dataclass(frozen=True)
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html: str) -> EmailResult: ...


class HttpEmailSender:
    """Delivers through an HTTP email API using httpx."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = settings
        self._transport = transport

    async def send(self, to: str, subject: str, html: str) -> EmailResult:
        if not self._settings.email_api_url or not self._settings.email_api_key:
            log.error("email.not_configured")
            return EmailResult(success=False, error="Email service not configured")

        body = {
            "from": self._settings.email_from,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self._settings.email_api_key}"}
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.email_timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.post(self._settings.email_api_url, json=body, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            log.warning(
                "email.send_failed",
                subject=subject,
                status=exc.response.status_code,
            )
            return EmailResult(success=False, error=f"Email API returned {exc.response.status_code}")
        except httpx.HTTPError as exc:
            log.warning("email.send_failed", subject=subject, error=str(exc))
            return EmailResult(success=False, error=str(exc) or exc.__class__.__name__)

        try:
            message_id = resp.json().get("id")
        except ValueError:
            message_id = None
        log.info("email.sent", subject=subject, message_id=message_id)
        return EmailResult(success=True, message_id=message_id)


class ConsoleEmailSender:
    """Logs emails instead of sending them."""

    async def send(self, to: str, subject: str, html: str) -> EmailResult:
        message_id = f"console-{uuid.uuid4()}"
        log.info("email.console", to=to, subject=subject, message_id=message_id, size=len(html))
        return EmailResult(success=True, message_id=message_id)


def build_email_sender(settings: Optional[Settings] = None) -> EmailSender:
    settings = settings or get_settings()
    if settings.email_backend == "http":
        return HttpEmailSender(settings)
    return ConsoleEmailSender()


def get_email_sender() -> EmailSender:
    """FastAPI dependency. Tests override it with a recording sender."""
    return build_email_sender()
