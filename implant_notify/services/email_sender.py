"""Email sender interface + Resend implementation.

Senders never raise: delivery problems come back as a failed EmailResult so
callers decide whether a failure matters (it never rolls back a notification).
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

import httpx

from implant_notify.core.config import settings
from implant_notify.core.structured_logging import mask_email
from implant_notify.services import email_templates

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0
RETRY_STATUSES = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class EmailResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


class EmailSender(Protocol):
    key: str

    async def send_email(self, to_email: str, template: str, data: Any) -> EmailResult:
        """Render ``template`` with ``data`` and deliver it to ``to_email``."""


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = RESEND_MAX_ATTEMPTS,
    base_delay: float = RESEND_RETRY_BASE_DELAY,
    max_delay: float = RESEND_RETRY_MAX_DELAY,
) -> httpx.Response:
    """POST with exponential backoff on transport errors and retryable statuses."""
    for attempt in range(max_attempts):
        last_attempt = attempt >= max_attempts - 1
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if last_attempt:
                raise
            logger.warning("Email provider request failed, retrying", exc_info=exc)
        else:
            if response.status_code not in RETRY_STATUSES or last_attempt:
                return response
            logger.warning("Email provider returned %s, retrying", response.status_code)

        delay = min(max_delay, base_delay * (2**attempt))
        if delay:
            await asyncio.sleep(delay + random.uniform(0, delay / 2))

    raise RuntimeError("request_with_retries exhausted without a response")


def _message_id(response: httpx.Response) -> str | None:
    """Provider message id from a 2xx body. A missing or unreadable id is None."""
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        message_id = data.get("id")
        if isinstance(message_id, str) and message_id:
            return message_id
    return None


class ResendEmailSender:
    """Deliver through the Resend HTTP API."""

    key = "resend"

    def __init__(self, api_key: str, from_email: str, timeout: float = RESEND_TIMEOUT_SECONDS):
        self._api_key = api_key
        self._from_email = from_email
        self._timeout = timeout

    async def send_email(self, to_email: str, template: str, data: Any) -> EmailResult:
        try:
            rendered = email_templates.render(template, data)
        except Exception as exc:
            logger.error("Email render failed for template=%s: %s", template, type(exc).__name__)
            return EmailResult(success=False, error=f"Render failed: {exc}")

        payload = {
            "from": self._from_email,
            "to": [to_email],
            "subject": rendered.subject,
            "html": rendered.html,
            "text": rendered.text,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:

                async def request_fn() -> httpx.Response:
                    return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

                response = await request_with_retries(request_fn)
        except httpx.HTTPError as exc:
            logger.error(
                "Email send failed for recipient=%s: %s", mask_email(to_email), type(exc).__name__
            )
            return EmailResult(success=False, error=f"Request error: {type(exc).__name__}")

        if 200 <= response.status_code < 300:
            message_id = _message_id(response)
            logger.info(
                "Email sent template=%s recipient=%s message_id=%s",
                template,
                mask_email(to_email),
                message_id,
            )
            return EmailResult(success=True, message_id=message_id)

        logger.error(
            "Email provider rejected template=%s recipient=%s status=%s",
            template,
            mask_email(to_email),
            response.status_code,
        )
        return EmailResult(success=False, error=f"Resend API error: {response.status_code}")


class LoggingEmailSender:
    """Dry-run sender used when no provider key is configured."""

    key = "log"

    async def send_email(self, to_email: str, template: str, data: Any) -> EmailResult:
        try:
            rendered = email_templates.render(template, data)
        except Exception as exc:
            return EmailResult(success=False, error=f"Render failed: {exc}")
        logger.info(
            "[DRY RUN] Email send skipped template=%s recipient=%s subject=%r",
            template,
            mask_email(to_email),
            rendered.subject,
        )
        return EmailResult(success=True, message_id=None)


def get_email_sender() -> EmailSender:
    """Resend when RESEND_API_KEY is set, otherwise the dry-run logger."""
    if settings.email_enabled:
        return ResendEmailSender(settings.RESEND_API_KEY, settings.EMAIL_FROM)
    logger.warning("RESEND_API_KEY not set - emails will be logged but not sent")
    return LoggingEmailSender()
