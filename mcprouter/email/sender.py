"""Verification email delivery."""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

from mcprouter.exceptions import MCPRouterError

logger = structlog.get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailDeliveryError(MCPRouterError):
    status_code = 502
    default_message = "Failed to send verification email"


class EmailSender(Protocol):
    async def send(self, to: str, url: str) -> None: ...


def _render(url: str) -> tuple[str, str]:
    subject = "Verify your email address"
    html = (
        "<p>Click the link below to verify your email address for MCP Router.</p>"
        f'<p><a href="{url}">Verify email</a></p>'
        "<p>This link expires in 15 minutes. If you did not request it, ignore this email.</p>"
    )
    return subject, html


class LoggingEmailSender:
    """Development sender: records the link instead of delivering it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, to: str, url: str) -> None:
        self.sent.append((to, url))
        logger.info("verification_email_logged", to=to)


class ResendEmailSender:
    """Delivers verification links through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._from = sender
        self._client = client
        self._timeout = timeout

    async def send(self, to: str, url: str) -> None:
        subject, html = _render(url)
        payload = {"from": self._from, "to": [to], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            if self._client is not None:
                resp = await self._client.post(RESEND_API_URL, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(RESEND_API_URL, json=payload, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("verification_email_failed", to=to, error=str(exc))
            raise EmailDeliveryError from exc
        logger.info("verification_email_sent", to=to)
