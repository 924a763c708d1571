"""Delivery channels for notification digests.

If SMTP_HOST is not configured, digests are written to the log instead.
"""
from __future__ import annotations

import asyncio
import logging
import smtplib
import uuid
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Protocol

from cardflow.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DigestItem:
    """One notification as handed to a delivery channel."""

    notification_id: uuid.UUID
    action: str | None
    source_type: str
    source_id: uuid.UUID
    actor_id: uuid.UUID | None
    created_at: datetime
    payload: dict

    @property
    def summary(self) -> str:
        action = (self.action or "update").replace("_", " ")
        return f"{action} on {self.source_type} {self.source_id}"


class NotificationDeliverer(Protocol):
    async def deliver(self, recipient_id: uuid.UUID, items: list[DigestItem]) -> None: ...


class LoggingDeliverer:
    """Writes each digest to the log. Used when no mail server is configured."""

    async def deliver(self, recipient_id: uuid.UUID, items: list[DigestItem]) -> None:
        logger.info(
            "Digest for %s: %s",
            recipient_id,
            "; ".join(item.summary for item in items),
            extra={"recipient_id": str(recipient_id)},
        )


def _send_sync(to: str, subject: str, body_html: str, body_text: str) -> None:
    """Send an email synchronously (called from a thread).

    Raises on SMTP errors so the bundle is retried by the sweep.
    """
    msg = MIMEMultipart("alternative")
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to
    msg["Subject"] = subject

    msg.attach(MIMEText(body_text, "plain"))
    msg.attach(MIMEText(body_html, "html"))

    server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT)
    try:
        if settings.SMTP_TLS:
            server.starttls()
        if settings.SMTP_USER:
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        server.sendmail(settings.SMTP_FROM, [to], msg.as_string())
    finally:
        server.quit()
    logger.info("Email sent to %s: %s", to, subject)


def render_digest(items: list[DigestItem]) -> tuple[str, str, str]:
    """Return ``(subject, html, text)`` for a digest."""
    count = len(items)
    subject = f"[Cardflow] {count} update{'s' if count != 1 else ''}"

    lines = [f"- {item.created_at:%Y-%m-%d %H:%M} {item.summary}" for item in items]
    body_text = "Here is what happened:\n\n" + "\n".join(lines)
    body_text += f"\n\nOpen Cardflow: {settings.APP_BASE_URL}"

    rows = "".join(
        f"<li>{escape(f'{item.created_at:%Y-%m-%d %H:%M}')} {escape(item.summary)}</li>"
        for item in items
    )
    body_html = (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto">'
        '<h2 style="margin:0 0 8px">Cardflow</h2>'
        f"<ul>{rows}</ul>"
        f"<a href='{escape(settings.APP_BASE_URL)}'>Open Cardflow</a></div>"
    )
    return subject, body_html, body_text


class SmtpDigestDeliverer:
    def __init__(self, address_template: str | None = None) -> None:
        self.address_template = address_template or settings.SMTP_RECIPIENT_TEMPLATE

    def address_for(self, recipient_id: uuid.UUID) -> str:
        return self.address_template.format(recipient_id=recipient_id)

    async def deliver(self, recipient_id: uuid.UUID, items: list[DigestItem]) -> None:
        subject, body_html, body_text = render_digest(items)
        await asyncio.to_thread(
            _send_sync, self.address_for(recipient_id), subject, body_html, body_text
        )


def get_default_deliverer() -> NotificationDeliverer:
    if settings.SMTP_HOST:
        return SmtpDigestDeliverer()
    return LoggingDeliverer()
