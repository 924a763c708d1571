"""Unit tests for digest rendering and delivery channels.

These tests do NOT require a database; they mock smtplib and settings.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from cardflow.services.email_service import (
    DigestItem,
    LoggingDeliverer,
    SmtpDigestDeliverer,
    get_default_deliverer,
    render_digest,
)


def _item(action="card_closed", source_type="card"):
    return DigestItem(
        notification_id=uuid.uuid4(),
        action=action,
        source_type=source_type,
        source_id=uuid.uuid4(),
        actor_id=uuid.uuid4(),
        created_at=datetime(2026, 1, 1, 9, 30, tzinfo=timezone.utc),
        payload={},
    )


class TestRenderDigest:
    def test_subject_counts_items(self):
        subject, _html, _text = render_digest([_item(), _item()])
        assert subject == "[Cardflow] 2 updates"

    def test_single_item_subject(self):
        subject, _html, _text = render_digest([_item()])
        assert subject == "[Cardflow] 1 update"

    def test_bodies_list_each_item(self):
        items = [_item("card_closed"), _item("comment_created", "comment")]
        _subject, html, text = render_digest(items)
        assert "card closed on card" in text
        assert "comment created on comment" in text
        assert html.count("<li>") == 2

    def test_missing_action_falls_back(self):
        assert _item(action=None).summary.startswith("update on card")


class TestSmtpDigestDeliverer:
    async def test_sends_to_templated_address(self):
        recipient = uuid.uuid4()
        smtp = MagicMock()
        with (
            patch("cardflow.services.email_service.settings") as mock_settings,
            patch("cardflow.services.email_service.smtplib.SMTP", return_value=smtp) as smtp_cls,
        ):
            mock_settings.SMTP_HOST = "smtp.example.com"
            mock_settings.SMTP_PORT = 587
            mock_settings.SMTP_TLS = True
            mock_settings.SMTP_USER = "user"
            mock_settings.SMTP_PASSWORD = "pass"
            mock_settings.SMTP_FROM = "noreply@example.com"
            mock_settings.APP_BASE_URL = "http://localhost"

            deliverer = SmtpDigestDeliverer("{recipient_id}@users.example.com")
            await deliverer.deliver(recipient, [_item()])

        smtp_cls.assert_called_once_with("smtp.example.com", 587)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("user", "pass")
        args = smtp.sendmail.call_args[0]
        assert args[1] == [f"{recipient}@users.example.com"]
        smtp.quit.assert_called_once()

    async def test_smtp_failure_propagates(self):
        smtp = MagicMock()
        smtp.sendmail.side_effect = OSError("connection reset")
        with (
            patch("cardflow.services.email_service.settings") as mock_settings,
            patch("cardflow.services.email_service.smtplib.SMTP", return_value=smtp),
        ):
            mock_settings.SMTP_TLS = False
            mock_settings.SMTP_USER = ""
            mock_settings.SMTP_FROM = "noreply@example.com"
            mock_settings.APP_BASE_URL = "http://localhost"
            with pytest.raises(OSError):
                await SmtpDigestDeliverer("{recipient_id}@x").deliver(uuid.uuid4(), [_item()])
        smtp.starttls.assert_not_called()
        smtp.quit.assert_called_once()


class TestDefaultDeliverer:
    def test_logging_when_smtp_unset(self):
        with patch("cardflow.services.email_service.settings") as mock_settings:
            mock_settings.SMTP_HOST = ""
            assert isinstance(get_default_deliverer(), LoggingDeliverer)

    def test_smtp_when_configured(self):
        with patch("cardflow.services.email_service.settings") as mock_settings:
            mock_settings.SMTP_HOST = "smtp.example.com"
            mock_settings.SMTP_RECIPIENT_TEMPLATE = "{recipient_id}@x"
            assert isinstance(get_default_deliverer(), SmtpDigestDeliverer)

    async def test_logging_deliverer_logs(self, caplog):
        recipient = uuid.uuid4()
        with caplog.at_level("INFO", logger="cardflow.services.email_service"):
            await LoggingDeliverer().deliver(recipient, [_item()])
        assert str(recipient) in caplog.text
