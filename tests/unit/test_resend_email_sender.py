"""
Unit tests for ResendEmailSender adapter.

Tests verify:
- Messages are handed to the Resend API with the configured sender
- API, network and timeout failures surface as NotificationError
- get_notifier falls back to the console sender without an API key
"""

import logging
import time

import pytest
import resend
from resend.exceptions import ResendError

from src.adapters.mail import ConsoleEmailSender, ResendEmailSender
from src.api.dependencies import get_notifier
from src.config.settings import get_settings
from src.domain.exceptions import NotificationError


class RejectedByApi(ResendError):
    def __init__(self) -> None:
        Exception.__init__(self, "rejected")


@pytest.fixture
def sent(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    """Capture the params passed to resend.Emails.send."""
    calls: list[dict] = []
    monkeypatch.setattr(resend, "api_key", None)
    monkeypatch.setattr(resend.Emails, "send", lambda params: calls.append(params) or {"id": "e1"})
    return calls


@pytest.fixture
def sender() -> ResendEmailSender:
    return ResendEmailSender(api_key="re_test", sender="no-reply@sado.local", sender_name="Sado")


class TestSend:
    def test_hands_message_to_api(self, sender: ResendEmailSender, sent: list[dict]) -> None:
        sender.send("user@example.com", "Welcome to Sado!", "<p>Hello</p>")

        assert sent == [
            {
                "from": "Sado <no-reply@sado.local>",
                "to": ["user@example.com"],
                "subject": "Welcome to Sado!",
                "html": "<p>Hello</p>",
            }
        ]
        assert resend.api_key == "re_test"

    def test_bare_sender_without_name(self, sent: list[dict]) -> None:
        ResendEmailSender(api_key="re_test", sender="no-reply@sado.local").send(
            "user@example.com", "Subject", "<p>x</p>"
        )
        assert sent[0]["from"] == "no-reply@sado.local"

    def test_success_is_logged(
        self, sender: ResendEmailSender, sent: list[dict], caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO):
            sender.send("user@example.com", "Welcome to Sado!", "<p>Hello</p>")
        assert "Email 'Welcome to Sado!' sent" in caplog.text


class TestFailures:
    @pytest.mark.parametrize("error", [RejectedByApi(), ConnectionRefusedError("refused")])
    def test_failure_becomes_notification_error(
        self, sender: ResendEmailSender, monkeypatch: pytest.MonkeyPatch, error: Exception
    ) -> None:
        def fail(params: dict) -> None:
            raise error

        monkeypatch.setattr(resend.Emails, "send", fail)

        with pytest.raises(NotificationError) as exc_info:
            sender.send("user@example.com", "Subject", "<p>x</p>")
        assert exc_info.value.__cause__ is error

    def test_slow_api_times_out(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(resend.Emails, "send", lambda params: time.sleep(0.5))
        sender = ResendEmailSender(api_key="re_test", sender="no-reply@sado.local", timeout=0.01)

        with pytest.raises(NotificationError):
            sender.send("user@example.com", "Subject", "<p>x</p>")

    def test_failure_does_not_log_recipient(
        self,
        sender: ResendEmailSender,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        def fail(params: dict) -> None:
            raise RejectedByApi()

        monkeypatch.setattr(resend.Emails, "send", fail)

        with caplog.at_level(logging.ERROR), pytest.raises(NotificationError):
            sender.send("user@example.com", "Subject", "<p>x</p>")
        assert "user@example.com" not in caplog.text
        assert "RejectedByApi" in caplog.text


class TestGetNotifier:
    @pytest.fixture(autouse=True)
    def fresh_settings(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("EMAIL_BACKEND", raising=False)
        monkeypatch.delenv("RESEND_API_KEY", raising=False)
        get_settings.cache_clear()
        get_notifier.cache_clear()
        yield
        get_settings.cache_clear()
        get_notifier.cache_clear()

    def test_console_by_default(self) -> None:
        assert isinstance(get_notifier(), ConsoleEmailSender)

    def test_resend_without_key_falls_back_to_console(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("EMAIL_BACKEND", "resend")

        with caplog.at_level(logging.WARNING):
            notifier = get_notifier()

        assert isinstance(notifier, ConsoleEmailSender)
        assert "RESEND_API_KEY not set" in caplog.text

    def test_resend_with_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EMAIL_BACKEND", "resend")
        monkeypatch.setenv("RESEND_API_KEY", "re_test")

        assert isinstance(get_notifier(), ResendEmailSender)
