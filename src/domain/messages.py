"""Lifecycle email content. Each builder returns (subject, body_html)."""

import html
import logging

from .exceptions import NotificationError
from .ports import Notifier, RecoveryMode

logger = logging.getLogger(__name__)

_SIGNATURE = (
    "This is an automatic email. Please don't respond.<br><br>"
    "With best regards;<br>"
    "Sado Team."
)


def registration_code(code: str, resend: bool = False) -> tuple[str, str]:
    subject = "Resend Registration Confirmation Code" if resend else "Registration Confirmation Code"
    body = f"<p>Here is your registration code: <b>{html.escape(code)}</b></p><p>{_SIGNATURE}</p>"
    return subject, body


def invitation(code: str) -> tuple[str, str]:
    body = (
        "<p>You have been added to a Sado company. Use this code to confirm your email "
        f"and choose a password: <b>{html.escape(code)}</b></p><p>{_SIGNATURE}</p>"
    )
    return "You have been invited to Sado", body


def recovery(mode: RecoveryMode, code: str | None = None) -> tuple[str, str]:
    if mode is RecoveryMode.PASSWORD_CHANGED:
        body = (
            "<p>Your password has been changed successfully.<br>"
            "If you have not changed your password, please contact us.</p>"
            f"<p>{_SIGNATURE}</p>"
        )
        return "Changed the Password", body

    if code is None:
        raise ValueError("recovery code required for mode %s" % mode.name)
    subject = "Password Recovery" if mode is RecoveryMode.FORGOTTEN else "Resend Password Confirmation Code"
    body = f"<p>Here is your password recovery code: <b>{html.escape(code)}</b></p><p>{_SIGNATURE}</p>"
    return subject, body


def welcome(first_name: str) -> tuple[str, str]:
    body = f"<p>Welcome to Sado, {html.escape(first_name)}!</p><p>{_SIGNATURE}</p>"
    return "Welcome to Sado!", body


def deliver(notifier: Notifier, to: str, message: tuple[str, str]) -> bool:
    """
    Send a message after the triggering mutation committed.

    Delivery failure is logged and reported, never raised: the stored
    state it announces is already durable.
    """
    subject, body = message
    try:
        notifier.send(to, subject, body)
    except NotificationError as exc:
        logger.warning("NotificationError sending %r: %s", subject, exc)
        return False
    return True
