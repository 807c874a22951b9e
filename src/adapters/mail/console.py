"""
Console email sender adapter - Implements Notifier protocol.

This module provides a console-based implementation of the domain's
notifier port, logging lifecycle emails to stdout for development.
"""

import logging
import re

logger = logging.getLogger(__name__)

_TAGS = re.compile(r"<[^>]+>")


class ConsoleEmailSender:
    """
    Implements Notifier protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints messages (codes included) to stdout.
    """

    def send(self, to: str, subject: str, body_html: str) -> None:
        """
        Log the message to console (simulates email delivery).

        The body is logged with its HTML tags stripped, at INFO level
        to be visible in docker-compose logs.

        Args:
            to: Recipient email address (normalized by domain layer)
            subject: Message subject
            body_html: HTML body
        """
        text = " ".join(_TAGS.sub(" ", body_html).split())
        logger.info("[EMAIL] To: %s Subject: %s Body: %s", to, subject, text)
