"""
Resend email sender adapter - Implements Notifier protocol.

Delivers HTML email through the Resend API. Each call runs in a small
thread pool so a slow API response cannot hold the request past the
configured timeout.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError

import resend
from resend.exceptions import ResendError

from src.domain.exceptions import NotificationError

logger = logging.getLogger(__name__)

_email_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="email_sender")


class ResendEmailSender:
    """
    Implements Notifier protocol via the resend client.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        api_key: str,
        sender: str,
        sender_name: str = "",
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._from = f"{sender_name} <{sender}>" if sender_name else sender
        self._timeout = timeout

    def send(self, to: str, subject: str, body_html: str) -> None:
        """
        Deliver one HTML message.

        Raises:
            NotificationError: On API rejection, network failure or timeout
        """
        resend.api_key = self._api_key
        params = {
            "from": self._from,
            "to": [to],
            "subject": subject,
            "html": body_html,
        }

        try:
            future = _email_executor.submit(resend.Emails.send, params)
            future.result(timeout=self._timeout)
        except FuturesTimeoutError as exc:
            logger.error("Email %r timed out after %.1fs", subject, self._timeout)
            raise NotificationError(subject) from exc
        except (ResendError, OSError) as exc:
            logger.error("Email %r failed: %s", subject, type(exc).__name__)
            raise NotificationError(subject) from exc

        logger.info("Email %r sent", subject)
