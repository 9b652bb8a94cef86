"""
Notification channels - ``send(to, subject, body)``.

Two channels ship with the package:

- ``SesNotificationChannel``: plain-text email through the boto3 ``ses``
  client.
- ``LoggingNotificationChannel``: writes the message to the log and keeps
  it in memory. Used when no sender identity is configured, by the CLI and
  by tests.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from botocore.exceptions import BotoCoreError, ClientError

from orderstream.core.errors import PermanentError, RetryableError
from orderstream.core.logging import get_logger

logger = get_logger(__name__)

# SES error codes that will not succeed on a retry
_PERMANENT_CODES = frozenset(
    {
        "MessageRejected",
        "MailFromDomainNotVerifiedException",
        "ConfigurationSetDoesNotExistException",
        "AccountSendingPausedException",
        "InvalidParameterValue",
        "ValidationError",
    }
)


@runtime_checkable
class NotificationChannel(Protocol):
    def send(self, to: str, subject: str, body: str) -> str | None:
        """Deliver one message; returns a provider message id if any."""
        ...


@dataclass(frozen=True)
class SentMessage:
    to: str
    subject: str
    body: str
    sent_at: datetime


class LoggingNotificationChannel:
    """Logs every message and keeps a copy."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sent: list[SentMessage] = []

    @property
    def sent(self) -> list[SentMessage]:
        with self._lock:
            return list(self._sent)

    def send(self, to: str, subject: str, body: str) -> str | None:
        message = SentMessage(to=to, subject=subject, body=body, sent_at=datetime.now(UTC))
        with self._lock:
            self._sent.append(message)
        logger.info("notification.logged", to=to, subject=subject)
        return None


class SesNotificationChannel:
    """Plain-text email via SES.

    Args:
        client: boto3 ``ses`` client
        sender: Verified source address
    """

    def __init__(self, client: Any, sender: str) -> None:
        if not sender:
            raise ValueError("sender must be non-empty")
        self._client = client
        self._sender = sender

    def send(self, to: str, subject: str, body: str) -> str | None:
        try:
            response = self._client.send_email(
                Source=self._sender,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
                },
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code in _PERMANENT_CODES:
                raise PermanentError(f"SES rejected message to {to}: {code}", cause=e) from e
            raise RetryableError(f"SES send failed ({code})", cause=e) from e
        except BotoCoreError as e:
            raise RetryableError(f"SES transport error: {e}", cause=e) from e

        message_id = response.get("MessageId")
        logger.info("notification.sent", to=to, subject=subject, message_id=message_id)
        return message_id


__all__ = [
    "NotificationChannel",
    "SentMessage",
    "LoggingNotificationChannel",
    "SesNotificationChannel",
]
