"""Email transport implementations for billing notifications."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Any, Callable, List, MutableMapping, Protocol
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger


class EmailDeliveryError(RuntimeError):
    """Raised when the transport refuses or fails to send a message."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class EmailBackend(Protocol):
    """Single-recipient transactional email transport."""

    async def send_email(
        self,
        *,
        region: str,
        sender: str,
        recipient: str,
        subject: str,
        body_html: str,
        body_text: str,
        reply_to: str | None = None,
        configuration_set: str | None = None,
    ) -> str:
        """Send the message and return the provider message id."""


class SesEmailBackend:
    """Amazon SES v2 backend; one client per sending region."""

    def __init__(self, *, client_factory: Callable[[str], Any] | None = None) -> None:
        self._client_factory = client_factory
        self._clients: MutableMapping[str, Any] = {}

    async def send_email(
        self,
        *,
        region: str,
        sender: str,
        recipient: str,
        subject: str,
        body_html: str,
        body_text: str,
        reply_to: str | None = None,
        configuration_set: str | None = None,
    ) -> str:
        body: dict[str, Any] = {}
        if body_html:
            body["Html"] = {"Data": body_html, "Charset": "UTF-8"}
        if body_text:
            body["Text"] = {"Data": body_text, "Charset": "UTF-8"}
        request: dict[str, Any] = {
            "FromEmailAddress": sender,
            "Destination": {"ToAddresses": [recipient]},
            "ReplyToAddresses": [reply_to] if reply_to else [],
            "Content": {
                "Simple": {
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": body,
                }
            },
        }
        if configuration_set:
            request["ConfigurationSetName"] = configuration_set

        client = self._get_client(region)
        try:
            response = await asyncio.to_thread(client.send_email, **request)
        except ClientError as exc:
            error = exc.response.get("Error", {})
            code = error.get("Code")
            raise EmailDeliveryError(f"{code}: {error.get('Message') or exc}", code=code) from exc
        except BotoCoreError as exc:
            raise EmailDeliveryError(str(exc)) from exc

        message_id = str(response.get("MessageId") or "")
        logger.info("SES message accepted", message_id=message_id, recipient=recipient, region=region)
        return message_id

    def _get_client(self, region: str) -> Any:
        client = self._clients.get(region)
        if client is None:
            client = self._client_factory(region) if self._client_factory else boto3.client("sesv2", region_name=region)
            self._clients[region] = client
        return client


@dataclass
class InMemoryEmailBackend:
    """Test backend storing outbound messages in memory."""

    sent_messages: List[EmailMessage] = field(default_factory=list)
    failure: EmailDeliveryError | None = None

    async def send_email(
        self,
        *,
        region: str,
        sender: str,
        recipient: str,
        subject: str,
        body_html: str,
        body_text: str,
        reply_to: str | None = None,
        configuration_set: str | None = None,
    ) -> str:
        if self.failure is not None:
            raise self.failure

        message = EmailMessage()
        message_id = f"local-{uuid4().hex[:12]}"
        message["Message-Id"] = message_id
        message["From"] = sender
        message["To"] = recipient
        message["Subject"] = subject
        message["X-SES-Region"] = region
        if reply_to:
            message["Reply-To"] = reply_to
        if configuration_set:
            message["X-SES-Configuration-Set"] = configuration_set
        message.set_content(body_text)
        if body_html:
            message.add_alternative(body_html, subtype="html")
        self.sent_messages.append(message)
        return message_id


__all__ = ["EmailBackend", "EmailDeliveryError", "InMemoryEmailBackend", "SesEmailBackend"]
