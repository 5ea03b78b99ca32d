"""
Amazon SES provider.

Uses SendEmail for plain messages and SendRawEmail when attachments are
present. boto3 is blocking, so calls run in a worker thread.
"""

import asyncio
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from email_delivery.config import Settings, settings
from email_delivery.infrastructure.observability.logging import get_logger
from email_delivery.models.domain.email_domain import (
    EmailMessage,
    flatten_addresses,
    format_address,
)
from email_delivery.providers.base import EmailProvider, EmailProviderError
from email_delivery.providers.mime import build_mime_message

logger = get_logger(__name__)

CHARSET = "UTF-8"


class SESProvider(EmailProvider):
    name = "AWS SES"
    priority = 2

    def __init__(self, config: Settings | None = None, client: Any = None):
        config = config or settings
        self.region_name = config.AWS_SES_REGION
        self.default_sender = config.DEFAULT_FROM_EMAIL
        self._client = client

        if self._client is None and config.AWS_SES_ACCESS_KEY:
            self._client = boto3.client(
                "ses",
                region_name=self.region_name,
                aws_access_key_id=config.AWS_SES_ACCESS_KEY,
                aws_secret_access_key=config.AWS_SES_SECRET_KEY,
            )

    async def is_available(self) -> bool:
        return self._client is not None

    def build_send_email_kwargs(self, message: EmailMessage) -> dict[str, Any]:
        """Request parameters for SendEmail."""
        destination: dict[str, list[str]] = {"ToAddresses": flatten_addresses(message.to)}
        if message.cc:
            destination["CcAddresses"] = flatten_addresses(message.cc)
        if message.bcc:
            destination["BccAddresses"] = flatten_addresses(message.bcc)

        body: dict[str, Any] = {}
        if message.text:
            body["Text"] = {"Data": message.text, "Charset": CHARSET}
        if message.html:
            body["Html"] = {"Data": message.html, "Charset": CHARSET}

        kwargs: dict[str, Any] = {
            "Source": format_address(message.from_) or self.default_sender,
            "Destination": destination,
            "Message": {
                "Subject": {"Data": message.subject, "Charset": CHARSET},
                "Body": body,
            },
        }

        if message.reply_to:
            kwargs["ReplyToAddresses"] = [format_address(message.reply_to)]

        return kwargs

    def build_send_raw_email_kwargs(self, message: EmailMessage) -> dict[str, Any]:
        """Request parameters for SendRawEmail (attachments)."""
        mime = build_mime_message(message, self.default_sender)
        destinations = (
            flatten_addresses(message.to)
            + flatten_addresses(message.cc)
            + flatten_addresses(message.bcc)
        )
        return {
            "Source": mime["From"],
            "Destinations": destinations,
            "RawMessage": {"Data": mime.as_bytes()},
        }

    async def _deliver(self, message: EmailMessage) -> str | None:
        try:
            if message.attachments:
                kwargs = self.build_send_raw_email_kwargs(message)
                response = await asyncio.to_thread(self._client.send_raw_email, **kwargs)
            else:
                kwargs = self.build_send_email_kwargs(message)
                response = await asyncio.to_thread(self._client.send_email, **kwargs)

        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            error_message = e.response["Error"]["Message"]
            raise EmailProviderError(
                f"SES send failed: {error_message}", provider=self.name, code=error_code
            ) from e
        except BotoCoreError as e:
            raise EmailProviderError(f"SES send failed: {e}", provider=self.name) from e

        message_id = response.get("MessageId")
        logger.debug("SES accepted message", message_id=message_id, raw=bool(message.attachments))
        return message_id
