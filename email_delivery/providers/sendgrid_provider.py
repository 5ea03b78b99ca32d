"""
SendGrid provider using the v3 Mail Send REST API.
"""

from typing import Any

import httpx

from email_delivery.config import Settings, settings
from email_delivery.infrastructure.observability.logging import get_logger
from email_delivery.models.domain.email_domain import (
    CopyRecipients,
    EmailAddress,
    EmailMessage,
    EmailPriority,
    NamedAddress,
)
from email_delivery.providers.base import EmailProvider, EmailProviderError

logger = get_logger(__name__)

REQUEST_TIMEOUT = 15.0
MAX_CATEGORIES = 10  # SendGrid rejects more than 10 categories per message

PRIORITY_HEADERS = {
    EmailPriority.HIGH: {"X-Priority": "1", "Importance": "high"},
    EmailPriority.LOW: {"X-Priority": "5", "Importance": "low"},
}


def _sendgrid_address(value: EmailAddress) -> dict[str, str]:
    if isinstance(value, NamedAddress):
        entry = {"email": value.address}
        if value.name:
            entry["name"] = value.name
        return entry
    return {"email": value}


def _sendgrid_addresses(value: CopyRecipients | None) -> list[dict[str, str]]:
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    return [_sendgrid_address(item) for item in items]


class SendGridProvider(EmailProvider):
    name = "SendGrid"
    priority = 1

    def __init__(
        self,
        config: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        config = config or settings
        self.api_key = config.SENDGRID_API_KEY or ""
        self.from_email = config.SENDGRID_FROM_EMAIL or config.DEFAULT_FROM_EMAIL
        self.api_url = config.SENDGRID_API_URL
        self._http_client = http_client

    async def is_available(self) -> bool:
        return bool(self.api_key) and "your-" not in self.api_key

    def build_payload(self, message: EmailMessage) -> dict[str, Any]:
        """Translate a message into the SendGrid v3 request body."""
        personalization: dict[str, Any] = {"to": _sendgrid_addresses(message.to)}
        if message.cc:
            personalization["cc"] = _sendgrid_addresses(message.cc)
        if message.bcc:
            personalization["bcc"] = _sendgrid_addresses(message.bcc)

        # text/plain must precede text/html
        content = []
        if message.text:
            content.append({"type": "text/plain", "value": message.text})
        if message.html:
            content.append({"type": "text/html", "value": message.html})

        payload: dict[str, Any] = {
            "personalizations": [personalization],
            "from": _sendgrid_address(message.from_ or self.from_email),
            "subject": message.subject,
            "content": content,
            "tracking_settings": {
                "click_tracking": {"enable": message.track_clicks},
                "open_tracking": {"enable": message.track_opens},
            },
        }

        if message.reply_to:
            payload["reply_to"] = _sendgrid_address(message.reply_to)

        if message.attachments:
            payload["attachments"] = [
                {
                    "content": attachment.content_base64(),
                    "filename": attachment.filename,
                    "type": attachment.mime_type(),
                    "disposition": "attachment",
                }
                for attachment in message.attachments
            ]

        headers = PRIORITY_HEADERS.get(message.priority)
        if headers:
            payload["headers"] = dict(headers)

        if message.tags:
            payload["categories"] = message.tags[:MAX_CATEGORIES]

        if message.metadata:
            payload["custom_args"] = {key: str(value) for key, value in message.metadata.items()}

        return payload

    async def _deliver(self, message: EmailMessage) -> str | None:
        payload = self.build_payload(message)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        if self._http_client is not None:
            response = await self._http_client.post(self.api_url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)

        if response.status_code >= 400:
            raise EmailProviderError(
                f"SendGrid API error {response.status_code}: {self._error_detail(response)}",
                provider=self.name,
                code=str(response.status_code),
            )

        message_id = response.headers.get("x-message-id")
        logger.debug("SendGrid accepted message", status_code=response.status_code, message_id=message_id)
        return message_id

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            errors = response.json().get("errors") or []
            if errors:
                return "; ".join(str(error.get("message", error)) for error in errors)
        except (ValueError, AttributeError):
            pass
        return response.text[:200] or "unknown error"
