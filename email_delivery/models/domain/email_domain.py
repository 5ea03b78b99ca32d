# email_delivery/models/domain/email_domain.py
"""
Email Domain Models
Validated message shape, provider results and queue/schedule records.
Used by the email service and provider adapters for internal processing.
"""

import base64
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import formataddr
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_SUBJECT_LENGTH = 998  # RFC 5322 practical line limit


def _check_address(value: str) -> str:
    if not EMAIL_PATTERN.match(value):
        raise ValueError(f"Invalid email address: {value!r}")
    return value


Address = Annotated[str, AfterValidator(_check_address)]


class NamedAddress(BaseModel):
    """Address with an optional display name."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    address: Address


EmailAddress = Address | NamedAddress
Recipients = EmailAddress | Annotated[list[EmailAddress], Field(min_length=1)]
CopyRecipients = EmailAddress | list[EmailAddress]


class EmailPriority(str, Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class EmailAttachment(BaseModel):
    """File attached to an outgoing message."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    filename: str
    content: bytes | str
    content_type: str | None = Field(default=None, alias="contentType")
    encoding: Literal["base64", "utf-8"] | None = None

    def content_bytes(self) -> bytes:
        """Raw attachment bytes regardless of how the content was supplied."""
        if isinstance(self.content, bytes):
            return self.content
        if self.encoding == "base64":
            return base64.b64decode(self.content)
        return self.content.encode("utf-8")

    def content_base64(self) -> str:
        return base64.b64encode(self.content_bytes()).decode("ascii")

    def mime_type(self) -> str:
        return self.content_type or "application/octet-stream"


class EmailMessage(BaseModel):
    """An outbound message. Instances are only created from valid input."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    to: Recipients
    cc: CopyRecipients | None = None
    bcc: CopyRecipients | None = None
    from_: EmailAddress | None = Field(default=None, alias="from")
    reply_to: EmailAddress | None = Field(default=None, alias="replyTo")
    subject: str = Field(min_length=1, max_length=MAX_SUBJECT_LENGTH)
    text: str | None = None
    html: str | None = None
    attachments: list[EmailAttachment] | None = None
    priority: EmailPriority = EmailPriority.NORMAL
    tags: list[str] | None = None
    metadata: dict[str, Any] | None = None
    template_id: str | None = Field(default=None, alias="templateId")
    template_data: dict[str, Any] | None = Field(default=None, alias="templateData")
    scheduled_for: datetime | None = Field(default=None, alias="scheduledFor")
    track_opens: bool = Field(default=True, alias="trackOpens")
    track_clicks: bool = Field(default=True, alias="trackClicks")

    def to_cache_dict(self) -> dict[str, Any]:
        """JSON-safe representation; binary attachments are stored base64 encoded."""
        data = self.model_dump(mode="json", exclude={"attachments"}, exclude_none=True)
        if self.attachments:
            data["attachments"] = [
                {
                    "filename": attachment.filename,
                    "content": attachment.content_base64(),
                    "content_type": attachment.content_type,
                    "encoding": "base64",
                }
                for attachment in self.attachments
            ]
        return data


def flatten_addresses(value: CopyRecipients | None) -> list[str]:
    """Flatten a recipient field into bare address strings."""
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    return [item.address if isinstance(item, NamedAddress) else item for item in items]


def format_address(value: EmailAddress | None) -> str | None:
    """Render an address as 'Name <addr>' when a display name is present."""
    if value is None:
        return None
    if isinstance(value, NamedAddress):
        if value.name:
            return formataddr((value.name, value.address))
        return value.address
    return value


def format_addresses(value: CopyRecipients | None) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    return [format_address(item) for item in items]


@dataclass(frozen=True, slots=True)
class EmailResult:
    """Outcome of one delivery attempt."""

    success: bool
    message_id: str | None = None
    provider: str | None = None
    error: str | None = None
    timestamp: datetime | None = None

    @classmethod
    def ok(cls, provider: str, message_id: str | None) -> "EmailResult":
        return cls(
            success=True,
            message_id=message_id,
            provider=provider,
            timestamp=datetime.now(UTC),
        )

    @classmethod
    def failed(cls, error: str, provider: str | None = None) -> "EmailResult":
        return cls(success=False, error=error, provider=provider, timestamp=datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message_id": self.message_id,
            "provider": self.provider,
            "error": self.error,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass(slots=True)
class QueueEntry:
    """A message waiting in the in-process retry queue."""

    queue_id: str
    message: EmailMessage
    retry_count: int = 0
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue_id": self.queue_id,
            "to": flatten_addresses(self.message.to),
            "subject": self.message.subject,
            "retry_count": self.retry_count,
            "enqueued_at": self.enqueued_at.isoformat(),
        }


@dataclass(slots=True)
class ScheduledEmail:
    """A deferred send persisted in the cache until an external dispatcher picks it up."""

    schedule_id: str
    message: EmailMessage
    send_at: datetime
    status: str = "scheduled"

    def to_cache_dict(self) -> dict[str, Any]:
        data = self.message.to_cache_dict()
        data["schedule_id"] = self.schedule_id
        data["scheduled_for"] = self.send_at.isoformat()
        data["status"] = self.status
        return data
