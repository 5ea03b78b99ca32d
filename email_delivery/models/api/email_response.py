"""
Email API response models.
Used by routes for output formatting.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from email_delivery.models.domain.email_domain import EmailResult, QueueEntry


class EmailResultResponse(BaseModel):
    """Outcome of a send request."""

    success: bool = Field(..., description="Whether a provider accepted the message")
    message_id: str | None = Field(None, description="Provider message id")
    provider: str | None = Field(None, description="Provider that handled the message")
    error: str | None = Field(None, description="Failure reason")
    timestamp: datetime | None = Field(None, description="When the attempt finished")

    @classmethod
    def from_result(cls, result: EmailResult) -> "EmailResultResponse":
        return cls(
            success=result.success,
            message_id=result.message_id,
            provider=result.provider,
            error=result.error,
            timestamp=result.timestamp,
        )


class BulkEmailResponse(BaseModel):
    total: int = Field(..., description="Number of recipients processed")
    succeeded: int = Field(..., description="Number of recipients delivered")
    results: dict[str, EmailResultResponse] = Field(..., description="Result per recipient")


class ScheduleEmailResponse(BaseModel):
    schedule_id: str = Field(..., description="Id used to cancel the scheduled email")


class QueueEntryResponse(BaseModel):
    queue_id: str
    to: list[str]
    subject: str
    retry_count: int
    enqueued_at: datetime

    @classmethod
    def from_entry(cls, entry: QueueEntry) -> "QueueEntryResponse":
        return cls(**entry.to_dict())


class QueueStatusResponse(BaseModel):
    size: int = Field(..., description="Messages waiting for retry")
    entries: list[QueueEntryResponse] = Field(default_factory=list)


class EmailStatusResponse(BaseModel):
    message_id: str
    record: dict[str, Any]
