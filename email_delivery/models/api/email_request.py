"""
Email API request models.
Used by routes for input validation.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from email_delivery.models.domain.email_domain import (
    CopyRecipients,
    EmailAddress,
    EmailAttachment,
    EmailPriority,
    Recipients,
)


class SendEmailRequest(BaseModel):
    """Request for sending a single email. Subject may be omitted when a template supplies it."""

    model_config = ConfigDict(populate_by_name=True)

    to: Recipients = Field(..., description="Recipient address(es)")
    cc: CopyRecipients | None = Field(default=None, description="CC recipients")
    bcc: CopyRecipients | None = Field(default=None, description="BCC recipients")
    from_: EmailAddress | None = Field(default=None, alias="from", description="Sender override")
    reply_to: EmailAddress | None = Field(default=None, alias="replyTo", description="Reply-to address")
    subject: str | None = Field(default=None, description="Email subject")
    text: str | None = Field(default=None, description="Plain text body")
    html: str | None = Field(default=None, description="HTML body")
    attachments: list[EmailAttachment] | None = Field(default=None, description="Attachments")
    priority: EmailPriority = Field(default=EmailPriority.NORMAL, description="Message priority")
    tags: list[str] | None = Field(default=None, description="Provider categories")
    metadata: dict[str, Any] | None = Field(default=None, description="Custom provider arguments")
    template_id: str | None = Field(default=None, alias="templateId", description="Template id")
    template_data: dict[str, Any] | None = Field(
        default=None, alias="templateData", description="Template variables"
    )
    track_opens: bool = Field(default=True, alias="trackOpens", description="Add open tracking pixel")
    track_clicks: bool = Field(default=True, alias="trackClicks", description="Enable click tracking")

    def to_options(self) -> dict[str, Any]:
        """Options dict accepted by EmailService.send."""
        return self.model_dump(by_alias=False, exclude_none=True)


class BulkEmailRequest(BaseModel):
    """Request for sending one templated email to many recipients."""

    recipients: list[str] = Field(..., min_length=1, description="Recipient addresses")
    template: str = Field(..., min_length=1, description="Template id")
    template_data: dict[str, Any] = Field(default_factory=dict, description="Shared template variables")


class ScheduleEmailRequest(BaseModel):
    """Request for scheduling an email for later delivery."""

    message: SendEmailRequest = Field(..., description="Message to deliver")
    send_at: datetime = Field(..., description="When the message should be sent")
