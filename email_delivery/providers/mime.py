"""
MIME message construction shared by the SMTP and raw SES transports.
"""

from email.message import EmailMessage as MIMEMessage
from email.utils import make_msgid

from email_delivery.models.domain.email_domain import (
    EmailMessage,
    EmailPriority,
    format_address,
    format_addresses,
)

X_PRIORITY = {
    EmailPriority.HIGH: "1 (Highest)",
    EmailPriority.NORMAL: "3 (Normal)",
    EmailPriority.LOW: "5 (Lowest)",
}


def build_mime_message(message: EmailMessage, default_sender: str) -> MIMEMessage:
    """
    Build a multipart MIME message.

    Bcc recipients are deliberately left out of the headers; transports pass
    them as envelope recipients instead.
    """
    mime = MIMEMessage()
    mime["Subject"] = message.subject
    mime["From"] = format_address(message.from_) or default_sender
    mime["To"] = ", ".join(format_addresses(message.to))
    if message.cc:
        mime["Cc"] = ", ".join(format_addresses(message.cc))
    if message.reply_to:
        mime["Reply-To"] = format_address(message.reply_to)
    mime["X-Priority"] = X_PRIORITY[message.priority]
    mime["Message-ID"] = make_msgid()

    mime.set_content(message.text or "")
    if message.html:
        mime.add_alternative(message.html, subtype="html")

    for attachment in message.attachments or []:
        maintype, _, subtype = attachment.mime_type().partition("/")
        mime.add_attachment(
            attachment.content_bytes(),
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )

    return mime
