"""
Outbound email providers.

Each provider wraps one transport behind the EmailProvider capability:
- SendGridProvider (priority 1)
- SESProvider (priority 2)
- SMTPProvider (priority 3)
"""

from email_delivery.config import Settings
from email_delivery.providers.base import EmailProvider, EmailProviderError
from email_delivery.providers.sendgrid_provider import SendGridProvider
from email_delivery.providers.ses_provider import SESProvider
from email_delivery.providers.smtp_provider import SMTPProvider


def default_providers(config: Settings) -> list[EmailProvider]:
    """All built-in providers configured from settings."""
    return [SendGridProvider(config), SESProvider(config), SMTPProvider(config)]


__all__ = [
    "EmailProvider",
    "EmailProviderError",
    "SESProvider",
    "SMTPProvider",
    "SendGridProvider",
    "default_providers",
]
