"""
SMTP provider (Gmail or a custom relay) built on aiosmtplib.

Availability performs a real connect + login, so the verification result is
cached for SMTP_VERIFY_CACHE_SECONDS to keep it off the hot path.
"""

import time
from dataclasses import dataclass

import aiosmtplib

from email_delivery.config import Settings, settings
from email_delivery.infrastructure.observability.logging import get_logger
from email_delivery.models.domain.email_domain import EmailMessage, flatten_addresses
from email_delivery.providers.base import EmailProvider, EmailProviderError
from email_delivery.providers.mime import build_mime_message

logger = get_logger(__name__)

GMAIL_HOST = "smtp.gmail.com"
GMAIL_PORT = 465
SMTP_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class SMTPTransportConfig:
    hostname: str
    port: int
    username: str | None
    password: str | None
    use_tls: bool

    @classmethod
    def from_settings(cls, config: Settings) -> "SMTPTransportConfig | None":
        if config.GMAIL_USER and config.GMAIL_PASS:
            return cls(
                hostname=GMAIL_HOST,
                port=GMAIL_PORT,
                username=config.GMAIL_USER,
                password=config.GMAIL_PASS,
                use_tls=True,
            )
        if config.SMTP_HOST:
            return cls(
                hostname=config.SMTP_HOST,
                port=config.SMTP_PORT,
                username=config.SMTP_USER,
                password=config.SMTP_PASS,
                use_tls=config.SMTP_SECURE,
            )
        return None


class SMTPProvider(EmailProvider):
    name = "SMTP"
    priority = 3

    def __init__(self, config: Settings | None = None):
        config = config or settings
        self.transport = SMTPTransportConfig.from_settings(config)
        self.default_sender = config.GMAIL_USER or config.DEFAULT_FROM_EMAIL
        self.verify_cache_seconds = config.SMTP_VERIFY_CACHE_SECONDS
        self._verified: bool | None = None
        self._verified_at = 0.0

    async def is_available(self) -> bool:
        if self.transport is None:
            return False

        now = time.monotonic()
        if self._verified is not None and now - self._verified_at < self.verify_cache_seconds:
            return self._verified

        self._verified = await self._verify()
        self._verified_at = now
        return self._verified

    async def _verify(self) -> bool:
        """Connect and authenticate without sending anything."""
        transport = self.transport
        smtp = aiosmtplib.SMTP(
            hostname=transport.hostname,
            port=transport.port,
            use_tls=transport.use_tls,
            timeout=SMTP_TIMEOUT_SECONDS,
        )
        try:
            async with smtp:
                if transport.username and transport.password:
                    await smtp.login(transport.username, transport.password)
            return True
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.warning(
                "SMTP verification failed",
                host=transport.hostname,
                port=transport.port,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def _deliver(self, message: EmailMessage) -> str | None:
        transport = self.transport
        if transport is None:
            raise EmailProviderError("SMTP not configured", provider=self.name)

        mime = build_mime_message(message, self.default_sender)
        recipients = (
            flatten_addresses(message.to)
            + flatten_addresses(message.cc)
            + flatten_addresses(message.bcc)
        )

        try:
            await aiosmtplib.send(
                mime,
                sender=mime["From"],
                recipients=recipients,
                hostname=transport.hostname,
                port=transport.port,
                username=transport.username,
                password=transport.password,
                use_tls=transport.use_tls,
                timeout=SMTP_TIMEOUT_SECONDS,
            )
        except aiosmtplib.SMTPException as e:
            code = getattr(e, "code", None)
            raise EmailProviderError(
                f"SMTP send failed: {e}",
                provider=self.name,
                code=str(code) if code else None,
            ) from e

        return mime["Message-ID"]
