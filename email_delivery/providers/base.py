"""
Base class for outbound email providers.

Every provider exposes the same capability: a name, a priority (lower is
tried first), a cheap availability check and a send that never raises.
"""

from abc import ABC, abstractmethod

from email_delivery.infrastructure.observability.logging import log_email_event
from email_delivery.models.domain.email_domain import EmailMessage, EmailResult, flatten_addresses


class EmailProviderError(Exception):
    """Raised inside a provider when a send cannot be completed."""

    def __init__(self, message: str, provider: str | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.code = code


class EmailProvider(ABC):
    name: str = "base"
    priority: int = 100

    @abstractmethod
    async def is_available(self) -> bool:
        """Whether the provider is configured and reachable."""

    @abstractmethod
    async def _deliver(self, message: EmailMessage) -> str | None:
        """Hand the message to the backend and return its message id."""

    async def send(self, message: EmailMessage) -> EmailResult:
        """Deliver a message, converting any failure into an unsuccessful result."""
        try:
            if not await self.is_available():
                raise EmailProviderError(f"{self.name} not configured", provider=self.name)

            message_id = await self._deliver(message)
            return EmailResult.ok(provider=self.name, message_id=message_id)

        except Exception as e:
            error = e.message if isinstance(e, EmailProviderError) else str(e)
            log_email_event(
                "email_provider_send_failed",
                provider=self.name,
                to=flatten_addresses(message.to),
                subject=message.subject,
                error=error or type(e).__name__,
                error_type=type(e).__name__,
            )
            return EmailResult.failed(error=error or type(e).__name__, provider=self.name)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} priority={self.priority}>"
