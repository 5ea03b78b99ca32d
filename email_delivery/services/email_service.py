"""
Email Service with multi-provider fallback.

Validates and renders outgoing messages, tries providers in priority order,
keeps an in-process retry queue for messages no provider accepted, and
persists scheduled sends in the cache.

Delivery is best effort: apart from validation errors, failures are logged
and retried in the background instead of being raised to the caller.
"""

import asyncio
import contextlib
import secrets
import string
import time
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from email_delivery.config import Settings, settings
from email_delivery.infrastructure.observability.logging import get_logger, log_email_event
from email_delivery.models.domain.email_domain import (
    EmailMessage,
    EmailResult,
    QueueEntry,
    ScheduledEmail,
    flatten_addresses,
)
from email_delivery.providers import EmailProvider, default_providers
from email_delivery.services.cache import EmailCache, scheduled_key, sent_key
from email_delivery.services.email_templates import render_template

logger = get_logger(__name__)

ALL_PROVIDERS_FAILED = "All email providers failed. Email queued for retry."
_ID_ALPHABET = string.ascii_lowercase + string.digits


class EmailValidationError(Exception):
    """Raised when a message fails validation; nothing has been sent."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class EmailServiceError(Exception):
    """Custom exception for email service operations."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


def generate_id(prefix: str) -> str:
    """Ids shaped like '<prefix>_<epoch ms>_<9 random chars>'."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def _summarize_validation_error(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in item["loc"]], "msg": item["msg"], "type": item["type"]}
        for item in error.errors()
    ]


class EmailService:
    """
    Outbound email orchestration.

    One instance is built at process start and shared by everything that
    sends email; the retry queue lives on that instance.
    """

    def __init__(
        self,
        providers: Sequence[EmailProvider],
        cache: EmailCache,
        config: Settings | None = None,
        *,
        max_retries: int | None = None,
        retry_interval_seconds: float | None = None,
        batch_size: int | None = None,
        batch_delay_seconds: float | None = None,
        provider_timeout_seconds: float | None = None,
    ):
        config = config or settings
        self.providers: list[EmailProvider] = sorted(providers, key=lambda provider: provider.priority)
        self.cache = cache
        self.app_url = config.app_url()
        self.sent_record_ttl = config.EMAIL_SENT_RECORD_TTL_SECONDS
        self.max_retries = max_retries if max_retries is not None else config.EMAIL_MAX_RETRIES
        self.retry_interval_seconds = (
            retry_interval_seconds
            if retry_interval_seconds is not None
            else config.EMAIL_RETRY_INTERVAL_SECONDS
        )
        self.batch_size = batch_size or config.EMAIL_BULK_BATCH_SIZE
        self.batch_delay_seconds = (
            batch_delay_seconds
            if batch_delay_seconds is not None
            else config.EMAIL_BULK_BATCH_DELAY_SECONDS
        )
        self.provider_timeout_seconds = (
            provider_timeout_seconds or config.EMAIL_PROVIDER_TIMEOUT_SECONDS
        )

        self._queue: dict[str, QueueEntry] = {}
        self._queue_lock = asyncio.Lock()
        self._tick_lock = asyncio.Lock()
        self._processor_task: asyncio.Task | None = None

        logger.info(
            "Email service initialized",
            providers=[provider.name for provider in self.providers],
            max_retries=self.max_retries,
            retry_interval_seconds=self.retry_interval_seconds,
        )

    # ------------------------------------------------------------------
    # Message preparation
    # ------------------------------------------------------------------

    def prepare_message(self, options: EmailMessage | Mapping[str, Any]) -> EmailMessage:
        """
        Apply the template (if the id is known) and validate.

        Raises:
            EmailValidationError: If the resulting message is invalid
        """
        if isinstance(options, EmailMessage):
            if not options.template_id:
                return options
            raw = options.model_dump(by_alias=False)
        else:
            raw = dict(options)

        template_id = raw.get("template_id") or raw.get("templateId")
        if template_id:
            template_data = raw.get("template_data") or raw.get("templateData")
            rendered = render_template(
                template_id, template_data if isinstance(template_data, dict) else {}
            )
            if rendered is not None:
                raw["subject"] = rendered.subject
                raw["html"] = rendered.html
                raw["text"] = rendered.text

        try:
            return EmailMessage.model_validate(raw)
        except ValidationError as e:
            errors = _summarize_validation_error(e)
            fields = ", ".join(".".join(item["loc"]) for item in errors)
            raise EmailValidationError(f"Invalid email options: {fields}", errors=errors) from e

    def _apply_open_tracking(self, message: EmailMessage) -> EmailMessage:
        if not (message.track_opens and message.html):
            return message

        tracking_id = generate_id("track")
        pixel = (
            f'<img src="{self.app_url}/api/email/track/open/{tracking_id}" '
            'width="1" height="1" style="display:none;">'
        )
        return message.model_copy(update={"html": message.html + pixel})

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, options: EmailMessage | Mapping[str, Any]) -> EmailResult:
        """
        Send an email, falling back through providers in priority order.

        Returns the first successful provider result. When every provider
        fails or none is available the message is queued for retry and an
        unsuccessful result is returned.

        Raises:
            EmailValidationError: If the options are invalid
        """
        message = self._apply_open_tracking(self.prepare_message(options))

        result = await self._deliver(message)
        if result is not None:
            return result

        queue_id = await self._enqueue(message)
        logger.error(
            "All email providers failed, added to retry queue",
            queue_id=queue_id,
            to=flatten_addresses(message.to),
            subject=message.subject,
        )
        return EmailResult.failed(ALL_PROVIDERS_FAILED)

    async def _deliver(self, message: EmailMessage) -> EmailResult | None:
        """Try each available provider once; None when all of them failed."""
        recipients = flatten_addresses(message.to)

        for provider in self.providers:
            if not await self._is_provider_available(provider):
                continue

            result = await self._attempt(provider, message)
            if result.success:
                log_email_event(
                    "email_sent",
                    provider=provider.name,
                    to=recipients,
                    subject=message.subject,
                    message_id=result.message_id,
                )
                await self._record_sent(result, message)
                return result

            log_email_event(
                "email_provider_failed",
                provider=provider.name,
                to=recipients,
                subject=message.subject,
                error=result.error or "unknown error",
            )

        return None

    async def _is_provider_available(self, provider: EmailProvider) -> bool:
        try:
            return await asyncio.wait_for(
                provider.is_available(), timeout=self.provider_timeout_seconds
            )
        except Exception as e:
            logger.warning(
                "Email provider availability check failed",
                provider=provider.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def _attempt(self, provider: EmailProvider, message: EmailMessage) -> EmailResult:
        try:
            return await asyncio.wait_for(
                provider.send(message), timeout=self.provider_timeout_seconds
            )
        except TimeoutError:
            return EmailResult.failed(
                f"{provider.name} timed out after {self.provider_timeout_seconds}s",
                provider=provider.name,
            )
        except Exception as e:
            return EmailResult.failed(str(e) or type(e).__name__, provider=provider.name)

    async def _record_sent(self, result: EmailResult, message: EmailMessage) -> None:
        if not result.message_id:
            logger.warning("Provider returned no message id, skipping sent record", provider=result.provider)
            return

        record = {
            "message_id": result.message_id,
            "to": flatten_addresses(message.to),
            "subject": message.subject,
            "sent_at": (result.timestamp or datetime.now(UTC)).isoformat(),
            "provider": result.provider,
            "status": "sent",
        }
        try:
            stored = await self.cache.set(sent_key(result.message_id), record, self.sent_record_ttl)
        except Exception as e:
            logger.warning("Failed to cache sent email record", message_id=result.message_id, error=str(e))
            return

        if not stored:
            logger.warning("Failed to cache sent email record", message_id=result.message_id)

    async def send_bulk(
        self,
        recipients: Sequence[str],
        template: str,
        template_data: Mapping[str, Any] | None = None,
    ) -> dict[str, EmailResult]:
        """
        Send one templated email per recipient in fixed-size batches.

        Sends within a batch run concurrently; batches are separated by a
        fixed delay. Every recipient gets a result.
        """
        results: dict[str, EmailResult] = {}
        total = len(recipients)

        for start in range(0, total, self.batch_size):
            batch = list(recipients[start : start + self.batch_size])
            batch_results = await asyncio.gather(
                *(self._send_to_recipient(recipient, template, template_data) for recipient in batch)
            )
            results.update(zip(batch, batch_results))

            if start + self.batch_size < total:
                await asyncio.sleep(self.batch_delay_seconds)

        logger.info(
            "Bulk email send completed",
            template=template,
            recipients=total,
            succeeded=sum(1 for result in results.values() if result.success),
        )
        return results

    async def _send_to_recipient(
        self,
        recipient: str,
        template: str,
        template_data: Mapping[str, Any] | None,
    ) -> EmailResult:
        options = {
            "to": recipient,
            "template_id": template,
            "template_data": {**(template_data or {}), "recipient": recipient},
            "subject": "",
            "priority": "normal",
        }
        try:
            return await self.send(options)
        except EmailValidationError as e:
            logger.warning("Bulk email recipient rejected", recipient=recipient, error=e.message)
            return EmailResult.failed(e.message)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def schedule_email(
        self, options: EmailMessage | Mapping[str, Any], send_at: datetime
    ) -> str:
        """
        Persist a message for later delivery and return its schedule id.

        The cache entry expires at send_at; an external dispatcher is
        responsible for picking it up and calling send().
        """
        message = self.prepare_message(options)

        if send_at.tzinfo is None:
            send_at = send_at.replace(tzinfo=UTC)

        schedule_id = generate_id("schedule")
        ttl_s = max(1, int((send_at - datetime.now(UTC)).total_seconds()))
        scheduled = ScheduledEmail(
            schedule_id=schedule_id,
            message=message.model_copy(update={"scheduled_for": send_at}),
            send_at=send_at,
        )

        stored = await self.cache.set(scheduled_key(schedule_id), scheduled.to_cache_dict(), ttl_s)
        if not stored:
            raise EmailServiceError("Failed to persist scheduled email", operation="schedule_email")

        logger.info(
            "Email scheduled",
            schedule_id=schedule_id,
            send_at=send_at.isoformat(),
            ttl_s=ttl_s,
            to=flatten_addresses(message.to),
            subject=message.subject,
        )
        return schedule_id

    async def cancel_scheduled(self, schedule_id: str) -> bool:
        removed = await self.cache.delete(scheduled_key(schedule_id))
        if removed:
            logger.info("Scheduled email cancelled", schedule_id=schedule_id)
        return removed > 0

    async def get_scheduled(self, schedule_id: str) -> dict[str, Any] | None:
        return await self.cache.get(scheduled_key(schedule_id))

    async def get_email_status(self, message_id: str) -> dict[str, Any] | None:
        return await self.cache.get(sent_key(message_id))

    # ------------------------------------------------------------------
    # Retry queue
    # ------------------------------------------------------------------

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    def queued_entries(self) -> list[QueueEntry]:
        return list(self._queue.values())

    async def _enqueue(self, message: EmailMessage) -> str:
        queue_id = generate_id("queue")
        async with self._queue_lock:
            self._queue[queue_id] = QueueEntry(queue_id=queue_id, message=message)
        return queue_id

    async def process_retry_queue(self) -> int:
        """
        Run one retry pass over every queued message.

        Delivered messages leave the queue; a message that has failed
        max_retries passes is dropped. Returns the number delivered.
        """
        async with self._tick_lock:
            async with self._queue_lock:
                entries = list(self._queue.values())

            delivered = 0
            for entry in entries:
                result = await self._deliver(entry.message)

                async with self._queue_lock:
                    if entry.queue_id not in self._queue:
                        continue

                    if result is not None:
                        del self._queue[entry.queue_id]
                        delivered += 1
                        logger.info(
                            "Queued email delivered",
                            queue_id=entry.queue_id,
                            provider=result.provider,
                            retry_count=entry.retry_count,
                        )
                        continue

                    entry.retry_count += 1
                    if entry.retry_count >= self.max_retries:
                        del self._queue[entry.queue_id]
                        logger.error(
                            "Email exceeded max retries, removing from queue",
                            queue_id=entry.queue_id,
                            to=flatten_addresses(entry.message.to),
                            subject=entry.message.subject,
                            retry_count=entry.retry_count,
                        )

            return delivered

    def start_queue_processor(self) -> asyncio.Task:
        """Start the background retry loop on the running event loop."""
        if self._processor_task is not None and not self._processor_task.done():
            return self._processor_task

        self._processor_task = asyncio.create_task(
            self._run_queue_processor(), name="email-retry-queue"
        )
        return self._processor_task

    async def stop_queue_processor(self) -> None:
        task = self._processor_task
        if task is None:
            return

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._processor_task = None
        logger.info("Email retry queue processor stopped", pending=self.queue_size)

    async def _run_queue_processor(self) -> None:
        logger.info("Email retry queue processor started", interval_seconds=self.retry_interval_seconds)
        while True:
            await asyncio.sleep(self.retry_interval_seconds)
            if not self._queue:
                continue
            try:
                await self.process_retry_queue()
            except Exception as e:
                logger.error(
                    "Email retry queue pass failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def provider_status(self) -> list[dict[str, Any]]:
        return [
            {
                "name": provider.name,
                "priority": provider.priority,
                "available": await self._is_provider_available(provider),
            }
            for provider in self.providers
        ]


def build_email_service(
    cache: EmailCache,
    config: Settings | None = None,
    providers: Sequence[EmailProvider] | None = None,
) -> EmailService:
    """Construct the process-wide EmailService with the built-in providers."""
    config = config or settings
    return EmailService(
        providers=providers if providers is not None else default_providers(config),
        cache=cache,
        config=config,
    )
