"""
Tests for EmailService fallback, retry queue, bulk sending and scheduling.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from email_delivery.services import email_service as email_service_module
from email_delivery.services.email_service import (
    ALL_PROVIDERS_FAILED,
    EmailServiceError,
    EmailValidationError,
    generate_id,
)


def test_generate_id_shape():
    value = generate_id("queue")
    prefix, millis, suffix = value.split("_")
    assert prefix == "queue"
    assert millis.isdigit()
    assert len(suffix) == 9
    assert suffix.isalnum() and suffix == suffix.lower()


def test_providers_sorted_by_priority(make_service, make_provider):
    low = make_provider("C", priority=3)
    high = make_provider("A", priority=1)
    mid = make_provider("B", priority=2)
    service = make_service([low, high, mid])
    assert [p.name for p in service.providers] == ["A", "B", "C"]


@pytest.mark.asyncio
async def test_send_skips_leading_unavailable_providers_in_order(make_service, make_provider, basic_message):
    providers = [
        make_provider("P4", priority=4),
        make_provider("P1", priority=1, available=False),
        make_provider("P3", priority=3, outcomes=["down"]),
        make_provider("P2", priority=2, available=False),
    ]
    service = make_service(providers)

    result = await service.send(basic_message)

    assert result.provider == "P4"
    attempted = [p.name for p in service.providers if p.sent]
    assert attempted == ["P3", "P4"]
    assert all(not p.sent for p in providers if not p.available)


@pytest.mark.asyncio
async def test_send_uses_first_provider(make_service, make_provider, fake_cache, basic_message):
    a = make_provider("A", priority=1)
    b = make_provider("B", priority=2)
    service = make_service([a, b])

    result = await service.send(basic_message)

    assert result.success is True
    assert result.provider == "A"
    assert result.message_id == "A-1"
    assert len(a.sent) == 1
    assert b.sent == []
    assert service.queue_size == 0

    record = fake_cache.store["email:sent:A-1"]
    assert record["to"] == ["a@x.io"]
    assert record["subject"] == "Hi"
    assert record["provider"] == "A"
    assert record["status"] == "sent"
    assert fake_cache.ttls["email:sent:A-1"] == 86400 * 30


@pytest.mark.asyncio
async def test_send_falls_back_on_failure(make_service, make_provider, basic_message):
    a = make_provider("A", priority=1, outcomes=["rate limited"])
    b = make_provider("B", priority=2)
    service = make_service([a, b])

    result = await service.send(basic_message)

    assert result.success is True
    assert result.provider == "B"
    assert len(a.sent) == 1
    assert len(b.sent) == 1


@pytest.mark.asyncio
async def test_unavailable_provider_is_skipped(make_service, make_provider, basic_message):
    a = make_provider("A", priority=1, available=False)
    b = make_provider("B", priority=2)
    service = make_service([a, b])

    result = await service.send(basic_message)

    assert result.provider == "B"
    assert a.sent == []


@pytest.mark.asyncio
async def test_no_available_providers_queues_message(make_service, make_provider, basic_message):
    a = make_provider("A", priority=1, available=False)
    service = make_service([a])

    result = await service.send(basic_message)

    assert result.success is False
    assert result.error == ALL_PROVIDERS_FAILED
    assert service.queue_size == 1


@pytest.mark.asyncio
async def test_all_providers_fail_queues_once(make_service, make_provider, fake_cache, basic_message):
    a = make_provider("A", priority=1, outcomes=["down"])
    b = make_provider("B", priority=2, outcomes=["down"])
    service = make_service([a, b])

    result = await service.send(basic_message)

    assert result.success is False
    assert result.error == ALL_PROVIDERS_FAILED
    assert service.queue_size == 1
    assert len(a.sent) == 1
    assert len(b.sent) == 1
    assert fake_cache.store == {}

    entry = service.queued_entries()[0]
    assert entry.retry_count == 0
    assert entry.queue_id.startswith("queue_")


@pytest.mark.asyncio
async def test_provider_exception_counts_as_failure(make_service, make_provider, basic_message):
    a = make_provider("A", priority=1)
    b = make_provider("B", priority=2)

    async def boom(message):
        raise RuntimeError("socket closed")

    a.send = boom
    service = make_service([a, b])

    result = await service.send(basic_message)

    assert result.provider == "B"


@pytest.mark.asyncio
async def test_provider_timeout_counts_as_failure(make_service, make_provider, basic_message):
    a = make_provider("A", priority=1)
    b = make_provider("B", priority=2)

    async def slow(message):
        await asyncio.sleep(1)

    a.send = slow
    service = make_service([a, b], provider_timeout_seconds=0.01)

    result = await service.send(basic_message)

    assert result.provider == "B"


@pytest.mark.asyncio
async def test_validation_error_before_any_provider(make_service, make_provider):
    a = make_provider("A", priority=1)
    service = make_service([a])

    with pytest.raises(EmailValidationError) as exc_info:
        await service.send({"to": "not-an-address", "subject": "Hi"})

    assert a.sent == []
    assert a.availability_checks == 0
    assert service.queue_size == 0
    assert any(error["loc"][0] == "to" for error in exc_info.value.errors)


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["cc", "bcc", "from"])
async def test_invalid_optional_address_rejected(make_service, make_provider, basic_message, field):
    service = make_service([make_provider()])

    with pytest.raises(EmailValidationError):
        await service.send({**basic_message, field: "nobody"})


@pytest.mark.asyncio
async def test_template_overrides_subject_and_bodies(make_service, make_provider):
    a = make_provider("A")
    service = make_service([a])

    result = await service.send(
        {
            "to": "a@x.io",
            "subject": "ignored",
            "text": "ignored",
            "templateId": "password-reset",
            "templateData": {"customer_name": "Ann", "reset_url": "https://r.example/x"},
        }
    )

    assert result.success is True
    sent = a.sent[0]
    assert sent.subject == "Reset Your Password - Fisher Backflows"
    assert "https://r.example/x" in sent.text
    assert "https://r.example/x" in sent.html


@pytest.mark.asyncio
async def test_unknown_template_keeps_caller_content(make_service, make_provider):
    a = make_provider("A")
    service = make_service([a])

    await service.send({"to": "a@x.io", "subject": "Own", "text": "body", "template_id": "nope"})

    assert a.sent[0].subject == "Own"
    assert a.sent[0].text == "body"


@pytest.mark.asyncio
async def test_open_tracking_pixel_appended(make_service, make_provider):
    a = make_provider("A")
    service = make_service([a])

    await service.send({"to": "a@x.io", "subject": "Hi", "html": "<p>x</p>"})

    html = a.sent[0].html
    assert html.startswith("<p>x</p>")
    assert '<img src="https://app.example.com/api/email/track/open/track_' in html
    assert 'width="1" height="1" style="display:none;">' in html


@pytest.mark.asyncio
async def test_open_tracking_disabled(make_service, make_provider):
    a = make_provider("A")
    service = make_service([a])

    await service.send({"to": "a@x.io", "subject": "Hi", "html": "<p>x</p>", "trackOpens": False})

    assert a.sent[0].html == "<p>x</p>"


# ----------------------------------------------------------------------
# Retry queue
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_retry_queue_delivers_on_later_tick(make_service, make_provider, fake_cache, basic_message):
    a = make_provider("A", outcomes=["down", "ok"])
    service = make_service([a])

    await service.send(basic_message)
    assert service.queue_size == 1

    delivered = await service.process_retry_queue()

    assert delivered == 1
    assert service.queue_size == 0
    assert "email:sent:A-2" in fake_cache.store
    # retries reuse the prepared message instead of adding another pixel
    assert a.sent[0] is a.sent[1]


@pytest.mark.asyncio
async def test_retry_queue_drops_after_max_retries(make_service, make_provider, basic_message):
    a = make_provider("A", outcomes=["down"])
    service = make_service([a])

    await service.send(basic_message)

    await service.process_retry_queue()
    assert service.queued_entries()[0].retry_count == 1
    await service.process_retry_queue()
    assert service.queued_entries()[0].retry_count == 2
    await service.process_retry_queue()

    assert service.queue_size == 0
    # initial attempt + 3 retries
    assert len(a.sent) == 4

    await service.process_retry_queue()
    assert len(a.sent) == 4


@pytest.mark.asyncio
async def test_retry_does_not_duplicate_entries(make_service, make_provider, basic_message):
    a = make_provider("A", outcomes=["down"])
    service = make_service([a])

    await service.send(basic_message)
    await service.process_retry_queue()

    assert service.queue_size == 1


@pytest.mark.asyncio
async def test_queue_processor_runs_in_background(make_service, make_provider, basic_message):
    a = make_provider("A", outcomes=["down", "ok"])
    service = make_service([a], retry_interval_seconds=0.01)

    await service.send(basic_message)
    service.start_queue_processor()
    try:
        for _ in range(100):
            if service.queue_size == 0:
                break
            await asyncio.sleep(0.01)
    finally:
        await service.stop_queue_processor()

    assert service.queue_size == 0
    assert len(a.sent) == 2


@pytest.mark.asyncio
async def test_start_queue_processor_is_idempotent(make_service, make_provider):
    service = make_service([make_provider()], retry_interval_seconds=10)

    first = service.start_queue_processor()
    second = service.start_queue_processor()

    assert first is second
    await service.stop_queue_processor()
    assert first.cancelled()


# ----------------------------------------------------------------------
# Bulk
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_send_bulk_batches_with_delay(make_service, make_provider, monkeypatch):
    a = make_provider("A")
    service = make_service([a])

    sleeps = []
    sent_before_sleep = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay):
        sleeps.append(delay)
        sent_before_sleep.append(len(a.sent))
        await real_sleep(0)

    monkeypatch.setattr(email_service_module.asyncio, "sleep", fake_sleep)

    recipients = [f"user{i}@x.io" for i in range(120)]
    results = await service.send_bulk(recipients, "welcome", {"customer_name": "Friend"})

    assert len(results) == 120
    assert all(result.success for result in results.values())
    assert sleeps == [1.0, 1.0]
    assert sent_before_sleep == [50, 100]
    assert {message.subject for message in a.sent} == {"Welcome to Fisher Backflows - Friend"}


@pytest.mark.asyncio
async def test_send_bulk_no_delay_for_single_batch(make_service, make_provider, monkeypatch):
    service = make_service([make_provider()])
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    monkeypatch.setattr(email_service_module.asyncio, "sleep", fake_sleep)

    results = await service.send_bulk(["a@x.io", "b@x.io"], "welcome")

    assert len(results) == 2
    assert sleeps == []


@pytest.mark.asyncio
async def test_send_bulk_reports_invalid_recipient(make_service, make_provider):
    a = make_provider("A")
    service = make_service([a])

    results = await service.send_bulk(["good@x.io", "bad"], "welcome")

    assert results["good@x.io"].success is True
    assert results["bad"].success is False
    assert len(a.sent) == 1


# ----------------------------------------------------------------------
# Scheduling and status
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_schedule_and_cancel(make_service, make_provider, fake_cache, basic_message):
    a = make_provider("A")
    service = make_service([a])
    send_at = datetime.now(UTC) + timedelta(hours=1)

    schedule_id = await service.schedule_email(basic_message, send_at)

    assert schedule_id.startswith("schedule_")
    key = f"email:scheduled:{schedule_id}"
    stored = fake_cache.store[key]
    assert stored["status"] == "scheduled"
    assert stored["scheduled_for"] == send_at.isoformat()
    assert stored["to"] == "a@x.io"
    assert 3500 <= fake_cache.ttls[key] <= 3600
    assert a.sent == []

    assert await service.get_scheduled(schedule_id) == stored
    assert await service.cancel_scheduled(schedule_id) is True
    assert await service.cancel_scheduled(schedule_id) is False
    assert await service.get_scheduled(schedule_id) is None


@pytest.mark.asyncio
async def test_schedule_in_past_uses_minimum_ttl(make_service, make_provider, fake_cache, basic_message):
    service = make_service([make_provider()])

    schedule_id = await service.schedule_email(basic_message, datetime.now(UTC) - timedelta(minutes=5))

    assert fake_cache.ttls[f"email:scheduled:{schedule_id}"] == 1


@pytest.mark.asyncio
async def test_schedule_naive_datetime_treated_as_utc(make_service, make_provider, fake_cache, basic_message):
    service = make_service([make_provider()])
    send_at = datetime.now(UTC).replace(tzinfo=None) + timedelta(minutes=10)

    schedule_id = await service.schedule_email(basic_message, send_at)

    stored = fake_cache.store[f"email:scheduled:{schedule_id}"]
    assert stored["scheduled_for"].endswith("+00:00")


@pytest.mark.asyncio
async def test_schedule_validates_message(make_service, make_provider, fake_cache):
    service = make_service([make_provider()])

    with pytest.raises(EmailValidationError):
        await service.schedule_email({"to": "a@x.io", "subject": ""}, datetime.now(UTC))

    assert fake_cache.store == {}


@pytest.mark.asyncio
async def test_schedule_cache_failure_raises(make_service, make_provider, fake_cache, basic_message):
    service = make_service([make_provider()])
    fake_cache.fail_writes = True

    with pytest.raises(EmailServiceError):
        await service.schedule_email(basic_message, datetime.now(UTC) + timedelta(hours=1))


@pytest.mark.asyncio
async def test_get_email_status(make_service, make_provider, basic_message):
    service = make_service([make_provider("A")])

    result = await service.send(basic_message)

    record = await service.get_email_status(result.message_id)
    assert record["message_id"] == "A-1"
    assert await service.get_email_status("missing") is None


@pytest.mark.asyncio
async def test_sent_record_failure_does_not_fail_send(make_service, make_provider, fake_cache, basic_message):
    service = make_service([make_provider("A")])
    fake_cache.fail_writes = True

    result = await service.send(basic_message)

    assert result.success is True


@pytest.mark.asyncio
async def test_provider_status(make_service, make_provider):
    service = make_service([make_provider("A"), make_provider("B", priority=2, available=False)])

    status = await service.provider_status()

    assert status == [
        {"name": "A", "priority": 1, "available": True},
        {"name": "B", "priority": 2, "available": False},
    ]
