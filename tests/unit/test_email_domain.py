import base64

import pytest
from pydantic import ValidationError

from email_delivery.models.domain.email_domain import (
    EmailAttachment,
    EmailMessage,
    EmailPriority,
    EmailResult,
    NamedAddress,
    QueueEntry,
    flatten_addresses,
    format_address,
    format_addresses,
)


def test_minimal_message_defaults():
    message = EmailMessage(to="a@x.io", subject="Hi")

    assert message.priority is EmailPriority.NORMAL
    assert message.track_opens is True
    assert message.track_clicks is True
    assert message.from_ is None


def test_aliases_accepted():
    message = EmailMessage.model_validate(
        {
            "to": ["a@x.io", {"name": "Bo", "address": "b@x.io"}],
            "from": "sender@x.io",
            "replyTo": "reply@x.io",
            "subject": "Hi",
            "templateId": "welcome",
            "trackOpens": False,
        }
    )

    assert message.from_ == "sender@x.io"
    assert message.reply_to == "reply@x.io"
    assert message.template_id == "welcome"
    assert message.track_opens is False
    assert message.to[1] == NamedAddress(name="Bo", address="b@x.io")


def test_subject_length_limit():
    EmailMessage(to="a@x.io", subject="s" * 998)

    with pytest.raises(ValidationError):
        EmailMessage(to="a@x.io", subject="s" * 999)


def test_empty_subject_rejected():
    with pytest.raises(ValidationError):
        EmailMessage(to="a@x.io", subject="")


@pytest.mark.parametrize("field", ["to", "cc", "bcc", "from"])
def test_address_without_at_rejected(field):
    data = {"to": "a@x.io", "subject": "Hi", field: "ax.io"}
    with pytest.raises(ValidationError):
        EmailMessage.model_validate(data)


@pytest.mark.parametrize("address", ["a@x", "a b@x.io", "@x.io", "a@.io"])
def test_malformed_addresses_rejected(address):
    with pytest.raises(ValidationError):
        EmailMessage(to=address, subject="Hi")


def test_message_is_immutable():
    message = EmailMessage(to="a@x.io", subject="Hi")
    with pytest.raises(ValidationError):
        message.subject = "changed"


def test_address_helpers():
    named = NamedAddress(name="Ann", address="ann@x.io")
    bare = NamedAddress(address="bare@x.io")

    assert flatten_addresses([named, "b@x.io"]) == ["ann@x.io", "b@x.io"]
    assert flatten_addresses(None) == []
    assert format_address(named) == "Ann <ann@x.io>"
    assert format_address(bare) == "bare@x.io"
    assert format_addresses("c@x.io") == ["c@x.io"]


def test_attachment_content_variants():
    raw = EmailAttachment(filename="a.txt", content=b"hello")
    encoded = EmailAttachment(filename="a.txt", content="aGVsbG8=", encoding="base64")
    text = EmailAttachment(filename="a.txt", content="hello", contentType="text/plain")

    assert raw.content_bytes() == encoded.content_bytes() == text.content_bytes() == b"hello"
    assert raw.mime_type() == "application/octet-stream"
    assert text.mime_type() == "text/plain"


def test_cache_dict_encodes_attachments():
    message = EmailMessage(
        to="a@x.io",
        subject="Hi",
        attachments=[EmailAttachment(filename="r.pdf", content=b"%PDF", content_type="application/pdf")],
    )

    data = message.to_cache_dict()

    assert data["attachments"][0]["content"] == base64.b64encode(b"%PDF").decode()
    assert data["attachments"][0]["encoding"] == "base64"
    assert data["priority"] == "normal"


def test_result_constructors():
    ok = EmailResult.ok(provider="SendGrid", message_id="m1")
    failed = EmailResult.failed("boom")

    assert ok.success and ok.message_id == "m1" and ok.timestamp is not None
    assert not failed.success and failed.error == "boom" and failed.provider is None
    assert failed.to_dict()["success"] is False


def test_queue_entry_to_dict():
    entry = QueueEntry(queue_id="queue_1", message=EmailMessage(to="a@x.io", subject="Hi"))

    data = entry.to_dict()

    assert data["to"] == ["a@x.io"]
    assert data["retry_count"] == 0


def test_empty_recipient_list_rejected():
    with pytest.raises(ValidationError):
        EmailMessage(to=[], subject="Hi", text="x")


def test_empty_copy_lists_allowed():
    message = EmailMessage(to="a@x.io", cc=[], bcc=[], subject="Hi")

    assert flatten_addresses(message.cc) == []


def test_display_names_are_quoted():
    assert format_address(NamedAddress(name="Doe, John", address="john@x.io")) == '"Doe, John" <john@x.io>'
    assert format_address(NamedAddress(name='Ann "A" Lee', address="ann@x.io")) == '"Ann \\"A\\" Lee" <ann@x.io>'
    assert format_address(NamedAddress(name="Zoë", address="zoe@x.io")).endswith("<zoe@x.io>")
