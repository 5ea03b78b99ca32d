"""
Helpers for address validation, HTML sanitizing, unsubscribe links and
bounce classification.
"""

import base64
import re

from email_delivery.config import settings
from email_delivery.models.domain.email_domain import EMAIL_PATTERN

_SCRIPT_TAG = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_JAVASCRIPT_URL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)

HARD_BOUNCE_MARKERS = ("550", "User unknown")
SOFT_BOUNCE_MARKERS = ("452", "quota")


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def sanitize_html(html: str) -> str:
    """Strip script tags, javascript: URLs and inline event handlers."""
    cleaned = _SCRIPT_TAG.sub("", html)
    cleaned = _JAVASCRIPT_URL.sub("", cleaned)
    return _EVENT_HANDLER.sub("", cleaned)


def generate_unsubscribe_token(email: str, list_id: str | None = None) -> str:
    raw = f"{email}:{list_id or 'default'}"
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_unsubscribe_token(token: str) -> tuple[str, str]:
    """Inverse of generate_unsubscribe_token -> (email, list_id)."""
    decoded = base64.b64decode(token).decode("utf-8")
    email, _, list_id = decoded.rpartition(":")
    return email, list_id


def generate_unsubscribe_link(email: str, list_id: str | None = None, app_url: str | None = None) -> str:
    base_url = (app_url or settings.app_url()).rstrip("/")
    token = generate_unsubscribe_token(email, list_id)
    return f"{base_url}/unsubscribe?token={token}"


def parse_bounce(bounce_message: str) -> dict[str, str]:
    """Classify a bounce message as hard, soft or unknown."""
    if any(marker in bounce_message for marker in HARD_BOUNCE_MARKERS):
        return {"type": "hard", "reason": "Invalid recipient"}
    if any(marker in bounce_message for marker in SOFT_BOUNCE_MARKERS):
        return {"type": "soft", "reason": "Mailbox full"}
    return {"type": "unknown", "reason": bounce_message}
