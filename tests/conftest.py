import pytest

from email_delivery.config import Settings
from email_delivery.models.domain.email_domain import EmailMessage, EmailResult
from email_delivery.providers.base import EmailProvider
from email_delivery.services.email_service import EmailService


class FakeCache:
    def __init__(self):
        self.store: dict[str, object] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail_writes = False

    async def get(self, key: str):
        return self.store.get(key)

    async def set(self, key: str, value, ttl_s: int | None = None) -> bool:
        if self.fail_writes:
            return False
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def delete(self, key: str) -> int:
        return 1 if self.store.pop(key, None) is not None else 0

    async def ping(self) -> bool:
        return True


class FakeProvider(EmailProvider):
    """Scripted provider: pops results from `outcomes`, repeating the last one."""

    def __init__(self, name: str, priority: int, available: bool = True, outcomes=None):
        self.name = name
        self.priority = priority
        self.available = available
        self.outcomes = list(outcomes or ["ok"])
        self.sent: list[EmailMessage] = []
        self.availability_checks = 0

    async def is_available(self) -> bool:
        self.availability_checks += 1
        return self.available

    async def _deliver(self, message: EmailMessage) -> str | None:
        raise NotImplementedError

    async def send(self, message: EmailMessage) -> EmailResult:
        self.sent.append(message)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if outcome == "ok":
            return EmailResult.ok(provider=self.name, message_id=f"{self.name}-{len(self.sent)}")
        return EmailResult.failed(error=outcome, provider=self.name)


@pytest.fixture
def test_settings():
    return Settings(_env_file=None, APP_URL="https://app.example.com/")


@pytest.fixture
def fake_cache():
    return FakeCache()


@pytest.fixture
def make_provider():
    def _make(name: str = "A", priority: int = 1, available: bool = True, outcomes=None):
        return FakeProvider(name, priority, available=available, outcomes=outcomes)

    return _make


@pytest.fixture
def make_service(fake_cache, test_settings):
    def _make(providers, **kwargs):
        return EmailService(providers=providers, cache=fake_cache, config=test_settings, **kwargs)

    return _make


@pytest.fixture
def basic_message():
    return {"to": "a@x.io", "subject": "Hi", "text": "hello"}
