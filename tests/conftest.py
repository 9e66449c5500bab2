from datetime import UTC, datetime, timedelta

import pytest

from mailguard.models.domain.threat_domain import EmailMessage
from mailguard.services.mailbox import MailboxError
from mailguard.services.reputation_cache import InMemoryReputationStore, ReputationCache


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def scan_keys(self, pattern: str) -> list[str]:
        prefix = pattern.rstrip("*")
        return [key for key in self.store if key.startswith(prefix)]


class FakeMailbox:
    def __init__(self, messages: list[EmailMessage] | None = None, fail_mark: bool = False):
        self.messages = {m.message_id: m for m in messages or []}
        self.folders: dict[str, list[str]] = {"INBOX": list(self.messages)}
        self.marked: list[tuple[str, str]] = []
        self.fail_mark = fail_mark

    async def fetch_message(self, message_id: str) -> EmailMessage:
        if message_id not in self.messages:
            raise MailboxError(f"Message {message_id} not found", operation="fetch", not_found=True)
        return self.messages[message_id]

    async def mark_message(self, message_id: str, flag: str) -> None:
        if self.fail_mark:
            raise MailboxError("IMAP STORE failed", operation="mark")
        self.marked.append((message_id, flag))

    async def list_message_ids(self, folder: str, limit: int) -> list[str]:
        return self.folders.get(folder, [])[:limit]


def make_message(message_id: str = "msg-1", **overrides) -> EmailMessage:
    """A fully authenticated message from a corporate sender unless overridden."""
    fields = {
        "from_address": "Alice <alice@acme-corp.io>",
        "subject": "Quarterly planning notes",
        "header_message_id": "<abc123@acme-corp.io>",
        "received_spf": "pass (domain of acme-corp.io designates 1.2.3.4)",
        "dkim_result": "pass header.d=acme-corp.io",
        "dmarc_result": "pass",
        "text_body": "See https://docs.acme-corp.io/plan for details.",
    }
    fields.update(overrides)
    return EmailMessage(message_id=message_id, **fields)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return InMemoryReputationStore()


@pytest.fixture
def reputation_cache(memory_store, clock):
    return ReputationCache(memory_store, default_ttl=timedelta(hours=24), clock=clock)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_mailbox():
    return FakeMailbox()


@pytest.fixture
def hashing_secret(monkeypatch):
    monkeypatch.setattr("mailguard.security.hashing.settings.HASHING_SECRET", "s" * 32, raising=False)


@pytest.fixture
def message_factory():
    return make_message


@pytest.fixture
def mailbox_factory():
    return FakeMailbox
