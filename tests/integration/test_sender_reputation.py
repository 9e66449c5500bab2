import pytest

from mailguard.models.domain.threat_domain import ReputationRecord
from mailguard.services.sender_reputation_service import (
    CachedSenderReputation,
    HttpSenderReputationClient,
    ReputationProviderError,
    score_reputation_payload,
)

BASE_URL = "https://reputation.test"


class CountingProvider:
    def __init__(self, record: ReputationRecord | None = None, error: Exception | None = None):
        self.record = record
        self.error = error
        self.calls = 0

    async def check_email(self, email: str) -> ReputationRecord:
        self.calls += 1
        if self.error:
            raise self.error
        return self.record


def test_score_reputation_payload_caps_at_one():
    score, reasons = score_reputation_payload({"blocklisted": True, "disposable": True, "mx": False})

    assert score == 1.0
    assert "Email is blocklisted" in reasons
    assert "No MX records (invalid domain)" in reasons


def test_score_reputation_payload_clean():
    assert score_reputation_payload({"mx": True, "domain_age_in_days": 4000}) == (0.0, [])


@pytest.mark.asyncio
async def test_http_client_normalizes_flags(httpx_mock):
    httpx_mock.add_response(
        method="GET",
        url=f"{BASE_URL}/email/x@yopmail.com",
        json={"email": "x@yopmail.com", "disposable": True, "mx": True},
    )

    client = HttpSenderReputationClient(BASE_URL, "key-1")
    record = await client.check_email("X@yopmail.com")
    await client.close()

    assert record.is_spam is True
    assert record.spam_score == 0.8
    assert record.reason == "Disposable email address"
    assert httpx_mock.get_requests()[0].headers["Authorization"] == "Bearer key-1"


@pytest.mark.asyncio
async def test_http_client_raises_on_error_status(httpx_mock):
    httpx_mock.add_response(method="GET", url=f"{BASE_URL}/email/x@acme-corp.io", status_code=429)

    client = HttpSenderReputationClient(BASE_URL, "key-1")
    with pytest.raises(ReputationProviderError) as exc:
        await client.check_email("x@acme-corp.io")
    await client.close()

    assert exc.value.status_code == 429


@pytest.mark.asyncio
async def test_cached_reputation_hits_provider_once(reputation_cache, hashing_secret):
    provider = CountingProvider(ReputationRecord("x@spam.io", True, 1.0, "reputation_api"))
    cached = CachedSenderReputation(provider, reputation_cache)

    first = await cached.check_email("x@spam.io")
    second = await cached.check_email("X@Spam.io")

    assert provider.calls == 1
    assert first.is_spam is True
    assert second.is_spam is True
    assert second.from_cache is True


@pytest.mark.asyncio
async def test_cache_key_never_contains_the_address(reputation_cache, memory_store, hashing_secret):
    provider = CountingProvider(ReputationRecord("x@spam.io", False, 0.0, "reputation_api"))
    await CachedSenderReputation(provider, reputation_cache).check_email("x@spam.io")

    keys = list(memory_store._entries)
    assert len(keys) == 1
    assert keys[0].startswith("email:")
    assert "spam.io" not in keys[0]


@pytest.mark.asyncio
async def test_provider_failure_fails_open(reputation_cache, hashing_secret):
    provider = CountingProvider(error=ReputationProviderError("upstream down"))
    cached = CachedSenderReputation(provider, reputation_cache)

    record = await cached.check_email("x@acme-corp.io")

    assert record.is_spam is False
    assert record.source == "fail_open"
    assert await cached.check_email("x@acme-corp.io") is not None
    assert provider.calls == 2
