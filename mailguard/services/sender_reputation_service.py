"""
Third-party sender reputation lookups.

The HTTP client speaks a UserCheck-style API (GET /email/{address}) and
normalizes its flags into a ReputationRecord. CachedSenderReputation puts the
shared ReputationCache in front of any provider, keyed by the HMAC of the
address, and fails open: a provider error means "not spam".
"""

from typing import Protocol
from urllib.parse import quote

import httpx

from mailguard.config import Settings, settings
from mailguard.infrastructure.observability.logging import get_logger
from mailguard.models.domain.threat_domain import ReputationRecord
from mailguard.security.hashing import HashingError, cache_key_for_email
from mailguard.services.reputation_cache import ReputationCache

logger = get_logger(__name__)

SPAM_THRESHOLD = 0.5
YOUNG_DOMAIN_DAYS = 30

# flag -> (weight, reason); weights add up and are capped at 1.0
SIGNAL_WEIGHTS: dict[str, tuple[float, str]] = {
    "blocklisted": (1.0, "Email is blocklisted"),
    "spam": (1.0, "Marked as spam"),
    "disposable": (0.8, "Disposable email address"),
    "relay_domain": (0.4, "Relay domain"),
    "role_account": (0.3, "Role/generic account"),
}


class ReputationProviderError(Exception):
    """Raised when the reputation API cannot produce a usable answer."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SenderReputationProvider(Protocol):
    async def check_email(self, email: str) -> ReputationRecord: ...


def score_reputation_payload(payload: dict) -> tuple[float, list[str]]:
    """Turn the API's boolean signals into a 0..1 spam score plus reasons."""
    score = 0.0
    reasons: list[str] = []

    for flag, (weight, reason) in SIGNAL_WEIGHTS.items():
        if payload.get(flag):
            score += weight
            reasons.append(reason)

    if payload.get("mx") is False:
        score += 0.7
        reasons.append("No MX records (invalid domain)")

    age = payload.get("domain_age_in_days")
    if isinstance(age, int | float) and age < YOUNG_DOMAIN_DAYS:
        score += 0.3
        reasons.append(f"Domain is very new ({int(age)} days old)")

    explicit = payload.get("spam_score")
    if isinstance(explicit, int | float):
        score = max(score, float(explicit))

    return min(score, 1.0), reasons


class HttpSenderReputationClient:
    """GET {base_url}/email/{address} with a bearer key."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        timeout_ms: int | None = None,
        client: httpx.AsyncClient | None = None,
        config: Settings = settings,
    ):
        self.base_url = (base_url or config.SENDER_REPUTATION_URL or "").rstrip("/")
        self.api_key = api_key or config.SENDER_REPUTATION_API_KEY
        self.timeout_s = (timeout_ms or config.SENDER_REPUTATION_TIMEOUT_MS) / 1000
        if not self.base_url:
            raise ReputationProviderError("SENDER_REPUTATION_URL not configured")

        self._client = client or httpx.AsyncClient(timeout=self.timeout_s)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def check_email(self, email: str) -> ReputationRecord:
        address = email.strip().lower()
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = await self._client.get(
                f"{self.base_url}/email/{quote(address, safe='@')}",
                headers=headers,
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as e:
            raise ReputationProviderError(f"Reputation request failed: {e}") from e

        if not response.is_success:
            raise ReputationProviderError(
                f"Reputation API error: {response.status_code}", status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ReputationProviderError(f"Invalid reputation response: {e}") from e

        if not isinstance(payload, dict):
            raise ReputationProviderError("Reputation response is not a JSON object")

        score, reasons = score_reputation_payload(payload)
        return ReputationRecord(
            email=address,
            is_spam=score >= SPAM_THRESHOLD,
            spam_score=round(score, 2),
            source="reputation_api",
            reason="; ".join(reasons) or None,
        )


class CachedSenderReputation:
    """Cache-first, fail-open wrapper around a SenderReputationProvider."""

    def __init__(self, provider: SenderReputationProvider, cache: ReputationCache):
        self.provider = provider
        self.cache = cache

    async def check_email(self, email: str) -> ReputationRecord:
        address = email.strip().lower()

        try:
            key = cache_key_for_email(address)
        except HashingError as e:
            logger.warning("Sender reputation cache disabled", error=str(e))
            key = None

        if key is not None:
            cached = await self.cache.get(key)
            if cached is not None:
                return ReputationRecord(
                    email=address,
                    is_spam=not cached.is_safe,
                    spam_score=0.0 if cached.is_safe else 1.0,
                    source=cached.source,
                    from_cache=True,
                )

        try:
            record = await self.provider.check_email(address)
        except Exception as e:
            logger.warning(
                "Sender reputation lookup failed, failing open",
                error=str(e),
                error_type=type(e).__name__,
            )
            return ReputationRecord(
                email=address,
                is_spam=False,
                spam_score=0.0,
                source="fail_open",
                reason=str(e) or type(e).__name__,
            )

        if key is not None:
            await self.cache.put(key, "blocked" if record.is_spam else "safe", record.source)
        return record
