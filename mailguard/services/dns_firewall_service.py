"""
DNS firewall domain validation over DNS-over-HTTPS.

Threat intelligence resolvers (Quad9 by default) answer NXDOMAIN or an empty
answer for domains they block. A domain is SAFE only when the resolver
returns Status 0 with a non-empty Answer section.

Failure policy is fail open: a transport error, a non-2xx response, an
unparseable body or a timeout resolves that single domain as SAFE. A flaky
resolver must never quarantine legitimate mail. Fail-open verdicts are cached
like any other verdict; the error text stays on the returned result.
"""

import asyncio
import time
from dataclasses import dataclass

import httpx

from mailguard.config import settings
from mailguard.infrastructure.observability.logging import get_logger, log_domain_check
from mailguard.models.domain.threat_domain import (
    DnsProviderConfig,
    DomainValidationResult,
    MessageScanResult,
)
from mailguard.services.provider_config_service import ProviderConfigService
from mailguard.services.reputation_cache import ReputationCache, utc_now

logger = get_logger(__name__)

DNS_JSON_CONTENT_TYPE = "application/dns-json"
DNS_STATUS_NOERROR = 0
DEFAULT_BATCH_SIZE = settings.DNS_FIREWALL_BATCH_SIZE


class DnsQueryError(Exception):
    """Raised internally when a DoH query does not yield a usable answer."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True, frozen=True)
class _LookupOutcome:
    is_safe: bool
    provider: str
    error: str | None = None


def is_safe_answer(payload: dict) -> bool:
    """Decision rule for a parsed application/dns-json body."""
    answer = payload.get("Answer")
    return payload.get("Status") == DNS_STATUS_NOERROR and isinstance(answer, list) and len(answer) > 0


class DnsFirewallService:
    """Validates domains against a DoH threat intelligence provider with caching."""

    def __init__(
        self,
        cache: ReputationCache,
        provider_service: ProviderConfigService | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.cache = cache
        self.provider_service = provider_service or ProviderConfigService()
        self.batch_size = batch_size
        self._client = client or httpx.AsyncClient(limits=httpx.Limits(max_connections=50))
        self._owns_client = client is None
        self._inflight: dict[str, asyncio.Task] = {}

    async def close(self) -> None:
        """Close the underlying HTTP client when this service created it."""
        if self._owns_client:
            await self._client.aclose()

    async def check_domain(self, domain: str) -> DomainValidationResult:
        """
        Check a single domain, consulting the cache first.

        Never raises: any upstream failure produces a SAFE result with the
        error text attached.
        """
        started = time.perf_counter()
        key = domain.strip().lower()

        cached = await self.cache.get(key)
        if cached is not None:
            result = DomainValidationResult(
                domain=key,
                is_safe=cached.is_safe,
                provider=cached.source,
                checked_at=cached.checked_at,
                response_time_ms=_elapsed_ms(started),
                from_cache=True,
            )
            log_domain_check(key, result.is_safe, result.provider, result.response_time_ms, True)
            return result

        outcome = await self._coalesced_lookup(key)
        result = DomainValidationResult(
            domain=key,
            is_safe=outcome.is_safe,
            provider=outcome.provider,
            checked_at=utc_now(),
            response_time_ms=_elapsed_ms(started),
            from_cache=False,
            error=outcome.error,
        )
        log_domain_check(key, result.is_safe, result.provider, result.response_time_ms, False)
        return result

    async def check_domains(self, domains: list[str]) -> dict[str, DomainValidationResult]:
        """
        Check many domains with bounded concurrency.

        Input is deduplicated, then processed in batches of batch_size. Checks
        inside a batch run concurrently; each batch completes before the next
        starts. Results are keyed by domain so completion order is irrelevant.
        """
        unique = list(dict.fromkeys(d.strip().lower() for d in domains if d and d.strip()))
        results: dict[str, DomainValidationResult] = {}

        batches = [unique[i : i + self.batch_size] for i in range(0, len(unique), self.batch_size)]
        for batch_num, batch in enumerate(batches, 1):
            logger.debug(
                "Checking domain batch",
                batch_number=batch_num,
                batch_size=len(batch),
                total_batches=len(batches),
            )
            batch_results = await asyncio.gather(*(self.check_domain(domain) for domain in batch))
            for result in batch_results:
                results[result.domain] = result

        return results

    async def validate_message_domains(self, message_id: str, domains: list[str]) -> MessageScanResult:
        """Fold per-domain verdicts into one message-level result."""
        started = time.perf_counter()

        if not domains:
            return MessageScanResult(
                message_id=message_id,
                is_safe=True,
                domains=[],
                blocked_domains=[],
                total_domains=0,
                scan_time_ms=_elapsed_ms(started),
            )

        results = await self.check_domains(domains)
        blocked = [domain for domain, result in results.items() if result.is_blocked]

        return MessageScanResult(
            message_id=message_id,
            is_safe=not blocked,
            domains=list(domains),
            blocked_domains=blocked,
            total_domains=len(domains),
            scan_time_ms=_elapsed_ms(started),
        )

    async def _coalesced_lookup(self, domain: str) -> _LookupOutcome:
        """Share one upstream query between concurrent misses for the same domain."""
        task = self._inflight.get(domain)
        if task is None:
            task = asyncio.ensure_future(self._lookup(domain))
            self._inflight[domain] = task
            task.add_done_callback(lambda _t, key=domain: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    async def _lookup(self, domain: str) -> _LookupOutcome:
        provider = await self.provider_service.get_active_provider()

        error: str | None = None
        try:
            is_safe = await self._query_doh(domain, provider)
        except TimeoutError:
            logger.warning(
                "DoH query timed out, failing open",
                domain=domain,
                provider=provider.provider_id,
                timeout_ms=provider.timeout_ms,
            )
            is_safe, error = True, f"timeout after {provider.timeout_ms}ms"
        except (httpx.HTTPError, DnsQueryError) as e:
            logger.warning(
                "DoH query failed, failing open",
                domain=domain,
                provider=provider.provider_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            is_safe, error = True, str(e) or type(e).__name__
        except Exception as e:
            logger.error(
                "Unexpected DoH failure, failing open",
                domain=domain,
                provider=provider.provider_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            is_safe, error = True, str(e) or type(e).__name__

        await self.cache.put(domain, "safe" if is_safe else "blocked", provider.provider_id)
        return _LookupOutcome(is_safe, provider.provider_id, error)

    async def _query_doh(self, domain: str, provider: DnsProviderConfig) -> bool:
        headers = {"Accept": DNS_JSON_CONTENT_TYPE}
        if provider.api_key:
            headers["Authorization"] = f"Bearer {provider.api_key}"

        timeout_s = provider.timeout_ms / 1000
        response = await asyncio.wait_for(
            self._client.get(
                provider.doh_url(),
                params={"name": domain, "type": "A"},
                headers=headers,
                timeout=timeout_s,
            ),
            timeout=timeout_s,
        )

        if not response.is_success:
            raise DnsQueryError(f"DoH HTTP {response.status_code}", status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise DnsQueryError(f"Invalid DoH response body: {e}", status_code=response.status_code) from e

        if not isinstance(payload, dict):
            raise DnsQueryError("DoH response is not a JSON object", status_code=response.status_code)

        return is_safe_answer(payload)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
