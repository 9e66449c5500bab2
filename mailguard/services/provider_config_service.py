"""
DNS firewall provider resolution.

Order: enabled default row from the provider repository, then settings, then
the hardcoded Quad9 provider. Resolution never fails.
"""

from typing import Protocol

from mailguard.config import Settings, settings
from mailguard.infrastructure.observability.logging import get_logger
from mailguard.models.domain.threat_domain import DnsProviderConfig

logger = get_logger(__name__)

FALLBACK_PROVIDER = DnsProviderConfig(
    provider_id="quad9",
    endpoint="dns.quad9.net",
    is_enabled=True,
    is_default=True,
    timeout_ms=5000,
)


class ProviderSource(Protocol):
    async def get_default_provider(self) -> DnsProviderConfig | None: ...


class ProviderConfigService:
    def __init__(self, repository: ProviderSource | None = None, config: Settings = settings):
        self.repository = repository
        self.config = config

    async def get_active_provider(self) -> DnsProviderConfig:
        if self.repository is not None:
            try:
                provider = await self.repository.get_default_provider()
                if provider and provider.is_enabled and provider.endpoint:
                    return provider
            except Exception as e:
                logger.warning("Provider lookup failed, using fallback", error=str(e))

        return self._provider_from_settings()

    def _provider_from_settings(self) -> DnsProviderConfig:
        if not self.config.DNS_FIREWALL_ENABLED or not self.config.DNS_FIREWALL_ENDPOINT:
            return FALLBACK_PROVIDER

        return DnsProviderConfig(
            provider_id=self.config.DNS_FIREWALL_PROVIDER_ID or FALLBACK_PROVIDER.provider_id,
            endpoint=self.config.DNS_FIREWALL_ENDPOINT,
            is_enabled=True,
            is_default=True,
            timeout_ms=self.config.DNS_FIREWALL_TIMEOUT_MS or FALLBACK_PROVIDER.timeout_ms,
        )
