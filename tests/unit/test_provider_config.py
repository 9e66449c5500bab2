import pytest

from mailguard.config import Settings
from mailguard.models.domain.threat_domain import DnsProviderConfig
from mailguard.services.provider_config_service import FALLBACK_PROVIDER, ProviderConfigService


class StubRepository:
    def __init__(self, provider=None, error: Exception | None = None):
        self.provider = provider
        self.error = error

    async def get_default_provider(self):
        if self.error:
            raise self.error
        return self.provider


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


@pytest.mark.asyncio
async def test_repository_default_wins():
    row = DnsProviderConfig("cleanbrowsing", "doh.cleanbrowsing.org", is_default=True, timeout_ms=3000)
    service = ProviderConfigService(StubRepository(row), config=_settings())

    assert await service.get_active_provider() == row


@pytest.mark.asyncio
async def test_repository_failure_falls_back_to_settings():
    service = ProviderConfigService(
        StubRepository(error=RuntimeError("db down")),
        config=_settings(DNS_FIREWALL_PROVIDER_ID="custom", DNS_FIREWALL_ENDPOINT="doh.custom.net"),
    )

    provider = await service.get_active_provider()

    assert provider.provider_id == "custom"
    assert provider.endpoint == "doh.custom.net"


@pytest.mark.asyncio
async def test_disabled_repository_row_is_ignored():
    row = DnsProviderConfig("off", "doh.off.net", is_enabled=False)
    service = ProviderConfigService(StubRepository(row), config=_settings(DNS_FIREWALL_ENABLED=False))

    assert await service.get_active_provider() == FALLBACK_PROVIDER


@pytest.mark.asyncio
async def test_without_repository_or_endpoint_uses_quad9():
    service = ProviderConfigService(config=_settings(DNS_FIREWALL_ENDPOINT=""))

    provider = await service.get_active_provider()

    assert provider.provider_id == "quad9"
    assert provider.doh_url() == "https://dns.quad9.net/dns-query"
    assert provider.timeout_ms == 5000


@pytest.mark.parametrize(
    ("endpoint", "url"),
    [
        ("dns.quad9.net", "https://dns.quad9.net/dns-query"),
        ("https://doh.example.net/", "https://doh.example.net/dns-query"),
        ("https://doh.example.net/dns-query", "https://doh.example.net/dns-query"),
    ],
)
def test_doh_url(endpoint, url):
    assert DnsProviderConfig("p", endpoint).doh_url() == url
