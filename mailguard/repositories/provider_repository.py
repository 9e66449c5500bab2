"""Reads DNS firewall provider rows from Postgres."""

from mailguard.db.helpers import fetch_one
from mailguard.models.domain.threat_domain import DnsProviderConfig


class ProviderRepository:
    async def get_default_provider(self) -> DnsProviderConfig | None:
        """Return the enabled default provider row, if any."""
        row = await fetch_one(
            """
            SELECT provider_id, api_endpoint, api_key, is_enabled, is_default, timeout_ms
            FROM dns_firewall_providers
            WHERE is_enabled = TRUE AND is_default = TRUE
            ORDER BY updated_at DESC
            LIMIT 1
            """
        )
        if not row:
            return None

        return DnsProviderConfig(
            provider_id=row["provider_id"],
            endpoint=row["api_endpoint"],
            api_key=row.get("api_key"),
            is_enabled=bool(row["is_enabled"]),
            is_default=bool(row["is_default"]),
            timeout_ms=int(row["timeout_ms"]),
        )
