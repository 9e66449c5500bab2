from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


def _split_domains(raw: str | None) -> set[str]:
    if not raw:
        return set()
    return {part.strip().lower() for part in raw.split(",") if part.strip()}


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # DNS firewall (DNS-over-HTTPS threat intelligence)
    DNS_FIREWALL_ENABLED: bool = True
    DNS_FIREWALL_PROVIDER_ID: str = "quad9"
    DNS_FIREWALL_ENDPOINT: str = "dns.quad9.net"
    DNS_FIREWALL_TIMEOUT_MS: int = 5000
    DNS_FIREWALL_BATCH_SIZE: int = 10

    # Reputation cache
    REPUTATION_CACHE_TTL_SECONDS: int = 86400  # 24 hours
    REPUTATION_CACHE_BACKEND: str = "memory"  # memory | redis | postgres
    CACHE_SWEEP_INTERVAL_SECONDS: int = 3600

    # Redis settings
    REDIS_URL: str | None = None

    # Postgres settings
    DATABASE_URL: str | None = None
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0

    # Used to pseudonymize email addresses before they become cache keys
    HASHING_SECRET: str | None = None

    # Comma-separated custom domain lists
    SPAM_DOMAINS: str | None = None
    WHITELIST_DOMAINS: str | None = None

    # Optional third-party sender reputation API
    SENDER_REPUTATION_URL: str | None = None
    SENDER_REPUTATION_API_KEY: str | None = None
    SENDER_REPUTATION_TIMEOUT_MS: int = 5000

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def spam_domain_set(self) -> set[str]:
        return _split_domains(self.SPAM_DOMAINS)

    def whitelist_domain_set(self) -> set[str]:
        return _split_domains(self.WHITELIST_DOMAINS)

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
        }

        if self.environment == "development":
            config.update({"min_size": 1, "max_size": 4, "timeout": 15.0})

        return config


settings = Settings()
