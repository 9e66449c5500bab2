"""
Application entry point with reputation backend lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from mailguard.config import settings
from mailguard.db.pool import db_pool
from mailguard.infrastructure.observability.logging import get_logger, setup_logging
from mailguard.repositories.postgres_reputation_repository import ensure_schema
from mailguard.repositories.provider_repository import ProviderRepository
from mailguard.routes import health, threats
from mailguard.services.confidence_scoring_service import ConfidenceScoringService
from mailguard.services.dns_firewall_service import DnsFirewallService
from mailguard.services.domain_extraction_service import DomainExtractionService
from mailguard.services.infrastructure.redis_client import fast_redis
from mailguard.services.provider_config_service import ProviderConfigService
from mailguard.services.reputation_store_factory import create_reputation_cache
from mailguard.services.sender_list_service import DomainListPolicy, SenderListService
from mailguard.services.sender_reputation_service import CachedSenderReputation, HttpSenderReputationClient

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


def build_services(app: FastAPI) -> None:
    """Attach the threat services to app.state. The mailbox transport is left to the embedder."""
    state = app.state
    cache = create_reputation_cache(settings)
    provider_service = ProviderConfigService(ProviderRepository() if db_pool.is_initialized else None)

    state.reputation_cache = cache
    state.extractor = DomainExtractionService()
    state.scorer = ConfidenceScoringService()
    state.dns_firewall = DnsFirewallService(cache, provider_service)
    state.sender_list = SenderListService(DomainListPolicy.from_settings(settings))

    state.sender_reputation_client = None
    state.sender_reputation = None
    if settings.SENDER_REPUTATION_URL:
        state.sender_reputation_client = HttpSenderReputationClient()
        state.sender_reputation = CachedSenderReputation(state.sender_reputation_client, cache)

    if not hasattr(state, "mailbox"):
        state.mailbox = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    startup_tasks = []

    try:
        if settings.DATABASE_URL:
            logger.info("Initializing database pool")
            await db_pool.initialize()
            startup_tasks.append("database_pool")
            await ensure_schema()

        if settings.REDIS_URL:
            logger.info("Initializing Redis connection")
            await fast_redis.initialize()
            startup_tasks.append("redis")

        build_services(app)
        startup_tasks.append("threat_services")

        logger.info("All services initialized successfully", services=startup_tasks)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)

        if "redis" in startup_tasks:
            await fast_redis.close()

        if "database_pool" in startup_tasks:
            try:
                await db_pool.close()
            except Exception as cleanup_error:
                logger.error("Error cleaning up database pool", error=str(cleanup_error))

        raise

    yield

    # Shutdown sequence (reverse order)
    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await app.state.dns_firewall.close()
        if app.state.sender_reputation_client is not None:
            await app.state.sender_reputation_client.close()
    except Exception as e:
        logger.error("Error closing HTTP clients", error=str(e))
        shutdown_errors.append(f"HTTP: {e}")

    if "redis" in startup_tasks:
        await fast_redis.close()

    if "database_pool" in startup_tasks:
        try:
            logger.info("Closing database pool")
            await db_pool.close()
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))
            shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Mailguard",
    description="Inbound email threat assessment",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(threats.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
