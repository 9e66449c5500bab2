"""
Structured logging setup for the threat assessment service.
Provides JSON-formatted logs with consistent fields for production monitoring.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _add_service_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag every entry with the emitting service."""
    event_dict.setdefault("service", "mailguard")
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_domain_check(domain: str, is_safe: bool, provider: str, response_time_ms: float, from_cache: bool):
    """Log a DNS firewall verdict with consistent fields."""
    logger = get_logger("dns_firewall")

    log_data = {
        "domain": domain,
        "is_safe": is_safe,
        "provider": provider,
        "response_time_ms": response_time_ms,
        "from_cache": from_cache,
        "event_type": "domain_check",
    }

    if is_safe:
        logger.debug("Domain check completed", **log_data)
    else:
        logger.info("Domain blocked by DNS firewall", **log_data)


def log_assessment(message_id: str, action: str, domain_safe: bool, band: str, actioned: bool):
    """Log a combined message verdict with consistent fields."""
    logger = get_logger("threat")

    log_data = {
        "message_id": message_id,
        "recommended_action": action,
        "domain_safe": domain_safe,
        "confidence_band": band,
        "actioned": actioned,
        "event_type": "threat_assessment",
    }

    if action == "quarantine":
        logger.warning("Message flagged for quarantine", **log_data)
    else:
        logger.info("Message assessed", **log_data)
