"""
Deterministic HMAC-SHA256 helpers for reputation cache keys.

Email addresses are never stored as cache keys in clear text; the cache only
ever sees the namespaced digest.
"""

from __future__ import annotations

import hashlib
import hmac

from mailguard.config import settings

SECRET_MIN_LENGTH = 16  # keep configurable but catch obvious misconfiguration

__all__ = [
    "HashingError",
    "compute_hmac",
    "hash_email",
    "cache_key_for_email",
]


class HashingError(RuntimeError):
    """Raised when hashing prerequisites are not satisfied."""


def _secret_bytes() -> bytes:
    secret = getattr(settings, "HASHING_SECRET", None)
    if not secret:
        raise HashingError("HASHING_SECRET is not configured")
    if len(secret) < SECRET_MIN_LENGTH:
        raise HashingError("HASHING_SECRET is too short; please rotate it")
    return secret.encode("utf-8")


def compute_hmac(value: str, *, namespace: str) -> str:
    """
    Compute a namespaced hex HMAC-SHA256 digest.

    Args:
        value: Raw string value to hash (will be normalized by caller).
        namespace: Logical namespace/salt to avoid cross-field collisions.
    """
    payload = value or ""
    scoped = f"{namespace}:{payload}"
    digest = hmac.new(_secret_bytes(), scoped.encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def hash_email(email: str | None) -> str:
    """Deterministically hash a single email address."""
    return compute_hmac(_normalize_email(email), namespace="email")


def cache_key_for_email(email: str | None) -> str:
    """Reputation cache key for a sender address."""
    return f"email:{hash_email(email)}"
