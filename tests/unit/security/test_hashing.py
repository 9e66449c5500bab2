import pytest

from mailguard.security import hashing


def _configure_secret(monkeypatch, secret: str = "a" * 32):
    monkeypatch.setattr("mailguard.security.hashing.settings.HASHING_SECRET", secret, raising=False)


def test_compute_hmac_is_deterministic(monkeypatch):
    _configure_secret(monkeypatch)
    first = hashing.compute_hmac("value", namespace="test")
    second = hashing.compute_hmac("value", namespace="test")
    assert first == second


def test_namespaces_change_output(monkeypatch):
    _configure_secret(monkeypatch)
    assert hashing.compute_hmac("abc", namespace="a") != hashing.compute_hmac("abc", namespace="b")


def test_email_is_normalized_before_hashing(monkeypatch):
    _configure_secret(monkeypatch)
    assert hashing.hash_email("  Bob@Example.ORG ") == hashing.hash_email("bob@example.org")


def test_cache_key_hides_the_address(monkeypatch):
    _configure_secret(monkeypatch)
    key = hashing.cache_key_for_email("bob@example.org")

    assert key.startswith("email:")
    assert "example" not in key
    assert len(key) == len("email:") + 64


def test_secret_rotation_changes_keys(monkeypatch):
    _configure_secret(monkeypatch, "a" * 32)
    before = hashing.cache_key_for_email("bob@example.org")
    _configure_secret(monkeypatch, "b" * 32)

    assert hashing.cache_key_for_email("bob@example.org") != before


def test_missing_secret_raises(monkeypatch):
    monkeypatch.setattr("mailguard.security.hashing.settings.HASHING_SECRET", "", raising=False)
    with pytest.raises(hashing.HashingError):
        hashing.compute_hmac("value", namespace="test")


def test_too_short_secret_raises(monkeypatch):
    monkeypatch.setattr("mailguard.security.hashing.settings.HASHING_SECRET", "short", raising=False)
    with pytest.raises(hashing.HashingError):
        hashing.cache_key_for_email("bob@example.org")
