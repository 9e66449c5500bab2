from mailguard.config import Settings
from mailguard.services.sender_list_service import DomainListPolicy, SenderListService, extract_sender_domain


def test_extract_sender_domain():
    assert extract_sender_domain("Bob <bob@Example.org>") == "example.org"
    assert extract_sender_domain("bob@example.org") == "example.org"
    assert extract_sender_domain("nobody") is None


def test_known_disposable_domain_is_spam():
    result = SenderListService().check_email("x@mailinator.com")

    assert result.is_spam is True
    assert result.confidence == "high"


def test_whitelist_overrides_known_spam():
    service = SenderListService(DomainListPolicy(whitelist_domains={"Mailinator.com"}))

    result = service.check_email("qa@mailinator.com")

    assert result.is_spam is False
    assert result.confidence == "high"
    assert result.reason == "Domain is whitelisted"


def test_custom_spam_domain():
    service = SenderListService(DomainListPolicy(spam_domains={"bulk-offers.net"}))

    assert service.check_email("deals@bulk-offers.net").is_spam is True


def test_suspicious_pattern_is_medium_confidence():
    result = SenderListService().check_email("alerts@secure-verify2024.com")

    assert result.is_spam is True
    assert result.confidence == "medium"
    assert "suspicious pattern" in result.reason


def test_clean_and_unparseable_senders():
    service = SenderListService()

    clean = service.check_email("alice@acme-corp.io")
    assert clean.is_spam is False
    assert clean.confidence == "low"

    unknown = service.check_email("not an address")
    assert unknown.is_spam is False
    assert unknown.domain == "unknown"


def test_check_emails_partitions_and_counts():
    summary = SenderListService().check_emails(
        ["a@acme-corp.io", "b@acme-corp.io", "c@yopmail.com", "d@partner.org"]
    )

    assert [r.email for r in summary.spam] == ["c@yopmail.com"]
    assert len(summary.clean) == 3
    assert summary.domain_counts[0] == ("acme-corp.io", 2)


def test_policy_from_settings():
    config = Settings(_env_file=None, SPAM_DOMAINS="a.com, B.com", WHITELIST_DOMAINS="c.com")

    policy = DomainListPolicy.from_settings(config)

    assert policy.spam_domains == {"a.com", "b.com"}
    assert policy.whitelist_domains == {"c.com"}
