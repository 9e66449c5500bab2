import pytest

from mailguard.services.domain_extraction_service import DomainExtractionService, normalize_domain

extractor = DomainExtractionService()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Example.COM", "example.com"),
        ("example.com.", "example.com"),
        ("example.com:8443", "example.com"),
        ("  mail.example.org  ", "mail.example.org"),
        ("localhost", None),
        ("a.b", None),
        (".example.com", None),
        ("example.com..", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_domain(raw, expected):
    assert normalize_domain(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "Example.COM.",
        "example.com:80.",
        "example.com.:80",
        "example.com:80:81",
        "EXAMPLE.co.uk:443",
        "ex ample.com",
        "xn--pypal-4ve.com",
        "..",
        "a.bc",
    ],
)
def test_normalize_domain_is_idempotent(raw):
    once = normalize_domain(raw)
    assert normalize_domain(once) == once


def test_extract_from_headers_collects_address_domains():
    domains = extractor.extract_from_headers(
        "Alice <alice@Example.COM>",
        ["bob@partner.org", "Carol <carol@partner.org>"],
        "reply@replies.net",
    )

    assert domains == {"example.com", "partner.org", "replies.net"}


def test_extract_from_body_scans_urls_and_addresses():
    text = "Visit https://user:pw@Shop.Example.com:8443/cart or write to help@support.io."
    html = '<a href="https://evil.tk/login?next=1">Login</a> <a href="mailto:sales@vendor.biz">mail</a>'

    domains = extractor.extract_from_body(text=text, html=html)

    assert domains == {"shop.example.com", "support.io", "evil.tk", "vendor.biz"}


def test_extract_from_body_ignores_malformed_input():
    assert extractor.extract_from_body(text="http:// nothing here @ all", html="<<<>>>") == set()
    assert extractor.extract_from_body() == set()


def test_extract_all_domains_orders_headers_before_body(message_factory):
    message = message_factory(
        from_address="Alice <alice@acme-corp.io>",
        to=["team@partners.net"],
        text_body="Links: https://tracker.example.org/x and https://acme-corp.io/home",
        html_body=None,
    )

    assert extractor.extract_all_domains(message) == ["acme-corp.io", "partners.net", "tracker.example.org"]


def test_extract_from_messages_and_unique_domains(message_factory):
    first = message_factory("m1", text_body="https://one.example.com")
    second = message_factory("m2", text_body="https://two.example.com https://one.example.com")

    per_message = extractor.extract_from_messages([first, second])
    assert per_message["m1"] == ["acme-corp.io", "one.example.com"]
    assert per_message["m2"] == ["acme-corp.io", "two.example.com", "one.example.com"]

    assert extractor.get_unique_domains([first, second]) == ["acme-corp.io", "one.example.com", "two.example.com"]


def test_filter_safe_domains_drops_common_providers():
    assert extractor.filter_safe_domains(["gmail.com", "evil.tk", "outlook.com", "acme-corp.io"]) == [
        "evil.tk",
        "acme-corp.io",
    ]
