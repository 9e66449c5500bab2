import httpx
import pytest
from fastapi.testclient import TestClient

from mailguard.main import app
from mailguard.models.domain.threat_domain import DnsProviderConfig
from mailguard.services.dns_firewall_service import DnsFirewallService

BLOCKED_DOMAINS = {"evil.tk"}


class StaticProvider:
    async def get_active_provider(self) -> DnsProviderConfig:
        return DnsProviderConfig("test-doh", "doh.test")


def _resolver(request: httpx.Request) -> httpx.Response:
    name = request.url.params["name"]
    if name in BLOCKED_DOMAINS:
        return httpx.Response(200, json={"Status": 3})
    return httpx.Response(200, json={"Status": 0, "Answer": [{"name": f"{name}.", "type": 1, "data": "10.0.0.1"}]})


def _phish(message_factory, message_id):
    return message_factory(
        message_id,
        from_address='"CEO" <ceo@gmail.com>',
        subject="Urgent wire transfer",
        header_message_id=None,
        received_spf="fail",
        dkim_result=None,
        dmarc_result=None,
        text_body="Pay at https://evil.tk/pay",
    )


@pytest.fixture
def client(message_factory, mailbox_factory):
    mailbox = mailbox_factory([message_factory("good"), _phish(message_factory, "bad")])

    with TestClient(app) as test_client:
        app.state.mailbox = mailbox
        app.state.dns_firewall = DnsFirewallService(
            app.state.reputation_cache,
            StaticProvider(),
            client=httpx.AsyncClient(transport=httpx.MockTransport(_resolver)),
        )
        test_client.mailbox = mailbox
        yield test_client
        app.state.mailbox = None


def test_check_single_domain(client):
    response = client.get("/threats/domains/Evil.tk")

    assert response.status_code == 200
    body = response.json()
    assert body["domain"] == "evil.tk"
    assert body["is_safe"] is False
    assert body["is_blocked"] is True
    assert body["provider"] == "test-doh"


def test_check_domains_deduplicates(client):
    response = client.post("/threats/domains/check", json={"domains": ["a.com", "A.com", "evil.tk"]})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["unique"] == 2
    assert body["blocked"] == 1
    assert body["safe"] == 1


def test_scan_message_with_auto_mark(client):
    response = client.post("/threats/messages/bad/scan", params={"auto_mark": True})

    assert response.status_code == 200
    body = response.json()
    assert body["blocked_domains"] == ["evil.tk"]
    assert body["marked_as_spam"] is True
    assert client.mailbox.marked == [("bad", "spam")]


def test_unknown_message_is_404(client):
    response = client.get("/threats/messages/missing/score")

    assert response.status_code == 404


def test_score_message(client):
    response = client.get("/threats/messages/good/score")

    assert response.status_code == 200
    body = response.json()
    assert body["total_score"] == 80
    assert body["confidence_band"] == "HIGH"
    assert body["flags"] == []


def test_bulk_score_with_filter(client):
    response = client.post("/threats/messages/score", json={"message_ids": ["good", "bad"], "max_score": 0})

    assert response.status_code == 200
    body = response.json()
    assert body["filter"] == "Score <= 0"
    assert [r["message_id"] for r in body["results"]] == ["bad"]


def test_folder_confidence(client):
    response = client.get("/threats/folders/INBOX/confidence", params={"limit": 10})

    assert response.status_code == 200
    body = response.json()
    assert body["analyzed"] == 2
    assert body["band_distribution"]["VERY_LOW"] == 1


def test_assess_message_recommends_quarantine(client):
    response = client.post("/threats/messages/bad/assess")

    assert response.status_code == 200
    body = response.json()
    assert body["recommended_action"] == "quarantine"
    assert body["actioned"] is False
    assert body["confidence"]["from_address"] == '"CEO" <ceo@gmail.com>'
    assert body["confidence"]["subject"] == "Urgent wire transfer"
    assert client.mailbox.marked == []


def test_bulk_assess_reports_errors(client):
    response = client.post(
        "/threats/messages/assess",
        json={"message_ids": ["good", "bad", "gone"], "auto_action": True},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["scanned"] == 2
    assert body["actioned_message_ids"] == ["bad"]
    assert "gone" in body["errors"]


def test_check_senders(client):
    response = client.post("/threats/senders/check", json={"emails": ["a@acme-corp.io", "x@mailinator.com"]})

    assert response.status_code == 200
    body = response.json()
    assert [s["email"] for s in body["spam"]] == ["x@mailinator.com"]
    assert body["domain_counts"] == {"acme-corp.io": 1, "mailinator.com": 1}


def test_mailbox_routes_need_a_transport():
    with TestClient(app) as test_client:
        app.state.mailbox = None
        response = test_client.get("/threats/messages/good/score")

    assert response.status_code == 503
    assert response.json()["detail"] == "No mailbox transport configured"
