# test_app.py
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from acme_dns_checker.app import app, get_discovery, get_gate_verifier, get_troubleshoot_verifier
from conftest import FOUR_RESOLVERS, FakeTxtQuery, timeout_error
from discovery import CertbotLogDiscovery
from propagation import ConsensusPolicy, PropagationVerifier, ResolverPool

NAME = "_acme-challenge.example.com"
TOKEN = "gfj9Xq-Rg85nM_Kv8Yw1Oo3pXr7d2c8M0sbBtZ4q1sQ"


def _override(dependency, query: FakeTxtQuery, policy: ConsensusPolicy):
    pool = ResolverPool(FOUR_RESOLVERS, query=query, timeout=1)
    app.dependency_overrides[dependency] = lambda: PropagationVerifier(pool, policy=policy)


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


# ----------------------------
# /verify-dns
# ----------------------------
def test_verify_dns_all_verified(client):
    _override(get_gate_verifier, FakeTxtQuery(default=f'"{TOKEN}"'), ConsensusPolicy.QUORUM)
    res = client.post("/verify-dns", json={"records": [{"name": NAME, "type": "TXT", "value": TOKEN}]})

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["verified"] is True
    assert body["message"] == "All DNS records verified successfully!"
    assert body["nextSteps"] == ["Proceed to certificate generation"]
    assert body["pendingRecords"] == []

    rec = body["records"][0]
    assert rec["name"] == NAME
    assert rec["currentValues"] == [TOKEN]
    assert rec["verificationDetails"]["serversChecked"] == 4
    assert rec["verificationDetails"]["serversVerified"] == 4
    assert body["summary"]["verified"] == 1


def test_verify_dns_single_confirmation_is_pending(client):
    q = FakeTxtQuery(by_address={"10.0.0.1": f'"{TOKEN}"'}, default="")
    _override(get_gate_verifier, q, ConsensusPolicy.QUORUM)
    res = client.post("/verify-dns", json={"records": [{"name": NAME, "value": TOKEN}]})

    body = res.json()
    assert res.status_code == 200
    assert body["verified"] is False
    assert body["message"].startswith("0/1 DNS records verified")
    assert [r["name"] for r in body["pendingRecords"]] == [NAME]
    assert body["nextSteps"][0] == "Wait 5-10 minutes for DNS propagation"


def test_verify_dns_requires_records(client):
    q = FakeTxtQuery()
    _override(get_gate_verifier, q, ConsensusPolicy.QUORUM)

    assert client.post("/verify-dns", json={}).status_code == 400
    assert client.post("/verify-dns", json={"records": []}).status_code == 400
    assert client.post("/verify-dns", json={"records": [{"name": "example.com"}]}).status_code == 400
    assert q.calls == []


# ----------------------------
# /troubleshoot-dns
# ----------------------------
def test_troubleshoot_defaults_to_challenge_name(client):
    q = FakeTxtQuery(by_address={"10.0.0.4": timeout_error()}, default=f'"{TOKEN}"')
    _override(get_troubleshoot_verifier, q, ConsensusPolicy.ANY_RESOLVER)
    res = client.post("/troubleshoot-dns", json={"domain": "Example.com"})

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["domain"] == "example.com"
    assert body["timestamp"]
    assert {n for n, _, _ in q.calls} == {NAME}

    status = body["globalDnsStatus"]
    assert status["totalResolversQueried"] == 4
    assert status["totalSuccessfulLookups"] == 3
    assert status["propagationPercentage"] == 75.0
    assert body["dnsResults"][0]["propagated"] is True
    assert body["findings"] == []
    # 75% is not above the healthy threshold.
    assert body["recommendations"][-1].startswith("DNS propagation is not complete yet")


def test_troubleshoot_reports_inconsistency(client):
    q = FakeTxtQuery(by_address={"10.0.0.1": '"abc"', "10.0.0.2": '"abc"', "10.0.0.3": '"xyz"', "10.0.0.4": '"xyz"'})
    _override(get_troubleshoot_verifier, q, ConsensusPolicy.ANY_RESOLVER)
    res = client.post("/troubleshoot-dns", json={
        "domain": "example.com",
        "dnsRecords": [{"name": NAME, "value": "abc"}],
    })

    body = res.json()
    assert [f["issue"] for f in body["findings"]] == ["INCONSISTENT_ACROSS_RESOLVERS"]
    assert "Wait 10-15 minutes for DNS propagation to complete" in body["recommendations"]
    assert body["recommendations"][-1].startswith("DNS propagation looks good")


def test_troubleshoot_rejects_bad_domain(client):
    _override(get_troubleshoot_verifier, FakeTxtQuery(), ConsensusPolicy.ANY_RESOLVER)
    assert client.post("/troubleshoot-dns", json={"domain": "not a domain"}).status_code == 400
    assert client.post("/troubleshoot-dns", json={}).status_code == 400


# ----------------------------
# /extract-dns
# ----------------------------
def test_extract_dns(client, tmp_path):
    log = tmp_path / "letsencrypt.log"
    log.write_text(f"DNS_RECORD_NAME: _acme-challenge.example.com\nDNS_RECORD_VALUE: {TOKEN}\n", encoding="utf-8")
    app.dependency_overrides[get_discovery] = lambda: CertbotLogDiscovery(log)

    res = client.post("/extract-dns", json={"domain": "example.com"})
    assert res.status_code == 200
    body = res.json()
    assert body["dnsRecords"] == [{"name": NAME, "type": "TXT", "value": TOKEN, "domain": "example.com"}]
    assert body["instructions"]


def test_extract_dns_nothing_found(client, tmp_path):
    log = tmp_path / "letsencrypt.log"
    log.write_text("nothing to see here\n", encoding="utf-8")
    app.dependency_overrides[get_discovery] = lambda: CertbotLogDiscovery(log)
    assert client.post("/extract-dns", json={"domain": "example.com"}).status_code == 404


def test_extract_dns_unreadable_log(client, tmp_path):
    app.dependency_overrides[get_discovery] = lambda: CertbotLogDiscovery(tmp_path / "missing.log")
    assert client.post("/extract-dns", json={"domain": "example.com"}).status_code == 500
