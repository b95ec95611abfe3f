import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional

# FastAPI creates the app object defines the different routes
from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from acme_dns_checker import __version__
from acme_dns_checker.config import get_settings
from acme_dns_checker.logging_config import setup_logging

# Challenge discovery (certbot logs) and the propagation engine
from discovery import CertbotLogDiscovery, DiscoveryError, StaticDiscovery
from propagation import (
    DEFAULT_RESOLVERS,
    GATE_RESOLVERS,
    ChallengeRecord,
    ConsensusPolicy,
    PropagationVerifier,
    ResolverPool,
    ValidationError,
    make_query,
)

# input validation
from reporting.targets import InvalidDomain, normalize_target, require_domain

# Combine a verification pass into something the user can see
from reporting.assembler import Assemble
from reporting.recommendations import Recommendations

logger = logging.getLogger(__name__)

settings = get_settings()
setup_logging(settings.log_level, settings.log_file)

app = FastAPI(title="ACME DNS-01 Propagation Checker", version=__version__)
assembler = Assemble()


# -----------------------------
# Request bodies
# -----------------------------

class DnsRecordIn(BaseModel):
    name: str = ""
    type: str = "TXT"
    value: Optional[str] = None
    domain: Optional[str] = None


class VerifyDnsRequest(BaseModel):
    records: Optional[List[DnsRecordIn]] = None


class TroubleshootDnsRequest(BaseModel):
    domain: str = ""
    dnsRecords: List[DnsRecordIn] = []


class ExtractDnsRequest(BaseModel):
    domain: str = ""


def to_challenge_records(items: List[DnsRecordIn]) -> List[ChallengeRecord]:
    return [
        ChallengeRecord(
            name=normalize_target(r.name),
            expected_value=(r.value or "").strip() or None,
            owner_domain=normalize_target(r.domain or ""),
            record_type=(r.type or "TXT").strip().upper(),
        )
        for r in items
    ]


# -----------------------------
# Dependencies (overridable in tests)
# -----------------------------

@lru_cache(maxsize=None)
def _query():
    return make_query(settings.backend)


def get_gate_verifier() -> PropagationVerifier:
    """Quorum verifier over the small pre-issuance pool."""
    pool = ResolverPool(GATE_RESOLVERS, query=_query(), timeout=settings.dns_timeout)
    return PropagationVerifier(pool, policy=ConsensusPolicy.QUORUM, max_workers=settings.max_workers)


def get_troubleshoot_verifier() -> PropagationVerifier:
    """Any-resolver verifier over the full catalog."""
    pool = ResolverPool(DEFAULT_RESOLVERS, query=_query(), timeout=settings.dns_timeout)
    return PropagationVerifier(pool, policy=ConsensusPolicy.ANY_RESOLVER, max_workers=settings.max_workers)


def get_discovery() -> CertbotLogDiscovery:
    return CertbotLogDiscovery(settings.certbot_log_path, tail_lines=settings.certbot_log_tail)


# -----------------------------
# Routes
# -----------------------------

@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}


# Pre-issuance gate: quorum of resolvers must confirm every record
@app.post("/verify-dns")
def verify_dns(body: VerifyDnsRequest, verifier: PropagationVerifier = Depends(get_gate_verifier)):
    if body.records is None:
        raise HTTPException(status_code=400, detail="DNS records array is required")

    try:
        verdicts, summary = verifier.verify(to_challenge_records(body.records))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    records = []
    for v in verdicts:
        rec = v.record.to_dict()
        rec.update({
            "verified": v.is_propagated,
            "currentValues": list(v.all_values),
            "verificationDetails": {
                "serversChecked": v.queried,
                "serversVerified": v.confirming_resolvers,
                "serverResults": [r.to_dict() for r in v.lookup_results],
            },
            "issues": [i.to_dict() for i in v.issues],
        })
        records.append(rec)

    pending = [r for r in records if not r["verified"]]
    if summary.all_records_verified:
        message = "All DNS records verified successfully!"
    else:
        message = (
            f"{summary.records_verified}/{summary.records_total} DNS records verified. "
            "Please wait for propagation of remaining records."
        )

    return JSONResponse(content={
        "success": True,
        "verified": summary.all_records_verified,
        "records": records,
        "summary": summary.to_dict(),
        "pendingRecords": pending,
        "message": message,
        "nextSteps": Recommendations.next_steps(summary),
    })


# Diagnose: why isn't the challenge visible yet?
@app.post("/troubleshoot-dns")
def troubleshoot_dns(
    body: TroubleshootDnsRequest,
    verifier: PropagationVerifier = Depends(get_troubleshoot_verifier),
):
    try:
        domain = require_domain(body.domain)
    except InvalidDomain as e:
        raise HTTPException(status_code=400, detail=str(e))

    records = to_challenge_records(body.dnsRecords) if body.dnsRecords else StaticDiscovery().discover(domain)

    try:
        verdicts, summary = verifier.verify(records)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    response = assembler.build(
        target=domain,
        verdicts=verdicts,
        summary=summary,
        meta={"version": __version__, "policy": verifier.policy.value},
    )
    response.update({
        "success": True,
        "domain": domain,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })
    return JSONResponse(content=response)


# Recover challenge records from recent certbot output
@app.post("/extract-dns")
def extract_dns(body: ExtractDnsRequest, discovery: CertbotLogDiscovery = Depends(get_discovery)):
    try:
        domain = require_domain(body.domain)
    except InvalidDomain as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        records = discovery.discover(domain)
    except DiscoveryError as e:
        logger.error("Challenge discovery failed for %s: %s", domain, e)
        raise HTTPException(status_code=500, detail=str(e))

    if not records:
        raise HTTPException(status_code=404, detail="No DNS records found in recent logs")

    return JSONResponse(content={
        "success": True,
        "message": "DNS records extracted from logs. Add these TXT records to your DNS provider.",
        "dnsRecords": [r.to_dict() for r in records],
        "instructions": [
            "Add the DNS TXT records shown above to your DNS provider",
            "Wait 5-10 minutes for DNS propagation",
            "Verify propagation before continuing certificate generation",
        ],
        "source": "extracted from certbot logs",
    })
