"""
The command-line interface for the ACME DNS-01 propagation checker.

The command-line interface mirrors the flow of the API
  1) Validate + normalize each user-provided record / domain
  2) Run the propagation verifier (quorum for `verify`, any-resolver for `troubleshoot`)
  3) Assemble the results into a single JSON-safe response, or print a readable table
"""

import argparse
import json
import logging
import time
from typing import Any, Dict, List, Optional

from acme_dns_checker import __version__
from acme_dns_checker.config import get_settings
from acme_dns_checker.logging_config import setup_logging
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
from reporting.assembler import Assemble
from reporting.report import run_propagation_report
from reporting.targets import InvalidTarget, parse_record_arg, require_domain

logger = logging.getLogger(__name__)

EXIT_VERIFIED = 0
EXIT_PENDING = 1
EXIT_INVALID = 2
EXIT_ERROR = 3


# Parse the command-line arguments
def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    settings = get_settings()

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--json", dest="as_json", action="store_true", help="Output JSON")
    common.add_argument("--timeout", type=float, default=settings.dns_timeout, help="Per-lookup timeout (seconds)")
    common.add_argument("--backend", choices=["dnspython", "dig"], default=settings.backend, help="Resolver query backend")
    common.add_argument("--watch", action="store_true", help="Re-check until everything is verified")
    common.add_argument("--interval", type=float, default=60.0, help="Seconds between --watch passes")
    common.add_argument("--max-attempts", type=int, default=10, help="Give up after this many --watch passes")
    common.add_argument("--debug", action="store_true", help="Debug logging")

    p = argparse.ArgumentParser(description="ACME DNS-01 propagation checker")
    p.add_argument("--version", action="version", version=__version__)
    sub = p.add_subparsers(dest="command", required=True)

    v = sub.add_parser("verify", parents=[common], help="Gate check before issuance (quorum of resolvers)")
    v.add_argument("records", nargs="+", help="NAME=VALUE (e.g., _acme-challenge.example.com=abc...)")
    v.add_argument("--any", dest="any_resolver", action="store_true",
                   help="Accept a value seen by any resolver instead of a quorum")

    t = sub.add_parser("troubleshoot", parents=[common], help="Diagnose propagation across the full resolver catalog")
    t.add_argument("domain", help="Domain name (e.g., example.com)")
    t.add_argument("--record", dest="records", action="append", default=[],
                   help="NAME[=VALUE] to check instead of _acme-challenge.<domain> (repeatable)")
    t.add_argument("--quorum", action="store_true", help="Use the quorum policy")

    e = sub.add_parser("extract", parents=[common], help="Find challenge records in the certbot log")
    e.add_argument("domain", help="Domain name (e.g., example.com)")
    e.add_argument("--log", dest="log_path", default=settings.certbot_log_path, help="certbot log file")
    e.add_argument("--check", action="store_true", help="Verify the extracted records right away")

    return p.parse_args(argv)


def build_records(raw: List[str]) -> List[ChallengeRecord]:
    """
    Validate + normalize all NAME[=VALUE] arguments.

    We validate everything first so errors are reported together and we don't do partial work.

    Raises:
        SystemExit(2): if any argument is invalid.
    """
    records: List[ChallengeRecord] = []
    errors: List[str] = []

    for r in raw:
        try:
            name, value = parse_record_arg(r)
            records.append(ChallengeRecord(name=name, expected_value=value))
        except InvalidTarget as e:
            errors.append(str(e))

    if errors:
        for e in errors:
            print(f"Invalid input: {e}")
        raise SystemExit(EXIT_INVALID)

    return records


def make_verifier(args: argparse.Namespace, gate: bool, policy: ConsensusPolicy) -> PropagationVerifier:
    pool = ResolverPool(
        GATE_RESOLVERS if gate else DEFAULT_RESOLVERS,
        query=make_query(args.backend),
        timeout=args.timeout,
    )
    return PropagationVerifier(pool, policy=policy, max_workers=get_settings().max_workers)


def run_pass(
    verifier: PropagationVerifier,
    records: List[ChallengeRecord],
    target: str,
    assembler: Assemble,
) -> Dict[str, Any]:
    verdicts, summary = verifier.verify(records)
    response = assembler.build(
        target=target,
        verdicts=verdicts,
        summary=summary,
        meta={"version": __version__, "source": "cli", "policy": verifier.policy.value},
    )
    response["_verdicts"] = verdicts
    return response


def print_human(response: Dict[str, Any]) -> None:
    """Print a readable console output for one verification pass."""
    status = response.get("globalDnsStatus") or {}
    print(f"\n== {response.get('target', '')} ==")
    print(
        f"Records verified: {status.get('verified', 0)}/{status.get('total', 0)} | "
        f"Lookups answered: {status.get('totalSuccessfulLookups', 0)}/{status.get('totalResolversQueried', 0)} "
        f"({status.get('propagationPercentage', 0):.0f}%)"
    )

    df, analytics = run_propagation_report(response.get("_verdicts") or [])
    if not df.empty:
        print()
        print(df.drop(columns=["value_set"]).to_string(index=False))
        by_resolver = analytics["by_resolver"]
        if not by_resolver.empty and (by_resolver["success_rate"] < 100).any():
            print("\nResolver response rates:")
            print(by_resolver.to_string(index=False))

    findings = response.get("findings") or []
    if findings:
        print()
    for f in findings:
        print(f"- [{f.get('severity', 'unknown')}] {f.get('record', '')}: {f.get('message', '')}")

    recs = response.get("recommendations") or []
    if recs:
        print("\nRecommendations:")
        for r in recs:
            print(f"  * {r}")


def emit(response: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        out = {k: v for k, v in response.items() if not k.startswith("_")}
        print(json.dumps(out, indent=2))
    else:
        print_human(response)


def verify_loop(
    args: argparse.Namespace,
    verifier: PropagationVerifier,
    records: List[ChallengeRecord],
    target: str,
) -> int:
    """Run one pass, or keep polling with --watch until verified or out of attempts."""
    assembler = Assemble()
    attempts = max(1, args.max_attempts) if args.watch else 1

    for attempt in range(1, attempts + 1):
        response = run_pass(verifier, records, target, assembler)
        emit(response, args.as_json)

        if response["globalDnsStatus"]["allRecordsVerified"]:
            return EXIT_VERIFIED
        if attempt < attempts:
            logger.info("Not propagated yet (attempt %d/%d); checking again in %ss", attempt, attempts, args.interval)
            time.sleep(args.interval)

    return EXIT_PENDING


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entrypoint.

    Returns:
        Process exit code (0 = verified, 1 = pending, 2 = invalid input, 3 = challenge source unreadable).
    """
    args = parse_args(argv)
    settings = get_settings()
    setup_logging("DEBUG" if args.debug else settings.log_level, settings.log_file)

    try:
        if args.command == "verify":
            records = build_records(args.records)
            policy = ConsensusPolicy.ANY_RESOLVER if args.any_resolver else ConsensusPolicy.QUORUM
            verifier = make_verifier(args, gate=True, policy=policy)
            target = records[0].owner_domain
            return verify_loop(args, verifier, records, target)

        if args.command == "troubleshoot":
            domain = require_domain(args.domain)
            records = build_records(args.records) if args.records else StaticDiscovery().discover(domain)
            policy = ConsensusPolicy.QUORUM if args.quorum else ConsensusPolicy.ANY_RESOLVER
            verifier = make_verifier(args, gate=False, policy=policy)
            return verify_loop(args, verifier, records, domain)

        # extract
        domain = require_domain(args.domain)
        try:
            records = CertbotLogDiscovery(args.log_path, tail_lines=settings.certbot_log_tail).discover(domain)
        except DiscoveryError as e:
            print(f"Error: {e}")
            return EXIT_ERROR

        if not records:
            print("No DNS records found in recent logs")
            return EXIT_PENDING

        if not args.check:
            if args.as_json:
                print(json.dumps({"dnsRecords": [r.to_dict() for r in records]}, indent=2))
            else:
                for r in records:
                    print(f"{r.name}\tTXT\t{r.expected_value}")
            return EXIT_VERIFIED

        verifier = make_verifier(args, gate=True, policy=ConsensusPolicy.QUORUM)
        return verify_loop(args, verifier, records, domain)

    except (InvalidTarget, ValidationError) as e:
        print(f"Invalid input: {e}")
        return EXIT_INVALID


if __name__ == "__main__":
    raise SystemExit(main())
