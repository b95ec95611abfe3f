from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

from propagation.models import IssueKind, PropagationSummary, RecordVerdict


# Closing line threshold: strictly above this share of lookups must have succeeded.
HEALTHY_PROPAGATION_PERCENT = 75.0


class Recommendations:
    # Per-finding guidance (attached to each issue by the assembler)
    _MAP = {
        "NO_VALUES_FOUND": (
            "No TXT record is visible at this name yet. Add the _acme-challenge TXT record at your DNS provider "
            "exactly as issued, on the correct zone, then re-check after a few minutes."
        ),
        "VALUE_MISMATCH": (
            "TXT records exist but none carries the expected challenge value. Replace stale values from earlier "
            "attempts with the current one; every new certificate request issues a new value."
        ),
        "INCONSISTENT_ACROSS_RESOLVERS": (
            "Resolvers disagree about this record. This is normal while a change propagates; wait for caches "
            "to expire (TTL) and for all authoritative nameservers to sync."
        ),
        "LOW_RESPONSE_RATE": (
            "Too few resolvers answered. Check outbound DNS (UDP/TCP 53) from this host and retry; "
            "if it persists, the authoritative servers may be slow or unreachable."
        ),
    }

    # Operator actions for a whole verification pass, grouped by issue (priority order)
    _ACTIONS: Tuple[Tuple[IssueKind, Tuple[str, ...]], ...] = (
        (IssueKind.NO_VALUES_FOUND, (
            "Add the required DNS TXT records to your domain's DNS settings",
            "Verify you're adding records to the correct domain/subdomain",
            "Check with your DNS provider if records are being filtered or blocked",
        )),
        (IssueKind.VALUE_MISMATCH, (
            "Remove old _acme-challenge TXT values left over from previous attempts",
            "Copy the challenge value again and make sure it was not truncated or quoted twice",
        )),
        (IssueKind.INCONSISTENT_ACROSS_RESOLVERS, (
            "Wait 10-15 minutes for DNS propagation to complete",
            "Clear DNS cache: sudo systemctl flush-dns or equivalent",
            "Check if your DNS provider has multiple name servers that need time to sync",
        )),
        (IssueKind.LOW_RESPONSE_RATE, (
            "Check your internet connection and DNS server accessibility",
            "Try using a different DNS server for testing",
            "Contact your DNS provider if propagation is unusually slow",
        )),
    )

    _GENERAL = (
        "Use online DNS propagation checkers for additional verification",
        "Test from different locations/networks to confirm global propagation",
    )

    _LOOKS_GOOD = "DNS propagation looks good - you should be able to proceed with certificate generation"
    _NOT_READY = "DNS propagation is not complete yet - wait a few minutes and run the check again"

    @classmethod
    def recommend(cls, issue: str) -> str:
        return cls._MAP.get(issue, "No recommendation available for this issue yet.")

    @classmethod
    def derive(cls, verdicts: Sequence[RecordVerdict], summary: PropagationSummary) -> List[str]:
        """
        Operator-facing actions for one verification pass.

        Ordered (missing records, inconsistency, slow resolvers, general tips,
        closing status line) and deduplicated. No I/O.
        """
        present = {i.kind for v in verdicts for i in v.issues}
        out: Dict[str, None] = {}

        for kind, actions in cls._ACTIONS:
            if kind in present:
                for a in actions:
                    out.setdefault(a, None)

        for a in cls._GENERAL:
            out.setdefault(a, None)

        healthy = (
            summary.propagation_percentage > HEALTHY_PROPAGATION_PERCENT
            and IssueKind.NO_VALUES_FOUND not in present
        )
        out.setdefault(cls._LOOKS_GOOD if healthy else cls._NOT_READY, None)
        return list(out)

    @staticmethod
    def next_steps(summary: PropagationSummary) -> List[str]:
        """What to do after a pre-issuance check."""
        if summary.all_records_verified:
            return ["Proceed to certificate generation"]
        return [
            "Wait 5-10 minutes for DNS propagation",
            "Verify records are correctly added to your DNS provider",
            "Check again for DNS propagation",
        ]
