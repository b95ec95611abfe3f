from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


ACME_CHALLENGE_PREFIX = "_acme-challenge."
SYSTEM_DEFAULT = "system-default"


# -----------------------------
# Inputs
# -----------------------------

@dataclass(frozen=True)
class ChallengeRecord:
    """
    One DNS-01 challenge TXT record.

    expected_value is optional: without it the record counts as propagated as
    soon as any resolver returns a non-empty TXT value.
    """
    name: str
    expected_value: Optional[str] = None
    owner_domain: str = ""
    record_type: str = "TXT"

    def __post_init__(self) -> None:
        if not self.owner_domain and self.name.startswith(ACME_CHALLENGE_PREFIX):
            object.__setattr__(self, "owner_domain", self.name[len(ACME_CHALLENGE_PREFIX):])

    @classmethod
    def for_domain(cls, domain: str, expected_value: Optional[str] = None) -> "ChallengeRecord":
        """
        Build the challenge record for a domain.

        Wildcards validate at the base name: *.example.com -> _acme-challenge.example.com
        """
        d = (domain or "").strip().rstrip(".").lower()
        if d.startswith("*."):
            d = d[2:]
        return cls(name=f"{ACME_CHALLENGE_PREFIX}{d}", expected_value=expected_value or None, owner_domain=d)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.record_type,
            "value": self.expected_value,
            "domain": self.owner_domain,
        }


@dataclass(frozen=True)
class ResolverEndpoint:
    """One independent resolver. address is an IP or SYSTEM_DEFAULT."""
    label: str
    address: str

    @property
    def is_system_default(self) -> bool:
        return self.address == SYSTEM_DEFAULT


# -----------------------------
# Per-lookup results
# -----------------------------

@dataclass(frozen=True)
class ResolverLookupResult:
    resolver: ResolverEndpoint
    values: Tuple[str, ...] = ()
    succeeded: bool = False
    error_message: Optional[str] = None

    def value_set(self) -> Tuple[str, ...]:
        """Order-independent comparison key used for consistency grouping."""
        return tuple(sorted(self.values))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "server": self.resolver.label,
            "address": self.resolver.address,
            "values": list(self.values),
            "success": self.succeeded,
            "error": self.error_message,
        }


# -----------------------------
# Verdicts
# -----------------------------

class ConsensusPolicy(str, Enum):
    """How per-resolver answers become a propagated/pending verdict."""
    ANY_RESOLVER = "any_resolver"
    QUORUM = "quorum"


class IssueKind(str, Enum):
    NO_VALUES_FOUND = "NO_VALUES_FOUND"
    VALUE_MISMATCH = "VALUE_MISMATCH"
    INCONSISTENT_ACROSS_RESOLVERS = "INCONSISTENT_ACROSS_RESOLVERS"
    LOW_RESPONSE_RATE = "LOW_RESPONSE_RATE"


_SEVERITY = {
    IssueKind.NO_VALUES_FOUND: "high",
    IssueKind.VALUE_MISMATCH: "high",
    IssueKind.INCONSISTENT_ACROSS_RESOLVERS: "low",
    IssueKind.LOW_RESPONSE_RATE: "medium",
}


@dataclass(frozen=True)
class Issue:
    """Tagged classification of why a record is not (fully) propagated."""
    kind: IssueKind
    message: str
    found_values: Tuple[str, ...] = ()
    group_count: Optional[int] = None
    percentage: Optional[float] = None

    @property
    def severity(self) -> str:
        return _SEVERITY[self.kind]

    @classmethod
    def no_values_found(cls) -> "Issue":
        return cls(IssueKind.NO_VALUES_FOUND, "No TXT records found for this name")

    @classmethod
    def value_mismatch(cls, found_values: Tuple[str, ...]) -> "Issue":
        return cls(
            IssueKind.VALUE_MISMATCH,
            f"Expected value not found. Found: {', '.join(found_values)}",
            found_values=tuple(found_values),
        )

    @classmethod
    def inconsistent(cls, group_count: int) -> "Issue":
        return cls(
            IssueKind.INCONSISTENT_ACROSS_RESOLVERS,
            f"Inconsistent values across DNS servers ({group_count} distinct answers) "
            "- propagation may still be in progress",
            group_count=group_count,
        )

    @classmethod
    def low_response_rate(cls, percentage: float) -> "Issue":
        return cls(
            IssueKind.LOW_RESPONSE_RATE,
            f"Low propagation rate: {percentage:.0f}% of DNS servers responding",
            percentage=percentage,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "issue": self.kind.value,
            "severity": self.severity,
            "message": self.message,
        }
        if self.found_values:
            d["found_values"] = list(self.found_values)
        if self.group_count is not None:
            d["group_count"] = self.group_count
        if self.percentage is not None:
            d["percentage"] = self.percentage
        return d


@dataclass(frozen=True)
class RecordVerdict:
    record: ChallengeRecord
    lookup_results: Tuple[ResolverLookupResult, ...]
    is_propagated: bool
    distinct_value_sets: FrozenSet[Tuple[str, ...]]
    issues: Tuple[Issue, ...] = ()
    confirming_resolvers: int = 0
    policy: ConsensusPolicy = ConsensusPolicy.ANY_RESOLVER

    @property
    def queried(self) -> int:
        return len(self.lookup_results)

    @property
    def successful_lookups(self) -> int:
        return sum(1 for r in self.lookup_results if r.succeeded)

    @property
    def response_rate(self) -> float:
        return self.successful_lookups / self.queried if self.queried else 0.0

    @property
    def all_values(self) -> Tuple[str, ...]:
        """Deduplicated union of values from succeeding resolvers, first-seen order."""
        seen: Dict[str, None] = {}
        for r in self.lookup_results:
            if r.succeeded:
                for v in r.values:
                    seen.setdefault(v, None)
        return tuple(seen)

    def has_issue(self, kind: IssueKind) -> bool:
        return any(i.kind == kind for i in self.issues)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recordName": self.record.name,
            "domain": self.record.owner_domain,
            "expectedValue": self.record.expected_value,
            "propagated": self.is_propagated,
            "policy": self.policy.value,
            "confirmingResolvers": self.confirming_resolvers,
            "serversChecked": self.queried,
            "successfulLookups": self.successful_lookups,
            "currentValues": list(self.all_values),
            "distinctValueSets": [list(s) for s in sorted(self.distinct_value_sets)],
            "lookupResults": [r.to_dict() for r in self.lookup_results],
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass(frozen=True)
class PropagationSummary:
    total_resolvers_queried: int
    total_successful_lookups: int
    propagation_percentage: float
    all_records_verified: bool
    records_total: int = 0
    records_verified: int = 0

    @property
    def records_pending(self) -> int:
        return self.records_total - self.records_verified

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalResolversQueried": self.total_resolvers_queried,
            "totalSuccessfulLookups": self.total_successful_lookups,
            "propagationPercentage": round(self.propagation_percentage, 2),
            "allRecordsVerified": self.all_records_verified,
            "total": self.records_total,
            "verified": self.records_verified,
            "pending": self.records_pending,
        }

