"""
DNS-01 challenge propagation checks.

Queries a pool of independent resolvers for _acme-challenge TXT records,
aggregates their answers into a propagated/pending verdict and explains why a
record has not propagated yet.

Public entrypoints: ResolverPool, PropagationVerifier
"""

from .errors import AggregationInvariantViolation, ResolverLookupError, ValidationError
from .models import (
    ChallengeRecord,
    ConsensusPolicy,
    Issue,
    IssueKind,
    PropagationSummary,
    RecordVerdict,
    ResolverEndpoint,
    ResolverLookupResult,
)
from .resolvers import DEFAULT_RESOLVERS, GATE_RESOLVERS, ResolverPool, make_query
from .verifier import QUORUM_THRESHOLD, PropagationVerifier

__all__ = [
    "AggregationInvariantViolation",
    "ChallengeRecord",
    "ConsensusPolicy",
    "DEFAULT_RESOLVERS",
    "GATE_RESOLVERS",
    "Issue",
    "IssueKind",
    "PropagationSummary",
    "PropagationVerifier",
    "QUORUM_THRESHOLD",
    "RecordVerdict",
    "ResolverEndpoint",
    "ResolverLookupError",
    "ResolverLookupResult",
    "ResolverPool",
    "ValidationError",
    "make_query",
]
