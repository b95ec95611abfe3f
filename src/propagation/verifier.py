"""
Propagation verifier.

Fans out one TXT lookup per (record, resolver) pair, waits for every lookup of a
record to finish (or time out on its own clock), then folds the per-resolver
answers into a RecordVerdict and the whole pass into a PropagationSummary.

Two consensus policies share the same aggregation and issue semantics:

  - ANY_RESOLVER: propagated if the expected value is in the union of values
    returned by any succeeding resolver. Used for diagnostics.
  - QUORUM: propagated only if at least QUORUM_THRESHOLD resolvers each confirm
    the expected value in their own answer. Used to gate issuance.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import AggregationInvariantViolation, ValidationError
from .models import (
    ACME_CHALLENGE_PREFIX,
    ChallengeRecord,
    ConsensusPolicy,
    Issue,
    PropagationSummary,
    RecordVerdict,
    ResolverLookupResult,
)
from .names import is_domain
from .resolvers import ResolverPool

logger = logging.getLogger(__name__)


# Fixed minimum, independent of pool size.
QUORUM_THRESHOLD = 2

# Strictly below this fraction of responding resolvers is flagged.
LOW_RESPONSE_THRESHOLD = 0.75

MAX_DEFAULT_WORKERS = 64

# Slack on top of the per-lookup timeout before an unfinished lookup is written off.
LOOKUP_GRACE = 0.5


def confirms(values: Iterable[str], expected: Optional[str]) -> bool:
    """
    Does this set of TXT values confirm the record?

    With an expected value, an exact match wins before a containment match is
    tried. Without one, any non-empty value confirms.
    """
    values = list(values)
    if not expected:
        return bool(values)
    if any(v == expected for v in values):
        return True
    return any(expected in v for v in values)


def validate_records(records: Optional[Sequence[ChallengeRecord]]) -> List[ChallengeRecord]:
    if not records:
        raise ValidationError("At least one challenge record is required")

    out: List[ChallengeRecord] = []
    for i, rec in enumerate(records):
        if not isinstance(rec, ChallengeRecord):
            raise ValidationError(f"Record #{i} is not a ChallengeRecord")
        name = (rec.name or "").strip()
        if not name:
            raise ValidationError(f"Record #{i} is missing a name")
        if not name.lower().startswith(ACME_CHALLENGE_PREFIX):
            raise ValidationError(f"{name}: record name must start with {ACME_CHALLENGE_PREFIX!r}")
        if not is_domain(name.lower().rstrip(".")):
            raise ValidationError(f"{name}: invalid DNS name")
        if (rec.record_type or "").upper() != "TXT":
            raise ValidationError(f"{name}: only TXT records are supported, got {rec.record_type!r}")
        out.append(rec)
    return out


def _union(results: Iterable[ResolverLookupResult]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for r in results:
        for v in r.values:
            seen.setdefault(v, None)
    return tuple(seen)


def derive_issues(
    record: ChallengeRecord,
    results: Sequence[ResolverLookupResult],
) -> Tuple[Issue, ...]:
    """
    Issues in fixed order. Each one is evaluated independently; none suppresses another.
    """
    successful = [r for r in results if r.succeeded]
    all_values = _union(successful)
    issues: List[Issue] = []

    if not all_values:
        issues.append(Issue.no_values_found())
    elif record.expected_value and not confirms(all_values, record.expected_value):
        issues.append(Issue.value_mismatch(all_values))

    groups = {r.value_set() for r in successful}
    if len(groups) > 1:
        issues.append(Issue.inconsistent(len(groups)))

    if results:
        rate = len(successful) / len(results)
        if rate < LOW_RESPONSE_THRESHOLD:
            issues.append(Issue.low_response_rate(rate * 100))

    return tuple(issues)


def aggregate(
    record: ChallengeRecord,
    results: Sequence[Optional[ResolverLookupResult]],
    policy: Union[ConsensusPolicy, str] = ConsensusPolicy.ANY_RESOLVER,
) -> RecordVerdict:
    """Build one record's verdict from the complete set of its lookup results."""
    if any(r is None for r in results):
        raise AggregationInvariantViolation(f"{record.name}: verdict requested before all lookups completed")

    policy = ConsensusPolicy(policy)
    complete: Tuple[ResolverLookupResult, ...] = tuple(results)  # type: ignore[arg-type]
    successful = [r for r in complete if r.succeeded]
    expected = record.expected_value

    confirming = sum(1 for r in successful if confirms(r.values, expected))
    if policy is ConsensusPolicy.QUORUM:
        propagated = confirming >= QUORUM_THRESHOLD
    else:
        propagated = confirms(_union(successful), expected)

    return RecordVerdict(
        record=record,
        lookup_results=complete,
        is_propagated=propagated,
        distinct_value_sets=frozenset(r.value_set() for r in successful),
        issues=derive_issues(record, complete),
        confirming_resolvers=confirming,
        policy=policy,
    )


def summarize(verdicts: Sequence[RecordVerdict]) -> PropagationSummary:
    queried = sum(v.queried for v in verdicts)
    successful = sum(v.successful_lookups for v in verdicts)
    verified = sum(1 for v in verdicts if v.is_propagated)
    return PropagationSummary(
        total_resolvers_queried=queried,
        total_successful_lookups=successful,
        propagation_percentage=(successful / queried * 100) if queried else 0.0,
        all_records_verified=bool(verdicts) and verified == len(verdicts),
        records_total=len(verdicts),
        records_verified=verified,
    )


class PropagationVerifier:
    """
    Check challenge records against every resolver in a pool.

    Holds no state between verify() calls; polling until propagation completes
    is up to the caller.
    """

    def __init__(
        self,
        pool: Optional[ResolverPool] = None,
        policy: Union[ConsensusPolicy, str] = ConsensusPolicy.ANY_RESOLVER,
        max_workers: Optional[int] = None,
    ) -> None:
        self.pool = pool if pool is not None else ResolverPool()
        self.policy = ConsensusPolicy(policy)
        self.max_workers = max_workers

    def verify(
        self,
        records: Sequence[ChallengeRecord],
        pool: Optional[ResolverPool] = None,
        policy: Optional[Union[ConsensusPolicy, str]] = None,
    ) -> Tuple[List[RecordVerdict], PropagationSummary]:
        records = validate_records(records)
        pool = pool if pool is not None else self.pool
        if not len(pool):
            raise ValidationError("Resolver pool is empty")
        policy = ConsensusPolicy(policy or self.policy)

        logger.info(
            "Verifying %d record(s) against %d resolver(s), policy=%s",
            len(records), len(pool), policy.value,
        )

        lookups = self._fan_out(records, pool)
        verdicts = [aggregate(rec, lookups[i], policy) for i, rec in enumerate(records)]

        for v in verdicts:
            logger.info(
                "%s: %s (%d/%d responding, %d confirming)",
                v.record.name,
                "PROPAGATED" if v.is_propagated else "PENDING",
                v.successful_lookups, v.queried, v.confirming_resolvers,
            )

        summary = summarize(verdicts)
        logger.info(
            "Verification complete: %d/%d records verified, %.0f%% lookups succeeded",
            summary.records_verified, summary.records_total, summary.propagation_percentage,
        )
        return verdicts, summary

    def _fan_out(
        self,
        records: Sequence[ChallengeRecord],
        pool: ResolverPool,
    ) -> List[List[Optional[ResolverLookupResult]]]:
        """
        One task per (record, resolver). Results land in catalog order regardless
        of completion order.

        The pool timeout is also enforced here, so a query primitive that ignores
        it cannot stall the pass: a lookup still running at the deadline becomes
        a failed result and its thread is abandoned.
        """
        endpoints = pool.endpoints
        slots: List[List[Optional[ResolverLookupResult]]] = [[None] * len(endpoints) for _ in records]
        total = len(records) * len(endpoints)
        workers = max(1, self.max_workers or min(total, MAX_DEFAULT_WORKERS))

        # With fewer workers than lookups, tasks run in waves of `workers`.
        deadline = pool.timeout * math.ceil(total / workers) + LOOKUP_GRACE

        ex = ThreadPoolExecutor(max_workers=workers)
        try:
            futures = {
                ex.submit(pool.lookup, rec.name, ep): (i, j)
                for i, rec in enumerate(records)
                for j, ep in enumerate(endpoints)
            }
            done, not_done = wait(futures, timeout=deadline)
            for fut in done:
                i, j = futures[fut]
                slots[i][j] = fut.result()
            for fut in not_done:
                i, j = futures[fut]
                ep = endpoints[j]
                logger.warning("Lookup of %s via %s did not return within %ss", records[i].name, ep.label, pool.timeout)
                slots[i][j] = ResolverLookupResult(
                    resolver=ep,
                    succeeded=False,
                    error_message=f"Timeout after {pool.timeout:g}s: resolver query did not return",
                )
        finally:
            ex.shutdown(wait=False, cancel_futures=True)

        return slots
