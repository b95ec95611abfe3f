"""Error taxonomy for the propagation engine."""


class PropagationError(Exception):
    """Base error for the propagation engine."""


class ValidationError(PropagationError, ValueError):
    """Malformed or missing input. Raised before any lookup is dispatched."""


class ResolverLookupError(PropagationError):
    """
    One (record, resolver) lookup failed (timeout, transport error, tool exit).

    Only query backends raise this; ResolverPool.lookup() always turns it into a
    failed ResolverLookupResult.
    """


class AggregationInvariantViolation(PropagationError):
    """Internal defect: aggregated lookup data does not match what was dispatched."""
