"""
Resolver pool: one bounded-time TXT lookup against one resolver.

The pool never raises for a failed lookup. Timeouts, transport errors and tool
failures come back as a ResolverLookupResult with succeeded=False so sibling
lookups in the same verification pass are unaffected.

The query primitive is a seam (TxtQuery): anything callable as
query(name, address, timeout) -> raw multi-line TXT text. Two backends ship
here, dnspython (default) and the dig command.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence, Tuple

import dns.exception
import dns.resolver

from .errors import ResolverLookupError
from .models import ResolverEndpoint, ResolverLookupResult, SYSTEM_DEFAULT
from .runner import CommandRunner

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 10.0

# Display order only; verdicts do not depend on it.
DEFAULT_RESOLVERS: Tuple[ResolverEndpoint, ...] = (
    ResolverEndpoint("Google Primary", "8.8.8.8"),
    ResolverEndpoint("Google Secondary", "8.8.4.4"),
    ResolverEndpoint("Cloudflare Primary", "1.1.1.1"),
    ResolverEndpoint("Cloudflare Secondary", "1.0.0.1"),
    ResolverEndpoint("OpenDNS Primary", "208.67.222.222"),
    ResolverEndpoint("OpenDNS Secondary", "208.67.220.220"),
    ResolverEndpoint("Quad9", "9.9.9.9"),
    ResolverEndpoint("System Default", SYSTEM_DEFAULT),
)

# Smaller pool used before issuance.
GATE_RESOLVERS: Tuple[ResolverEndpoint, ...] = (
    ResolverEndpoint("8.8.8.8", "8.8.8.8"),
    ResolverEndpoint("1.1.1.1", "1.1.1.1"),
    ResolverEndpoint("8.8.4.4", "8.8.4.4"),
    ResolverEndpoint("1.0.0.1", "1.0.0.1"),
)


def parse_txt_answer(text: str) -> Tuple[str, ...]:
    """One value per line, quotes stripped, trimmed, blanks dropped, server order kept."""
    out = []
    for line in (text or "").splitlines():
        v = line.replace('"', "").strip()
        if v:
            out.append(v)
    return tuple(out)


class TxtQuery(Protocol):
    """
    Raw TXT lookup against one resolver address.

    Implementations should give up after `timeout` seconds and raise
    ResolverLookupError. PropagationVerifier also writes off lookups that
    overrun, but a hung call still holds its worker thread.
    """

    def __call__(self, name: str, address: str, timeout: float) -> str:
        ...


# -----------------------------
# Backends
# -----------------------------

class DnspythonTxtQuery:
    """TXT lookup with dnspython, pinned to one resolver address."""

    def __init__(self, use_tcp: bool = False, port: int = 53) -> None:
        self.use_tcp = bool(use_tcp)
        self.port = int(port)

    def _make_resolver(self, address: str, timeout: float) -> dns.resolver.Resolver:
        if address == SYSTEM_DEFAULT:
            r = dns.resolver.Resolver(configure=True)
        else:
            r = dns.resolver.Resolver(configure=False)
            r.port = self.port
            r.nameservers = [address]
        r.timeout = timeout
        r.lifetime = timeout
        r.retry_servfail = False
        return r

    @staticmethod
    def _render(rdata) -> str:
        # A TXT RR may be split into several <character-string>s; rejoin them.
        joined = b"".join(rdata.strings).decode("utf-8", errors="replace")
        return f'"{joined}"'

    def __call__(self, name: str, address: str, timeout: float) -> str:
        qname = name.strip().rstrip(".") + "."
        try:
            resolver = self._make_resolver(address, timeout)
            ans = resolver.resolve(
                qname,
                "TXT",
                tcp=self.use_tcp,
                raise_on_no_answer=False,
                search=False,
            )
        except dns.resolver.NXDOMAIN:
            # The resolver answered; the name just doesn't exist (yet).
            return ""
        except dns.resolver.NoNameservers as e:
            raise ResolverLookupError(f"NoNameservers: {e}") from e
        except dns.exception.Timeout as e:
            raise ResolverLookupError(f"Timeout after {timeout:g}s: {e}") from e
        except dns.exception.DNSException as e:
            raise ResolverLookupError(f"{type(e).__name__}: {e}") from e

        if not getattr(ans, "rrset", None):
            return ""
        return "\n".join(self._render(r) for r in ans.rrset)


class DigTxtQuery:
    """TXT lookup through `dig +short`."""

    def __init__(self, runner: Optional[CommandRunner] = None) -> None:
        self.runner = runner or CommandRunner()

    @staticmethod
    def build_args(name: str, address: str, timeout: float) -> list:
        args = ["+short", f"+time={max(1, int(timeout))}", "+tries=1", "TXT", name]
        if address != SYSTEM_DEFAULT:
            args.append(f"@{address}")
        return args

    def __call__(self, name: str, address: str, timeout: float) -> str:
        res = self.runner.dig(self.build_args(name, address, timeout), timeout_seconds=timeout)
        if res.timed_out:
            raise ResolverLookupError(res.stderr or f"dig timed out after {timeout:g}s")
        if res.returncode != 0:
            detail = (res.stderr or res.stdout).strip() or "no output"
            raise ResolverLookupError(f"dig exited with status {res.returncode}: {detail}")
        if res.stderr.strip():
            raise ResolverLookupError(res.stderr.strip())

        # +short still prints ";; connection timed out" style comments to stdout.
        comments = [l for l in res.stdout.splitlines() if l.startswith(";;")]
        if comments:
            raise ResolverLookupError(comments[0].lstrip("; ").strip())
        return res.stdout


BACKENDS = {
    "dnspython": DnspythonTxtQuery,
    "dig": DigTxtQuery,
}


def make_query(backend: str = "dnspython") -> TxtQuery:
    try:
        return BACKENDS[backend.strip().lower()]()
    except KeyError:
        raise ValueError(f"Unknown resolver backend {backend!r} (expected one of: {', '.join(BACKENDS)})")


# -----------------------------
# Pool
# -----------------------------

class ResolverPool:
    """A fixed, read-only catalog of resolvers plus the query primitive."""

    def __init__(
        self,
        endpoints: Optional[Sequence[ResolverEndpoint]] = None,
        query: Optional[TxtQuery] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.endpoints: Tuple[ResolverEndpoint, ...] = tuple(DEFAULT_RESOLVERS if endpoints is None else endpoints)
        self.query: TxtQuery = query or DnspythonTxtQuery()
        self.timeout = float(timeout)

    def __len__(self) -> int:
        return len(self.endpoints)

    def __iter__(self):
        return iter(self.endpoints)

    def lookup(
        self,
        record_name: str,
        endpoint: ResolverEndpoint,
        timeout: Optional[float] = None,
    ) -> ResolverLookupResult:
        t = self.timeout if timeout is None else float(timeout)
        logger.debug("TXT %s via %s (%s), timeout=%ss", record_name, endpoint.label, endpoint.address, t)
        try:
            raw = self.query(record_name, endpoint.address, t)
        except ResolverLookupError as e:
            logger.debug("Lookup of %s via %s failed: %s", record_name, endpoint.label, e)
            return ResolverLookupResult(resolver=endpoint, succeeded=False, error_message=str(e))
        except Exception as e:
            logger.warning("Unexpected error looking up %s via %s", record_name, endpoint.label, exc_info=True)
            return ResolverLookupResult(
                resolver=endpoint,
                succeeded=False,
                error_message=f"{type(e).__name__}: {e}",
            )

        values = parse_txt_answer(raw)
        logger.debug("TXT %s via %s -> %d value(s)", record_name, endpoint.label, len(values))
        return ResolverLookupResult(resolver=endpoint, values=values, succeeded=True)
