# test_resolver_pool.py
from __future__ import annotations

import os
import subprocess
from typing import List, Optional, Tuple

import dns.exception
import dns.resolver
import pytest

from conftest import FakeTxtQuery, timeout_error
from propagation import (
    DEFAULT_RESOLVERS,
    GATE_RESOLVERS,
    ChallengeRecord,
    ConsensusPolicy,
    PropagationVerifier,
    ResolverEndpoint,
    ResolverLookupError,
    ResolverPool,
    make_query,
)
from propagation.models import SYSTEM_DEFAULT
from propagation.resolvers import DigTxtQuery, DnspythonTxtQuery, parse_txt_answer
from propagation.runner import CommandResult

NAME = "_acme-challenge.example.com"
GOOGLE = ResolverEndpoint("Google Primary", "8.8.8.8")


# ----------------------------
# Fake dig runner
# ----------------------------
class FakeDigRunner:
    """Returns one canned CommandResult and remembers the args of every dig() call."""

    def __init__(self, result: CommandResult):
        self.result = result
        self.calls: List[Tuple[List[str], Optional[float]]] = []

    def dig(self, args, timeout_seconds=None) -> CommandResult:
        self.calls.append((list(args), timeout_seconds))
        return self.result


def _dig(stdout: str = "", stderr: str = "", returncode: int = 0, timed_out: bool = False) -> CommandResult:
    return CommandResult(cmd=["dig"], stdout=stdout, stderr=stderr, returncode=returncode, timed_out=timed_out)


# ----------------------------
# Answer parsing
# ----------------------------
def test_parse_txt_answer_strips_quotes_and_blank_lines():
    raw = '"abc"\n\n  "def"  \n""\n'
    assert parse_txt_answer(raw) == ("abc", "def")


def test_parse_txt_answer_keeps_server_order_and_duplicates():
    assert parse_txt_answer('"b"\n"a"\n"b"') == ("b", "a", "b")


def test_parse_txt_answer_empty():
    assert parse_txt_answer("") == ()
    assert parse_txt_answer(None) == ()


# ----------------------------
# Catalogs
# ----------------------------
def test_default_catalog_has_distinct_labels_and_system_default():
    labels = [e.label for e in DEFAULT_RESOLVERS]
    assert len(DEFAULT_RESOLVERS) == 8
    assert len(set(labels)) == len(labels)
    assert DEFAULT_RESOLVERS[-1].is_system_default
    assert sum(1 for e in DEFAULT_RESOLVERS if e.is_system_default) == 1


def test_gate_catalog_is_four_public_resolvers():
    assert [e.address for e in GATE_RESOLVERS] == ["8.8.8.8", "1.1.1.1", "8.8.4.4", "1.0.0.1"]
    assert not any(e.is_system_default for e in GATE_RESOLVERS)


def test_pool_defaults_to_full_catalog():
    assert ResolverPool(query=FakeTxtQuery()).endpoints == DEFAULT_RESOLVERS


# ----------------------------
# Pool lookups
# ----------------------------
def test_lookup_success_parses_values():
    pool = ResolverPool([GOOGLE], query=FakeTxtQuery(default='"abc"\n"def"\n'), timeout=3)
    res = pool.lookup(NAME, GOOGLE)
    assert res.succeeded is True
    assert res.values == ("abc", "def")
    assert res.error_message is None
    assert res.resolver == GOOGLE


def test_lookup_empty_answer_is_success_with_no_values():
    pool = ResolverPool([GOOGLE], query=FakeTxtQuery(default=""))
    res = pool.lookup(NAME, GOOGLE)
    assert res.succeeded is True
    assert res.values == ()


def test_lookup_failure_is_captured_not_raised():
    pool = ResolverPool([GOOGLE], query=FakeTxtQuery(default=timeout_error()))
    res = pool.lookup(NAME, GOOGLE)
    assert res.succeeded is False
    assert res.values == ()
    assert res.error_message.startswith("Timeout")


def test_lookup_uses_pool_timeout_unless_overridden():
    q = FakeTxtQuery(default='"abc"')
    pool = ResolverPool([GOOGLE], query=q, timeout=4)
    pool.lookup(NAME, GOOGLE)
    pool.lookup(NAME, GOOGLE, timeout=1.5)
    assert [t for _, _, t in q.calls] == [4.0, 1.5]


def test_make_query_backends():
    assert isinstance(make_query("dnspython"), DnspythonTxtQuery)
    assert isinstance(make_query(" DIG "), DigTxtQuery)
    with pytest.raises(ValueError):
        make_query("doh")


# ----------------------------
# dig backend
# ----------------------------
def test_dig_args_pin_the_resolver():
    args = DigTxtQuery.build_args(NAME, "1.1.1.1", 2.5)
    assert args == ["+short", "+time=2", "+tries=1", "TXT", NAME, "@1.1.1.1"]


def test_dig_args_system_default_has_no_server():
    args = DigTxtQuery.build_args(NAME, SYSTEM_DEFAULT, 10)
    assert not any(a.startswith("@") for a in args)
    assert "+time=10" in args


def test_dig_returns_stdout():
    runner = FakeDigRunner(_dig(stdout='"abc"\n'))
    out = DigTxtQuery(runner)(NAME, "8.8.8.8", 10)
    assert out == '"abc"\n'
    assert runner.calls == [(["+short", "+time=10", "+tries=1", "TXT", NAME, "@8.8.8.8"], 10)]


@pytest.mark.parametrize("result,fragment", [
    (_dig(stderr="[timeout after 10s] dig ...", returncode=-1, timed_out=True), "timeout"),
    (_dig(stdout=";; connection timed out; no servers could be reached\n"), "connection timed out"),
    (_dig(stderr="dig: couldn't get address for 'bogus'", returncode=10), "status 10"),
    (_dig(stdout='"abc"', stderr="warning: recursion requested but not available"), "recursion"),
])
def test_dig_failures_raise_lookup_error(result, fragment):
    with pytest.raises(ResolverLookupError) as ei:
        DigTxtQuery(FakeDigRunner(result))(NAME, "8.8.8.8", 10)
    assert fragment in str(ei.value)


def test_dig_failure_becomes_failed_lookup_result():
    runner = FakeDigRunner(_dig(stdout=";; connection timed out; no servers could be reached\n"))
    pool = ResolverPool([GOOGLE], query=DigTxtQuery(runner))
    res = pool.lookup(NAME, GOOGLE)
    assert res.succeeded is False
    assert "no servers could be reached" in res.error_message


# ----------------------------
# dnspython backend
# ----------------------------
class _FakeTxtRdata:
    def __init__(self, *strings: bytes):
        self.strings = strings


class _FakeAnswer:
    def __init__(self, rrset):
        self.rrset = rrset


class _FakeResolver:
    def __init__(self, answer=None, error: Optional[Exception] = None):
        self.answer = answer
        self.error = error
        self.queries: List[str] = []

    def resolve(self, qname, rdtype, **kwargs):
        self.queries.append(qname)
        if self.error is not None:
            raise self.error
        return self.answer


def _patched(monkeypatch, resolver: _FakeResolver) -> DnspythonTxtQuery:
    q = DnspythonTxtQuery()
    monkeypatch.setattr(q, "_make_resolver", lambda address, timeout: resolver)
    return q


def test_dnspython_joins_character_strings(monkeypatch):
    rrset = [_FakeTxtRdata(b"abc", b"def"), _FakeTxtRdata(b"xyz")]
    r = _FakeResolver(answer=_FakeAnswer(rrset))
    out = _patched(monkeypatch, r)(NAME, "8.8.8.8", 5)
    assert parse_txt_answer(out) == ("abcdef", "xyz")
    assert r.queries == [NAME + "."]


def test_dnspython_no_answer_is_empty(monkeypatch):
    out = _patched(monkeypatch, _FakeResolver(answer=_FakeAnswer(None)))(NAME, "8.8.8.8", 5)
    assert out == ""


def test_dnspython_nxdomain_is_empty(monkeypatch):
    out = _patched(monkeypatch, _FakeResolver(error=dns.resolver.NXDOMAIN()))(NAME, "8.8.8.8", 5)
    assert out == ""


def test_dnspython_timeout_raises_lookup_error(monkeypatch):
    q = _patched(monkeypatch, _FakeResolver(error=dns.exception.Timeout(timeout=2.0)))
    with pytest.raises(ResolverLookupError) as ei:
        q(NAME, "8.8.8.8", 2)
    assert str(ei.value).startswith("Timeout after 2s")


def test_dnspython_pins_nameserver():
    r = DnspythonTxtQuery(port=5353)._make_resolver("9.9.9.9", 3.0)
    assert [str(getattr(ns, "address", ns)) for ns in r.nameservers] == ["9.9.9.9"]
    assert r.port == 5353
    assert r.timeout == 3.0
    assert r.lifetime == 3.0


# ----------------------------
# Optional integration tests (real DNS)
# ----------------------------
def _have_cmd(cmd: str) -> bool:
    try:
        subprocess.run([cmd, "-v"], capture_output=True, text=True, timeout=3)
        return True
    except Exception:
        return False


integration = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION", "0") != "1",
    reason="Integration tests disabled. Run with RUN_INTEGRATION=1",
)

requires_tools = pytest.mark.skipif(
    not _have_cmd("dig"),
    reason="dig not available in PATH",
)


@integration
@pytest.mark.integration
@pytest.mark.parametrize("backend", ["dnspython", pytest.param("dig", marks=requires_tools)])
def test_integration_missing_challenge_is_pending(backend: str):
    """
    Nobody publishes _acme-challenge.example.com, so every resolver that answers
    should answer with nothing.
    """
    pool = ResolverPool(GATE_RESOLVERS, query=make_query(backend), timeout=5)
    verifier = PropagationVerifier(pool, policy=ConsensusPolicy.QUORUM)
    verdicts, summary = verifier.verify([ChallengeRecord(NAME, "not-a-real-token")])

    if summary.total_successful_lookups == 0:
        pytest.skip("No resolver answered (network/path issue).")

    assert verdicts[0].is_propagated is False
    assert summary.all_records_verified is False
