# conftest.py
from __future__ import annotations

import threading
import time
from typing import Dict, List, Optional, Tuple, Union

import pytest

from propagation.errors import ResolverLookupError
from propagation.models import ResolverEndpoint

Answer = Union[str, Exception]


class FakeTxtQuery:
    """
    Fake resolver-query primitive.

    Answers are looked up by (record name, address) first, then by address alone,
    then fall back to `default`. An Exception instance is raised instead of returned.
    `delays` (seconds, per address) lets tests make some resolvers finish later.

      FakeTxtQuery(
          by_address={"10.0.0.1": '"abc"\n', "10.0.0.2": ResolverLookupError("Timeout")},
          by_name={("_acme-challenge.a.com", "10.0.0.3"): '"xyz"'},
      )
    """

    def __init__(
        self,
        by_address: Optional[Dict[str, Answer]] = None,
        by_name: Optional[Dict[Tuple[str, str], Answer]] = None,
        default: Answer = "",
        delays: Optional[Dict[str, float]] = None,
    ):
        self.by_address = by_address or {}
        self.by_name = by_name or {}
        self.default = default
        self.delays = delays or {}
        self.calls: List[Tuple[str, str, float]] = []
        self._lock = threading.Lock()

    def __call__(self, name: str, address: str, timeout: float) -> str:
        with self._lock:
            self.calls.append((name, address, timeout))
        if address in self.delays:
            time.sleep(self.delays[address])
        out = self.by_name.get((name, address), self.by_address.get(address, self.default))
        if isinstance(out, Exception):
            raise out
        return out


def timeout_error() -> ResolverLookupError:
    return ResolverLookupError("Timeout after 10s: The DNS operation timed out.")


FOUR_RESOLVERS = tuple(ResolverEndpoint(f"Resolver {i}", f"10.0.0.{i}") for i in range(1, 5))


@pytest.fixture
def four_resolvers():
    return FOUR_RESOLVERS


@pytest.fixture
def fake_query():
    return FakeTxtQuery
