from __future__ import annotations

import logging
import re
from collections import deque
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple, Union

from propagation.models import ACME_CHALLENGE_PREFIX, ChallengeRecord

logger = logging.getLogger(__name__)


DEFAULT_CERTBOT_LOG = "/var/log/letsencrypt/letsencrypt.log"

_NAME_RE = re.compile(r"_acme-challenge\.[A-Za-z0-9.\-]+")
# DNS-01 values are base64url SHA-256 digests (43 chars); anything 40+ is a candidate.
_VALUE_RE = re.compile(r"\b([A-Za-z0-9_\-]{40,})\b")
# Lines printed by a manual --manual-auth-hook script.
_HOOK_NAME_RE = re.compile(r"DNS_RECORD_NAME:\s*(_acme-challenge\.[A-Za-z0-9.\-]+)")
_HOOK_VALUE_RE = re.compile(r"DNS_RECORD_VALUE:\s*([A-Za-z0-9_\-]+)")

# How far past a record name we look for its value.
VALUE_WINDOW = 10


class DiscoveryError(RuntimeError):
    """The discovery source could not be read."""


class ChallengeDiscovery(Protocol):
    def discover(self, domain: str) -> List[ChallengeRecord]:
        ...


class StaticDiscovery:
    """The default challenge name for a domain, with no expected value."""

    def discover(self, domain: str) -> List[ChallengeRecord]:
        return [ChallengeRecord.for_domain(domain)]


class CertbotLogDiscovery:
    """
    Recover challenge records a certbot run printed to its log.

    This is a heuristic over free text, not an authoritative source: the most
    recent tail of the log is scanned for `_acme-challenge.<name>` mentions and
    the first long token within the next few lines is taken as the value.
    Explicit auth-hook lines (DNS_RECORD_NAME / DNS_RECORD_VALUE) are used as-is.
    """

    def __init__(self, log_path: Union[str, Path] = DEFAULT_CERTBOT_LOG, tail_lines: int = 100) -> None:
        self.log_path = Path(log_path)
        self.tail_lines = int(tail_lines)

    def read_tail(self) -> List[str]:
        try:
            with self.log_path.open("r", encoding="utf-8", errors="replace") as fh:
                return [l.rstrip("\n") for l in deque(fh, maxlen=self.tail_lines)]
        except OSError as e:
            raise DiscoveryError(f"Failed to read {self.log_path}: {e}") from e

    def discover(self, domain: str) -> List[ChallengeRecord]:
        d = (domain or "").strip().rstrip(".").lower()
        if d.startswith("*."):
            d = d[2:]
        lines = self.read_tail()
        records = parse_challenges(lines, d)
        logger.info("Discovered %d challenge record(s) for %s in %s", len(records), d, self.log_path)
        return records


def _hook_pairs(lines: List[str]) -> Iterable[Tuple[str, str]]:
    pending: Optional[str] = None
    for line in lines:
        m = _HOOK_NAME_RE.search(line)
        if m:
            pending = m.group(1).rstrip(".")
            continue
        m = _HOOK_VALUE_RE.search(line)
        if m and pending:
            yield pending, m.group(1)
            pending = None


def _belongs_to(name: str, domain: str) -> bool:
    """Label-boundary match: badexample.com is not under example.com."""
    n = name.lower().rstrip(".")
    return n == ACME_CHALLENGE_PREFIX + domain or n.endswith("." + domain)


def _log_pairs(lines: List[str], domain: str) -> Iterable[Tuple[str, str]]:
    for i, line in enumerate(lines):
        if ACME_CHALLENGE_PREFIX not in line:
            continue
        m = _NAME_RE.search(line)
        if not m or not _belongs_to(m.group(0), domain):
            continue
        name = m.group(0).rstrip(".")

        for j in range(i, min(i + VALUE_WINDOW, len(lines))):
            for vm in _VALUE_RE.finditer(lines[j]):
                value = vm.group(1)
                if ACME_CHALLENGE_PREFIX.rstrip(".") in value:
                    continue
                yield name, value
                break
            else:
                continue
            break


def parse_challenges(lines: List[str], domain: str) -> List[ChallengeRecord]:
    """Challenge records for `domain` found in log lines, first-seen order, no duplicates."""
    found: Dict[Tuple[str, str], ChallengeRecord] = {}
    domain = domain.lower()

    for name, value in list(_hook_pairs(lines)) + list(_log_pairs(lines, domain)):
        if not _belongs_to(name, domain):
            continue
        key = (name.lower(), value)
        if key not in found:
            found[key] = ChallengeRecord(name=name.lower(), expected_value=value)

    return list(found.values())
