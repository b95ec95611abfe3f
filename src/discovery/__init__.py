"""
Challenge discovery.

Finds the _acme-challenge TXT records a certificate request expects, independently
of verification. Sources are pluggable: anything with discover(domain) -> [ChallengeRecord].

Public entrypoints: CertbotLogDiscovery, StaticDiscovery
"""

from .tool import CertbotLogDiscovery, ChallengeDiscovery, DiscoveryError, StaticDiscovery, parse_challenges

__all__ = ["CertbotLogDiscovery", "ChallengeDiscovery", "DiscoveryError", "StaticDiscovery", "parse_challenges"]
