"""
Runtime configuration, read from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional

from discovery.tool import DEFAULT_CERTBOT_LOG
from propagation.resolvers import DEFAULT_TIMEOUT


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


@dataclass
class Settings:
    """Settings shared by the API and the CLI."""

    # Per-lookup timeout (seconds)
    dns_timeout: float = DEFAULT_TIMEOUT
    # "dnspython" or "dig"
    backend: str = "dnspython"
    # None -> one worker per (record, resolver) lookup
    max_workers: Optional[int] = None

    certbot_log_path: str = DEFAULT_CERTBOT_LOG
    certbot_log_tail: int = 100

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            dns_timeout=float(os.getenv("ACME_DNS_TIMEOUT", str(DEFAULT_TIMEOUT))),
            backend=os.getenv("ACME_DNS_BACKEND", "dnspython"),
            max_workers=_env_int("ACME_DNS_MAX_WORKERS", None),
            certbot_log_path=os.getenv("CERTBOT_LOG_PATH", DEFAULT_CERTBOT_LOG),
            certbot_log_tail=_env_int("CERTBOT_LOG_TAIL", 100) or 100,
            log_level=os.getenv("ACME_DNS_LOG_LEVEL", "INFO"),
            log_file=os.getenv("ACME_DNS_LOG_FILE") or None,
        )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings (re-read the environment on next access)."""
    global _settings
    _settings = None
