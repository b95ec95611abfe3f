from typing import Optional, Tuple

from propagation.names import is_domain

# Invalid user input base error
class InvalidTarget(ValueError):
    """Base error for invalid user input targets."""

# Invalid domain name
class InvalidDomain(InvalidTarget):
    """Raised when a target is not a valid domain/zone."""

# Invalid challenge record argument
class InvalidRecord(InvalidTarget):
    """Raised when a NAME[=VALUE] record argument can't be used."""

# Normalize the user input by trimming white space and removing trailing dots and turning it into lower case.
def normalize_target(raw: str) -> str:
    return (raw or "").strip().rstrip(".").lower()

# normalizes text and checks to see if it is a domain. A leading "*." (wildcard certificate) is allowed.
def require_domain(raw: str) -> str:
    s = normalize_target(raw)
    base = s[2:] if s.startswith("*.") else s
    if not is_domain(base) or "." not in base:
        raise InvalidDomain("Invalid domain format")
    return s

# Split "NAME=VALUE" (value optional). A bare domain becomes its _acme-challenge name.
def parse_record_arg(raw: str) -> Tuple[str, Optional[str]]:
    name, sep, value = (raw or "").partition("=")
    name = normalize_target(name)
    if not name:
        raise InvalidRecord(f"{raw!r}: missing record name")
    if not name.startswith("_acme-challenge."):
        name = "_acme-challenge." + require_domain(name).removeprefix("*.")
    elif not is_domain(name):
        raise InvalidRecord(f"{raw!r}: invalid record name")
    value = value.strip().strip('"') if sep else ""
    return name, (value or None)
