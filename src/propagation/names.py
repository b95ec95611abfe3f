import re

# One DNS label. A leading "_" is allowed for service names like _acme-challenge.
_LABEL = re.compile(r"^_?[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")


# Checks only format, not existence. Expects an already-normalized (lower case, no trailing dot) name.
def is_domain(s: str) -> bool:
    if not s or len(s) > 253 or any(c.isspace() for c in s):
        return False

    labels = s.split(".")
    if any(label == "" or len(label) > 63 for label in labels):
        return False

    return all(_LABEL.match(label) for label in labels)
