"""Utility functions for RTD."""
import re
from typing import Optional

from .exceptions import ValidationError


KEY_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
CONTROL_CHARS = re.compile(r'[\x01-\x1f]')
ALL_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')
HOSTNAME_DISALLOWED = re.compile(r'[^a-z0-9.-]')
MAX_VALUE_LENGTH = 512
MAX_HOSTNAME_LENGTH = 63


def validate_key(key: str) -> str:
    """Validate a key for OS-release style lookups.

    Args:
        key: The key to validate.

    Returns:
        The validated key.

    Raises:
        ValidationError: If the key is not a shell-style identifier.
    """
    if not key or not KEY_PATTERN.match(key):
        raise ValidationError("key", f"Invalid key: {key!r}")
    return key


def strip_control(value: str) -> str:
    """Remove control characters (including NUL and DEL) from a string."""
    return ALL_CONTROL_CHARS.sub("", value)


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def extract_value(content: str, key: str) -> Optional[str]:
    """Extract a single KEY=value from os-release style text.

    Only lines starting with the uppercased or lowercased key match; the first
    match wins. One layer of matching quotes is removed, control characters are
    stripped, and over-long values are ignored.

    Args:
        content: File content to scan.
        key: Key to look up, e.g. "VERSION_ID" or "id".

    Returns:
        The value, or None if the key is invalid or not found.
    """
    try:
        validate_key(key)
    except ValidationError:
        return None

    prefixes = (f"{key.upper()}=", f"{key.lower()}=")
    for line in content.splitlines():
        if not line or line.startswith("#"):
            continue
        if not line.startswith(prefixes):
            continue

        value = _unquote(line.split("=", 1)[1])
        value = CONTROL_CHARS.sub("", value)
        if len(value) > MAX_VALUE_LENGTH:
            continue
        return value

    return None


def sanitize_hostname(raw: Optional[str]) -> str:
    """Normalize a hostname candidate.

    Args:
        raw: Raw candidate from an environment variable, command or file.

    Returns:
        Lowercased hostname with whitespace runs turned into "-", limited to
        [a-z0-9.-] and at most 63 characters, or an empty string if nothing
        usable remains.
    """
    if not raw:
        return ""

    tokens = raw.split()
    if not tokens:
        return ""

    host = strip_control("-".join(tokens)).lower()
    host = HOSTNAME_DISALLOWED.sub("", host)
    if host.startswith("."):
        host = host[1:]
    if host.endswith("."):
        host = host[:-1]
    return host[:MAX_HOSTNAME_LENGTH]


def is_valid_hostname(host: str) -> bool:
    """Check that a sanitized hostname is usable (starts alphanumeric)."""
    return bool(host) and host[0].isascii() and host[0].isalnum()


def first_token(value: Optional[str]) -> str:
    """Return the first whitespace-delimited token of a probe result."""
    if not value:
        return ""
    parts = value.split()
    return parts[0] if parts else ""
