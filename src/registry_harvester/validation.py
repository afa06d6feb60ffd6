"""Validation and runtime guardrails."""

from __future__ import annotations

import re
import socket
from urllib.parse import urlparse

import dns.resolver

from .errors import ConfigError

DEFAULT_SCHEME = "https://"
MAX_EMAIL_LENGTH = 254
SCHEME_PREFIX = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)


def is_supported_url(url: str) -> bool:
    """Allow only absolute HTTP(S) URLs with a hostname."""
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def normalize_homepage(url: str) -> str:
    """Trim a registry homepage value and prepend a scheme when none is given."""
    value = url.strip()
    if not SCHEME_PREFIX.match(value):
        value = DEFAULT_SCHEME + value.lstrip("/")
    return value


def is_well_formed_email(email: str) -> bool:
    """Structural checks: one ``@``, a dotted domain of 3+ chars, bounded length."""
    if not email or len(email) > MAX_EMAIL_LENGTH:
        return False
    parts = email.split("@")
    if len(parts) != 2 or not parts[0]:
        return False
    domain = parts[1]
    return len(domain) >= 3 and "." in domain


def validate_collect_constraints(
    *,
    max_items: int,
    region_delay: float,
    page_delay: float,
    request_timeout: float,
    use_direct: bool,
    relays: tuple[str, ...],
) -> None:
    """Validate collection settings and raise ConfigError on invalid values."""
    if max_items < 0:
        raise ConfigError("--max-items must be >= 0 (0 means unlimited).")
    if region_delay < 0 or page_delay < 0:
        raise ConfigError("--region-delay and --page-delay must be >= 0.")
    _validate_transport(request_timeout=request_timeout, use_direct=use_direct, relays=relays)


def validate_extract_constraints(
    *,
    max_targets: int,
    target_delay: float,
    request_timeout: float,
    use_direct: bool,
    relays: tuple[str, ...],
) -> None:
    """Validate email extraction settings and raise ConfigError on invalid values."""
    if max_targets < 0:
        raise ConfigError("--max-targets must be >= 0 (0 means unlimited).")
    if target_delay < 0:
        raise ConfigError("--target-delay must be >= 0.")
    _validate_transport(request_timeout=request_timeout, use_direct=use_direct, relays=relays)


def _validate_transport(*, request_timeout: float, use_direct: bool, relays: tuple[str, ...]) -> None:
    if request_timeout <= 0:
        raise ConfigError("--timeout must be > 0.")
    if not use_direct and not relays:
        raise ConfigError("At least one transport is required: enable direct fetch or add a relay.")
    for template in relays:
        if "{url}" not in template:
            raise ConfigError(f"Relay template must contain '{{url}}': {template}")


def mx_check(email: str) -> bool:
    """Return True when target domain has MX or A record."""
    try:
        domain = email.split("@", maxsplit=1)[1]
    except IndexError:
        return False
    try:
        answers = dns.resolver.resolve(domain, "MX", lifetime=8)
        return bool(answers)
    except (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN, dns.resolver.NoNameservers):
        try:
            socket.gethostbyname(domain)
            return True
        except OSError:
            return False
    except dns.exception.DNSException:
        return False
