"""Pure email candidate extraction utilities."""

from __future__ import annotations

import re
from urllib.parse import unquote

from bs4 import BeautifulSoup

from .validation import is_well_formed_email

EMAIL_REGEX = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}", re.IGNORECASE)
LEADING_ESCAPES = re.compile(r"^(?:%[0-9a-f]{2})+", re.IGNORECASE)
EXCLUDED_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^admin@",
        r"^webmaster@",
        r"^postmaster@",
        r"^hostmaster@",
        r"^noreply@",
        r"^no-reply@",
        r"^info@example",
        r"^test@",
        r"^sample@",
        r"@example\.",
        r"@test\.",
        r"@localhost",
        r"\.(png|jpe?g|gif|svg|webp)$",
    )
)


def is_excluded(email: str) -> bool:
    """Return True for system, placeholder, or image-filename addresses."""
    return any(pattern.search(email) for pattern in EXCLUDED_PATTERNS)


def is_valid_email(email: str) -> bool:
    """Return True when an address is well formed and not excluded."""
    return is_well_formed_email(email) and not is_excluded(email)


def dedupe_preserve_order(items: list[str]) -> list[str]:
    """Dedupe values while preserving first-seen order."""
    output: list[str] = []
    seen: set[str] = set()
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        output.append(item)
    return output


def find_mailto_addresses(html: str) -> list[str]:
    """Return addresses of ``mailto:`` anchors in document order."""
    addresses: list[str] = []
    soup = BeautifulSoup(html or "", "html.parser")
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href.lower().startswith("mailto:"):
            continue
        address = unquote(href.split(":", maxsplit=1)[1].split("?", maxsplit=1)[0]).strip()
        match = EMAIL_REGEX.fullmatch(address)
        if match:
            addresses.append(match.group(0))
    return addresses


def extract_emails(html: str) -> list[str]:
    """Return valid, lower-cased, de-duplicated candidates; mailto links first."""
    candidates = find_mailto_addresses(html)
    candidates.extend(LEADING_ESCAPES.sub("", match.group(0)) for match in EMAIL_REGEX.finditer(html or ""))
    normalized = dedupe_preserve_order([item.lower() for item in candidates])
    return [email for email in normalized if is_valid_email(email)]
