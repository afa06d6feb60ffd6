"""Best-effort parser for the church address book listing.

Each entry of the listing is a fixed-shape block inside ``<tbody>``::

    <tr>
      <td rowspan="4" class="bb-2">presbytery</td>
      <td rowspan="4">church name</td>
      <td rowspan="4">postal code</td>
      <td rowspan="4">address</td>
      <td rowspan="4">pastor</td>
      <td>TEL : ...</td>
    </tr>
    <tr><td>homepage</td></tr>
    <tr><td>fax</td></tr>
    <tr><td>EMAIL : ...</td></tr>

The primary parser matches that block with a structural regex. When it finds
nothing (markup drift), a row walker built on BeautifulSoup groups rows by the
``rowspan`` cells instead. Both degrade to an empty list, never an exception;
an empty list is read by the adapter as the end of the listing.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, Tag

from .models import CollectedOrganization

CHURCH_TYPE = "교회"
HEADER_NAMES = frozenset({"교회명", "노회명"})
SATELLITE_WINDOW = 600
OWN_DOMAIN = "pck.or.kr"

_FLAGS = re.IGNORECASE | re.DOTALL
TBODY_PATTERN = re.compile(r"<tbody[^>]*>(.*?)</tbody>", _FLAGS)
_SPANNED_CELL = r'<td[^>]*rowspan="4"[^>]*>(.*?)</td>\s*'
BLOCK_PATTERN = re.compile(
    r"<tr[^>]*>\s*"
    r'<td[^>]*rowspan="4"[^>]*class="bb-2"[^>]*>(.*?)</td>\s*'
    + _SPANNED_CELL * 4
    + r"<td[^>]*>(.*?)</td>\s*</tr>",
    _FLAGS,
)
TEL_LINK_PATTERN = re.compile(r"TEL\s*:\s*<a[^>]*>([^<]*)</a>", re.IGNORECASE)
TEL_TEXT_PATTERN = re.compile(r"TEL\s*:\s*([^\s<]+)", re.IGNORECASE)
HOMEPAGE_PATTERN = re.compile(r'href="(https?://[^"]+)"', re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"EMAIL\s*:\s*([^\s<]+@[^\s<]+)", re.IGNORECASE)
PAGE_LINK_PATTERN = re.compile(r"\bpage=(\d+)")


def clean_text(fragment: str) -> str:
    """Strip tags and entities and collapse whitespace."""
    text = BeautifulSoup(fragment, "html.parser").get_text(" ")
    return " ".join(text.split())


def _phone(fragment: str) -> str:
    match = TEL_LINK_PATTERN.search(fragment) or TEL_TEXT_PATTERN.search(fragment)
    if not match:
        return ""
    value = match.group(1).strip()
    return "" if value == "--" else value


def _homepage(fragment: str) -> str:
    match = HOMEPAGE_PATTERN.search(fragment)
    if match and OWN_DOMAIN not in match.group(1):
        return match.group(1)
    return ""


def _email(fragment: str) -> str:
    match = EMAIL_PATTERN.search(fragment)
    return match.group(1).strip() if match else ""


def _organization(
    *,
    name: str,
    presbytery: str,
    address: str,
    pastor: str,
    phone: str,
    homepage: str,
    email: str,
    region: str,
    collected_at: str,
) -> CollectedOrganization:
    return CollectedOrganization(
        name=name,
        type=CHURCH_TYPE,
        address=address,
        phone=phone,
        homepage=homepage,
        representative=pastor,
        region=presbytery or region,
        email=email,
        collected_at=collected_at,
    )


def parse_blocks(tbody: str, region: str, collected_at: str) -> list[CollectedOrganization]:
    """Primary parser: structural regex over the repeating block."""
    results: list[CollectedOrganization] = []
    matches = list(BLOCK_PATTERN.finditer(tbody))
    for index, match in enumerate(matches):
        name = clean_text(match.group(2))
        if not name or name in HEADER_NAMES:
            continue
        end = matches[index + 1].start() if index + 1 < len(matches) else match.end() + SATELLITE_WINDOW
        satellites = tbody[match.end() : end]
        results.append(
            _organization(
                name=name,
                presbytery=clean_text(match.group(1)),
                address=clean_text(match.group(4)),
                pastor=clean_text(match.group(5)),
                phone=_phone(match.group(6)),
                homepage=_homepage(satellites),
                email=_email(clean_text(satellites)),
                region=region,
                collected_at=collected_at,
            )
        )
    return results


def parse_rows(tbody: str, region: str, collected_at: str) -> list[CollectedOrganization]:
    """Fallback parser: walk table rows, starting a block at every rowspan row."""
    results: list[CollectedOrganization] = []
    current: dict[str, str] | None = None
    offset = 0

    def flush() -> None:
        if current and current["name"] and current["name"] not in HEADER_NAMES:
            results.append(_organization(region=region, collected_at=collected_at, **current))

    soup = BeautifulSoup(tbody, "html.parser")
    for row in soup.find_all("tr"):
        if not isinstance(row, Tag):
            continue
        spanned = [cell for cell in row.find_all("td") if str(cell.get("rowspan", "")) == "4"]
        if spanned:
            flush()
            offset = 0
            texts = [" ".join(cell.get_text(" ").split()) for cell in spanned]
            if len(texts) < 5:
                current = None
                continue
            current = {
                "presbytery": texts[0],
                "name": texts[1],
                "address": texts[3],
                "pastor": texts[4],
                "phone": _phone(str(row)),
                "homepage": "",
                "email": "",
            }
            continue
        offset += 1
        if current is None:
            continue
        if offset == 1:
            current["homepage"] = _homepage(str(row))
        elif offset == 3:
            current["email"] = _email(" ".join(row.get_text(" ").split()))
    flush()
    return results


def parse_church_listing(html: str, region: str, collected_at: str) -> list[CollectedOrganization]:
    """Return the listing's churches, or an empty list when nothing parses."""
    tbody_match = TBODY_PATTERN.search(html or "")
    if not tbody_match:
        return []
    tbody = tbody_match.group(1)
    results = parse_blocks(tbody, region, collected_at)
    if results:
        return results
    return parse_rows(tbody, region, collected_at)


def has_next_page(html: str, page: int) -> bool:
    """Return True when the markup links to ``page + 1``."""
    return any(int(value) == page + 1 for value in PAGE_LINK_PATTERN.findall(html or ""))
