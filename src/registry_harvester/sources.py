"""Registry of the public data sources the collector knows about."""

from __future__ import annotations

import os
from dataclasses import replace
from typing import Mapping

from .errors import ConfigError
from .models import AdapterKind, SourceDescriptor
from .regions import EDUCATION_OFFICE_CODES, PROVINCE_CODES, SEARCH_KEYWORDS

KINDERGARTEN_URL = "https://e-childschoolinfo.moe.go.kr/api/notice/basicInfo.do"
SCHOOL_URL = "https://open.neis.go.kr/hub/schoolInfo"
UNIVERSITY_URL = (
    "https://api.odcloud.kr/api/15107736/v1/uddi:bc4dfac2-3551-4d83-a7a8-df668677a4dc"
)
CHURCH_DIRECTORY_URL = "https://new.pck.or.kr/address.php"

_SOURCE_TABLE: tuple[SourceDescriptor, ...] = (
    SourceDescriptor(
        id="kindergarten",
        display_name="Kindergartens",
        description="Nationwide kindergarten registry (Ministry of Education).",
        destination_category="유치원",
        adapter_kind=AdapterKind.PAGED_API,
        adapter="kindergarten",
        base_url=KINDERGARTEN_URL,
        region_codes=PROVINCE_CODES,
        auth_env="KINDERGARTEN_API_KEY",
    ),
    SourceDescriptor(
        id="elementary",
        display_name="Elementary schools",
        description="School registry, elementary schools.",
        destination_category="초등학교",
        adapter_kind=AdapterKind.PAGED_API,
        adapter="school",
        base_url=SCHOOL_URL,
        region_codes=EDUCATION_OFFICE_CODES,
        auth_env="NEIS_API_KEY",
        extra_params=(("SCHUL_KND_SC_NM", "초등학교"),),
    ),
    SourceDescriptor(
        id="middle",
        display_name="Middle schools",
        description="School registry, middle schools.",
        destination_category="중학교",
        adapter_kind=AdapterKind.PAGED_API,
        adapter="school",
        base_url=SCHOOL_URL,
        region_codes=EDUCATION_OFFICE_CODES,
        auth_env="NEIS_API_KEY",
        extra_params=(("SCHUL_KND_SC_NM", "중학교"),),
    ),
    SourceDescriptor(
        id="high",
        display_name="High schools",
        description="School registry, high schools.",
        destination_category="고등학교",
        adapter_kind=AdapterKind.PAGED_API,
        adapter="school",
        base_url=SCHOOL_URL,
        region_codes=EDUCATION_OFFICE_CODES,
        auth_env="NEIS_API_KEY",
        extra_params=(("SCHUL_KND_SC_NM", "고등학교"),),
    ),
    SourceDescriptor(
        id="university",
        display_name="Universities and colleges",
        description="Nationwide university and junior college dataset (bulk API).",
        destination_category="대학교",
        adapter_kind=AdapterKind.FLAT_FETCH,
        adapter="university",
        base_url=UNIVERSITY_URL,
        region_codes=PROVINCE_CODES,
        auth_env="ODCLOUD_API_KEY",
    ),
    SourceDescriptor(
        id="church",
        display_name="Churches",
        description="Presbyterian church address book, scraped; exposes emails directly.",
        destination_category="교회",
        adapter_kind=AdapterKind.HTML_SCRAPE,
        adapter="church",
        base_url=CHURCH_DIRECTORY_URL,
        region_codes=SEARCH_KEYWORDS,
    ),
)


def build_sources(environ: Mapping[str, str] | None = None) -> dict[str, SourceDescriptor]:
    """Return descriptors keyed by id, with credentials taken from the environment."""
    env = os.environ if environ is None else environ
    sources: dict[str, SourceDescriptor] = {}
    for source in _SOURCE_TABLE:
        api_key = env.get(source.auth_env, "").strip() if source.auth_env else ""
        sources[source.id] = replace(source, api_key=api_key)
    return sources


def get_source(source_id: str, environ: Mapping[str, str] | None = None) -> SourceDescriptor:
    """Look up one source and verify its credentials before any network use."""
    sources = build_sources(environ)
    source = sources.get(source_id)
    if source is None:
        known = ", ".join(sorted(sources))
        raise ConfigError(f"Unknown source '{source_id}'. Known sources: {known}.")
    require_credentials(source)
    return source


def require_credentials(source: SourceDescriptor) -> None:
    if source.auth_env and not source.api_key:
        raise ConfigError(
            f"Source '{source.id}' needs an API key. Set {source.auth_env} in the environment."
        )
