"""Runtime configuration model."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .validation import validate_collect_constraints, validate_extract_constraints

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_HOMEPAGE_TIMEOUT = 15.0
DEFAULT_REGION_DELAY = 1.0
DEFAULT_PAGE_DELAY = 0.3
DEFAULT_TARGET_DELAY = 1.0
DEFAULT_DATA_DIR = "harvest-data"
DEFAULT_RELAYS: tuple[str, ...] = (
    "http://localhost:3001/proxy?url={url}",
    "https://corsproxy.io/?{url}",
    "https://api.codetabs.com/v1/proxy?quest={url}",
    "https://api.allorigins.win/raw?url={url}",
)
RELAYS_ENV = "REGISTRY_HARVESTER_RELAYS"


def relays_from_env(environ: Mapping[str, str] | None = None) -> tuple[str, ...]:
    """Return relay templates from the environment, or the defaults."""
    env = os.environ if environ is None else environ
    raw = env.get(RELAYS_ENV, "")
    relays = tuple(item.strip() for item in raw.split(",") if item.strip())
    return relays or DEFAULT_RELAYS


@dataclass(frozen=True)
class CollectConfig:
    """Validated configuration of one collection run."""

    source_id: str
    data_dir: str = DEFAULT_DATA_DIR
    max_items: int = 0
    regions: tuple[str, ...] = ()
    establishment_types: tuple[str, ...] = ()
    skip_duplicates: bool = True
    save_per_region: bool = True
    restart: bool = False
    region_delay: float = DEFAULT_REGION_DELAY
    page_delay: float = DEFAULT_PAGE_DELAY
    relays: tuple[str, ...] = DEFAULT_RELAYS
    use_direct: bool = True
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    show_progress: bool = True

    def __post_init__(self) -> None:
        validate_collect_constraints(
            max_items=self.max_items,
            region_delay=self.region_delay,
            page_delay=self.page_delay,
            request_timeout=self.request_timeout,
            use_direct=self.use_direct,
            relays=self.relays,
        )


@dataclass(frozen=True)
class ExtractConfig:
    """Validated configuration of one email extraction run."""

    data_dir: str = DEFAULT_DATA_DIR
    categories: tuple[str, ...] = ()
    max_targets: int = 0
    target_delay: float = DEFAULT_TARGET_DELAY
    verify_mx: bool = False
    retry_failed: bool = False
    relays: tuple[str, ...] = DEFAULT_RELAYS
    use_direct: bool = True
    request_timeout: float = DEFAULT_HOMEPAGE_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    show_progress: bool = True

    def __post_init__(self) -> None:
        validate_extract_constraints(
            max_targets=self.max_targets,
            target_delay=self.target_delay,
            request_timeout=self.request_timeout,
            use_direct=self.use_direct,
            relays=self.relays,
        )
