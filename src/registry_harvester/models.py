"""Protocols and lightweight model types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol, runtime_checkable


class AdapterKind(str, Enum):
    """Pagination family of a source adapter."""

    PAGED_API = "paged_api"
    FLAT_FETCH = "flat_fetch"
    HTML_SCRAPE = "html_scrape"


class PayloadKind(str, Enum):
    """Expected shape of a fetched payload."""

    JSON = "json"
    HTML = "html"
    PAGE = "page"


class EmailStatus(str, Enum):
    """Email extraction flag stored with every organization row."""

    EXTRACTED = "Y"
    PENDING = "N"
    FAILED = "F"
    NO_HOMEPAGE = "-"


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    SAVING = "saving"


@dataclass(frozen=True)
class SourceDescriptor:
    """Static description of one public data source."""

    id: str
    display_name: str
    description: str
    destination_category: str
    adapter_kind: AdapterKind
    adapter: str
    base_url: str
    region_codes: tuple[tuple[str, str], ...]
    auth_env: str | None = None
    api_key: str = ""
    extra_params: tuple[tuple[str, str], ...] = ()

    @property
    def regions(self) -> tuple[str, ...]:
        return tuple(name for name, _code in self.region_codes)

    def region_code(self, region: str) -> str | None:
        for name, code in self.region_codes:
            if name == region:
                return code
        return None


@dataclass(frozen=True)
class SubRegion:
    """District-level unit used to bound paged API requests."""

    code: str
    name: str


@dataclass(frozen=True)
class CollectionFilters:
    """Record filters forwarded to adapters."""

    establishment_types: tuple[str, ...] = ()

    def accepts(self, establishment_type: str) -> bool:
        if not self.establishment_types:
            return True
        return any(establishment_type.startswith(item) for item in self.establishment_types)


@dataclass(frozen=True)
class CollectedOrganization:
    """One organization record in the shared shape of all sources."""

    name: str
    type: str = ""
    address: str = ""
    phone: str = ""
    homepage: str = ""
    representative: str = ""
    region: str = ""
    email: str = ""
    collected_at: str = ""

    @property
    def has_email(self) -> bool:
        return "@" in self.email


@dataclass(frozen=True)
class CrawlCheckpoint:
    """Page marker letting a resumable adapter continue a region."""

    source_id: str
    region: str
    last_page: int
    last_updated_at: str


@dataclass(frozen=True)
class CollectionProgress:
    """Machine-consumable snapshot of a collection run."""

    source_id: str
    status: str
    current_region: str | None
    collected: int
    total: int
    message: str = ""


@dataclass(frozen=True)
class CollectionLog:
    """Timestamped, severity-tagged narrative line."""

    timestamp: datetime
    severity: Severity
    message: str
    details: str | None = None


@dataclass(frozen=True)
class CrawlTarget:
    """A persisted organization with a homepage but no resolved email."""

    name: str
    homepage: str
    category: str
    row_index: int


@dataclass(frozen=True)
class ContactRecord:
    name: str
    email: str
    category: str


@dataclass(frozen=True)
class ExtractionProgress:
    """Snapshot of the email extraction stage."""

    status: str
    total: int
    current: int
    success: int
    failed: int
    current_target: str | None = None
    message: str = ""


@dataclass
class CollectionResult:
    """Outcome of one collection run, complete even when aborted."""

    source_id: str
    status: str = "idle"
    organizations: list[CollectedOrganization] = field(default_factory=list)
    saved: int = 0
    skipped_duplicates: int = 0
    over_budget: int = 0
    invalid: int = 0
    failed_regions: list[str] = field(default_factory=list)
    incomplete_regions: list[str] = field(default_factory=list)
    completed_regions: list[str] = field(default_factory=list)
    elapsed: float = 0.0


@dataclass
class ExtractionResult:
    """Outcome of the email extraction stage, complete even when aborted."""

    status: str = "ready"
    total: int = 0
    success: int = 0
    failed: int = 0
    emails: list[ContactRecord] = field(default_factory=list)


class PageFetcher(Protocol):
    """Contract for the proxy gateway as seen by adapters and the email stage."""

    def fetch(self, url: str, kind: PayloadKind, token: object) -> str | None:
        """Return the first valid payload or None when every transport failed."""


@runtime_checkable
class Resumable(Protocol):
    """Optional capability of adapters that checkpoint their pagination."""

    def resume_page(self, region: str) -> int:
        """Return the page a region would start from."""

    def reset_progress(self, region: str | None = None) -> None:
        """Forget stored progress for one region or for every region."""

    def rewind(self, region: str, index: int) -> None:
        """Move a region's checkpoint back to the page that produced record ``index`` of the last fetch."""


class CheckpointStore(Protocol):
    """Contract for the (source, region) keyed checkpoint store."""

    def get(self, source_id: str, region: str) -> CrawlCheckpoint | None:
        """Return the stored checkpoint or None."""

    def save(self, checkpoint: CrawlCheckpoint) -> None:
        """Persist a checkpoint."""

    def clear(self, source_id: str, region: str | None = None) -> None:
        """Remove checkpoints for a region, or for the whole source."""
