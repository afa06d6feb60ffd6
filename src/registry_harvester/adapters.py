"""Source adapters: one pagination strategy per upstream family."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any
from urllib.parse import urlencode

from .cancellation import CancellationToken
from .errors import CollectionCancelled, ConfigError, IncompleteRegion
from .models import (
    CheckpointStore,
    CollectedOrganization,
    CollectionFilters,
    CrawlCheckpoint,
    PageFetcher,
    PayloadKind,
    SourceDescriptor,
    SubRegion,
)
from .parsing import has_next_page, parse_church_listing
from .regions import NATIONWIDE, matches_region, sub_regions_for

Row = dict[str, Any]


def _today() -> str:
    return date.today().isoformat()


def _text(row: Row, *keys: str) -> str:
    """Return the first non-empty string value among ``keys``."""
    for key in keys:
        value = row.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


class SourceAdapter(ABC):
    """Fetches every organization of one region for one source."""

    uses_checkpoints = False

    def __init__(
        self,
        source: SourceDescriptor,
        *,
        gateway: PageFetcher,
        page_delay: float,
        logger: logging.Logger,
    ) -> None:
        self.source = source
        self._gateway = gateway
        self._page_delay = page_delay
        self._logger = logger

    def require_region(self, region: str) -> str:
        code = self.source.region_code(region)
        if code is None:
            raise ConfigError(f"Unknown region '{region}' for source '{self.source.id}'.")
        return code

    @abstractmethod
    def fetch_region(
        self, region: str, filters: CollectionFilters, token: CancellationToken
    ) -> list[CollectedOrganization]:
        """Return the region's organizations; partial on cancellation."""


class PagedApiAdapter(SourceAdapter):
    """Fixed-size JSON pages; a short or empty page ends a unit's pagination."""

    page_size = 1000
    unit_delay = 0.0

    def request_units(self, region: str) -> list[Any]:
        """Return the request scopes a region is split into."""
        return [self.require_region(region)]

    @abstractmethod
    def page_url(self, unit: Any, page: int) -> str:
        ...

    @abstractmethod
    def extract_rows(self, payload: Any) -> list[Row]:
        """Return raw rows of a decoded page; empty means no more data."""

    @abstractmethod
    def to_organization(self, row: Row, collected_at: str) -> CollectedOrganization | None:
        ...

    def fetch_region(
        self, region: str, filters: CollectionFilters, token: CancellationToken
    ) -> list[CollectedOrganization]:
        results: list[CollectedOrganization] = []
        missing: list[str] = []
        units = self.request_units(region)
        try:
            for position, unit in enumerate(units):
                if not self.fetch_pages(unit, filters, token, results):
                    missing.append(str(getattr(unit, "name", unit)))
                if position + 1 < len(units) and token.wait(self.unit_delay):
                    break
        except CollectionCancelled:
            self._logger.debug("%s: cancelled during %s", self.source.id, region)
            return results
        if missing:
            raise IncompleteRegion(f"page unavailable for {', '.join(missing)}", results)
        return results

    def fetch_pages(
        self,
        unit: Any,
        filters: CollectionFilters,
        token: CancellationToken,
        results: list[CollectedOrganization],
    ) -> bool:
        """Append one unit's rows to ``results``.

        Returns True when pagination ended on a short or empty page, False
        when a page could not be fetched. Raises CollectionCancelled.
        """
        collected_at = _today()
        page = 1
        while True:
            token.raise_if_cancelled()
            text = self._gateway.fetch(self.page_url(unit, page), PayloadKind.JSON, token)
            if text is None:
                self._logger.debug("%s: page %d unavailable, stopping", self.source.id, page)
                return False
            rows = self.extract_rows(json.loads(text))
            if not rows:
                return True
            for row in rows:
                org = self.to_organization(row, collected_at)
                if org is not None and filters.accepts(org.type):
                    results.append(org)
            if len(rows) < self.page_size:
                return True
            page += 1
            if token.wait(self._page_delay):
                raise CollectionCancelled("Run cancelled between pages.")


class KindergartenAdapter(PagedApiAdapter):
    """Kindergarten registry, queried district by district."""

    page_size = 500
    unit_delay = 0.2

    def request_units(self, region: str) -> list[Any]:
        self.require_region(region)
        return list(sub_regions_for(self.source, region))

    def page_url(self, unit: SubRegion, page: int) -> str:
        params = {
            "key": self.source.api_key,
            "sidoCode": unit.code[:2],
            "sggCode": unit.code,
            "pageCnt": self.page_size,
            "currentPage": page,
        }
        return f"{self.source.base_url}?{urlencode(params)}"

    def extract_rows(self, payload: Any) -> list[Row]:
        if not isinstance(payload, dict) or payload.get("status") != "SUCCESS":
            return []
        rows = payload.get("kinderInfo") or []
        return [row for row in rows if isinstance(row, dict)]

    def to_organization(self, row: Row, collected_at: str) -> CollectedOrganization | None:
        name = _text(row, "kindername")
        if not name:
            return None
        return CollectedOrganization(
            name=name,
            type=_text(row, "establish"),
            address=_text(row, "addr"),
            phone=_text(row, "telno"),
            homepage=_text(row, "hpaddr"),
            representative=_text(row, "ldgrname", "ldgname"),
            region=_text(row, "officeedu"),
            collected_at=collected_at,
        )


class NeisSchoolAdapter(PagedApiAdapter):
    """School registry, one education office per region."""

    page_size = 1000
    PROVISIONAL_MARKER = "(가칭)"

    def page_url(self, unit: str, page: int) -> str:
        params: list[tuple[str, Any]] = [
            ("KEY", self.source.api_key),
            ("Type", "json"),
            ("pIndex", page),
            ("pSize", self.page_size),
            ("ATPT_OFCDC_SC_CODE", unit),
        ]
        params.extend(self.source.extra_params)
        return f"{self.source.base_url}?{urlencode(params)}"

    def extract_rows(self, payload: Any) -> list[Row]:
        if not isinstance(payload, dict):
            return []
        sections = payload.get("schoolInfo")
        if not isinstance(sections, list) or len(sections) < 2 or not isinstance(sections[1], dict):
            return []
        return [row for row in sections[1].get("row") or [] if isinstance(row, dict)]

    def to_organization(self, row: Row, collected_at: str) -> CollectedOrganization | None:
        name = _text(row, "SCHUL_NM")
        if not name or self.PROVISIONAL_MARKER in name:
            return None
        address = " ".join(part for part in (_text(row, "ORG_RDNMA"), _text(row, "ORG_RDNDA")) if part)
        return CollectedOrganization(
            name=name,
            type=_text(row, "FOND_SC_NM"),
            address=address,
            phone=_text(row, "ORG_TELNO"),
            homepage=_text(row, "HMPG_ADRES"),
            region=_text(row, "JU_ORG_NM", "ATPT_OFCDC_SC_NM"),
            collected_at=collected_at,
        )


class FlatFetchAdapter(PagedApiAdapter):
    """Nationwide dataset without a region parameter, filtered client-side.

    The dataset is fetched once per adapter instance and reused for every
    later region. An interrupted fetch still serves the current region but
    is never cached; a missing page makes the region incomplete.
    """

    def __init__(self, source: SourceDescriptor, **kwargs: Any) -> None:
        super().__init__(source, **kwargs)
        self._dataset: list[CollectedOrganization] | None = None

    @property
    def cached(self) -> bool:
        return self._dataset is not None

    def fetch_region(
        self, region: str, filters: CollectionFilters, token: CancellationToken
    ) -> list[CollectedOrganization]:
        if region != NATIONWIDE:
            self.require_region(region)
        if self._dataset is not None:
            dataset, complete = self._dataset, True
        else:
            dataset, complete = self._fetch_dataset(token)
        selected = [
            org for org in dataset if matches_region(region, org.region) and filters.accepts(org.type)
        ]
        if not complete and not token.cancelled:
            raise IncompleteRegion(f"bulk dataset incomplete after {len(dataset)} rows", selected)
        return selected

    def _fetch_dataset(self, token: CancellationToken) -> tuple[list[CollectedOrganization], bool]:
        dataset: list[CollectedOrganization] = []
        try:
            complete = self.fetch_pages(None, CollectionFilters(), token, dataset)
        except CollectionCancelled:
            self._logger.debug("%s: cancelled during the bulk fetch", self.source.id)
            return dataset, False
        if complete:
            self._dataset = dataset
            self._logger.info("%s: cached %d rows", self.source.id, len(dataset))
        return dataset, complete


class UniversityAdapter(FlatFetchAdapter):
    """University and junior college bulk dataset."""

    page_size = 1000

    def page_url(self, unit: Any, page: int) -> str:
        params = {"page": page, "perPage": self.page_size, "serviceKey": self.source.api_key}
        return f"{self.source.base_url}?{urlencode(params)}"

    def extract_rows(self, payload: Any) -> list[Row]:
        if not isinstance(payload, dict):
            return []
        return [row for row in payload.get("data") or [] if isinstance(row, dict)]

    def to_organization(self, row: Row, collected_at: str) -> CollectedOrganization | None:
        name = _text(row, "학교명")
        if not name:
            return None
        return CollectedOrganization(
            name=name,
            type=_text(row, "설립형태구분명"),
            address=_text(row, "소재지도로명주소", "소재지지번주소"),
            phone=_text(row, "대표전화번호"),
            homepage=_text(row, "홈페이지주소"),
            region=_text(row, "시도명"),
            collected_at=collected_at,
        )


class ChurchDirectoryAdapter(SourceAdapter):
    """Scraped church address book with a per-region page checkpoint.

    After every processed page the checkpoint points at the next page. A
    cancelled or failed fetch stores the page being attempted, so a later
    run starts there without re-requesting finished pages. The checkpoint
    is cleared when the listing ends. ``rewind`` moves it back to the page
    of a record the caller did not keep.
    """

    uses_checkpoints = True

    def __init__(self, source: SourceDescriptor, *, checkpoints: CheckpointStore, **kwargs: Any) -> None:
        super().__init__(source, **kwargs)
        self._checkpoints = checkpoints
        self._page_starts: dict[str, list[tuple[int, int]]] = {}

    def resume_page(self, region: str) -> int:
        checkpoint = self._checkpoints.get(self.source.id, region)
        if checkpoint is None or checkpoint.last_page < 1:
            return 1
        return checkpoint.last_page

    def reset_progress(self, region: str | None = None) -> None:
        self._checkpoints.clear(self.source.id, region)

    def rewind(self, region: str, index: int) -> None:
        page = None
        for start_page, start in self._page_starts.get(region, []):
            if start <= index:
                page = start_page
        if page is None:
            return
        current = self._checkpoints.get(self.source.id, region)
        if current is None or current.last_page > page:
            self._logger.info("%s: %s will resume from page %d", self.source.id, region, page)
            self._save(region, page)

    def page_url(self, region: str, page: int) -> str:
        params = {"flag": "churchAddress", "sch": self.require_region(region), "page": page}
        return f"{self.source.base_url}?{urlencode(params)}"

    def _save(self, region: str, page: int) -> None:
        self._checkpoints.save(
            CrawlCheckpoint(
                source_id=self.source.id,
                region=region,
                last_page=page,
                last_updated_at=datetime.now(timezone.utc).isoformat(),
            )
        )

    def fetch_region(
        self, region: str, filters: CollectionFilters, token: CancellationToken
    ) -> list[CollectedOrganization]:
        self.require_region(region)
        results: list[CollectedOrganization] = []
        starts: list[tuple[int, int]] = []
        self._page_starts[region] = starts
        collected_at = _today()
        page = self.resume_page(region)
        if page > 1:
            self._logger.info("%s: resuming %s from page %d", self.source.id, region, page)
        while True:
            if token.cancelled:
                self._save(region, page)
                break
            try:
                html = self._gateway.fetch(self.page_url(region, page), PayloadKind.HTML, token)
            except CollectionCancelled:
                self._save(region, page)
                break
            if html is None:
                self._save(region, page)
                raise IncompleteRegion(f"page {page} unavailable", results)
            organizations = parse_church_listing(html, region, collected_at)
            if not organizations:
                self.reset_progress(region)
                break
            starts.append((page, len(results)))
            results.extend(org for org in organizations if filters.accepts(org.type))
            if not has_next_page(html, page):
                self.reset_progress(region)
                break
            page += 1
            self._save(region, page)
            if token.wait(self._page_delay):
                break
        return results


ADAPTER_CLASSES: dict[str, type[SourceAdapter]] = {
    "kindergarten": KindergartenAdapter,
    "school": NeisSchoolAdapter,
    "university": UniversityAdapter,
    "church": ChurchDirectoryAdapter,
}


def build_adapter(
    source: SourceDescriptor,
    *,
    gateway: PageFetcher,
    checkpoints: CheckpointStore,
    page_delay: float,
    logger: logging.Logger,
) -> SourceAdapter:
    """Instantiate the adapter registered for a source descriptor."""
    adapter_cls = ADAPTER_CLASSES.get(source.adapter)
    if adapter_cls is None:
        raise ConfigError(f"No adapter registered for '{source.adapter}'.")
    kwargs: dict[str, Any] = {"gateway": gateway, "page_delay": page_delay, "logger": logger}
    if adapter_cls.uses_checkpoints:
        kwargs["checkpoints"] = checkpoints
    return adapter_cls(source, **kwargs)
