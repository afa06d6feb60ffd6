"""Collection orchestration: regions in order, dedupe, budget, persist."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .adapters import SourceAdapter, build_adapter
from .cancellation import CancellationToken
from .config import DEFAULT_REGION_DELAY, CollectConfig
from .dedupe import DedupIndex
from .errors import CollectionCancelled, ConfigError, IncompleteRegion, StoreError
from .fetchers import DEFAULT_ATTEMPTS, build_gateway, make_retry_session
from .logging_utils import get_logger
from .models import (
    AdapterKind,
    CollectedOrganization,
    CollectionFilters,
    CollectionLog,
    CollectionProgress,
    CollectionResult,
    Resumable,
    Severity,
    SourceDescriptor,
)
from .regions import NATIONWIDE, regions_for
from .reporting import Reporter, TqdmProgress
from .sources import get_source
from .storage import PersistenceSink, open_stores


def select_regions(source: SourceDescriptor, requested: Sequence[str] = ()) -> list[str]:
    """Return the requested subset of a source's regions in enumerator order."""
    known = list(regions_for(source))
    if not requested:
        return known
    allowed = set(known)
    if source.adapter_kind is AdapterKind.FLAT_FETCH:
        allowed.add(NATIONWIDE)
    unknown = [region for region in requested if region not in allowed]
    if unknown:
        raise ConfigError(
            f"Unknown region(s) for '{source.id}': {', '.join(unknown)}. Known: {', '.join(known)}."
        )
    wanted = set(requested)
    selected = [region for region in known if region in wanted]
    if NATIONWIDE in wanted:
        selected.insert(0, NATIONWIDE)
    return selected


def _region_details(
    *,
    saved: int,
    accepted: list[CollectedOrganization],
    duplicates: int,
    over_budget: int,
    skip_duplicates: bool,
    resumed_from: int,
) -> str:
    homepages = sum(1 for org in accepted if org.homepage)
    parts = [f"new: {len(accepted)}"]
    if skip_duplicates:
        parts.append(f"duplicates skipped: {duplicates}")
    parts.append(f"homepages: {homepages}")
    if saved:
        parts.append(f"saved: {saved}")
    if over_budget:
        parts.append(f"over budget: {over_budget}")
    if resumed_from > 1:
        parts.append(f"resumed from page {resumed_from}")
    return ", ".join(parts)


def _fetch_region(
    adapter: SourceAdapter, region: str, filters: CollectionFilters, token: CancellationToken
) -> tuple[list[CollectedOrganization], IncompleteRegion | None]:
    """Return a region's records and, when it stopped early on a missing page, why."""
    try:
        return adapter.fetch_region(region, filters, token), None
    except IncompleteRegion as exc:
        return exc.records, exc


def collect_records(
    source: SourceDescriptor,
    *,
    adapter: SourceAdapter,
    sink: PersistenceSink,
    token: CancellationToken,
    reporter: Reporter,
    regions: Sequence[str] | None = None,
    filters: CollectionFilters | None = None,
    max_items: int = 0,
    region_delay: float = DEFAULT_REGION_DELAY,
    skip_duplicates: bool = True,
    save_per_region: bool = True,
    logger: logging.Logger,
) -> CollectionResult:
    """Collect a source region by region and persist newly seen organizations.

    Cancellation ends the run as ``aborted`` with everything gathered so far;
    a failing region is logged and skipped.
    """
    started = time.monotonic()
    region_list = list(regions) if regions is not None else list(regions_for(source))
    filters = filters or CollectionFilters()
    category = source.destination_category
    total = max_items if max_items > 0 else len(region_list)
    result = CollectionResult(source_id=source.id, status="collecting")
    admitted = 0
    deferred: list[CollectedOrganization] = []

    def snapshot(status: str, region: str | None, message: str) -> None:
        reporter.progress(CollectionProgress(source.id, status, region, admitted, total, message))

    filter_info = f", establishment: {', '.join(filters.establishment_types)}" if filters.establishment_types else ""
    reporter.log(
        Severity.INFO,
        f"Collection started: {source.display_name}",
        f"{len(region_list)} regions, dedupe: {'on' if skip_duplicates else 'off'}{filter_info}",
    )
    if skip_duplicates:
        index = DedupIndex(sink.existing_names())
        reporter.log(Severity.INFO, f"Loaded {len(index)} existing names for duplicate checks")
    else:
        index = DedupIndex.disabled()

    for position, region in enumerate(region_list):
        if token.cancelled:
            result.status = "aborted"
            break
        remaining = max_items - admitted if max_items > 0 else None
        if remaining is not None and remaining <= 0:
            reporter.log(
                Severity.WARNING,
                f"Reached {max_items} new records, stopping",
                f"duplicates skipped: {result.skipped_duplicates}",
            )
            break

        snapshot("collecting", region, f"Collecting {region} ({admitted}/{max_items or 'all'})")
        resumed_from = adapter.resume_page(region) if isinstance(adapter, Resumable) else 1
        try:
            records, incomplete = _fetch_region(adapter, region, filters, token)
            outcome = index.partition(records, budget=remaining)
            if outcome.first_over_budget is not None and isinstance(adapter, Resumable):
                adapter.rewind(region, outcome.first_over_budget)
            saved = 0
            if outcome.accepted and save_per_region:
                snapshot("saving", region, f"Saving {len(outcome.accepted)} records from {region}")
                saved = sink.append(outcome.accepted, category)
            elif outcome.accepted:
                deferred.extend(outcome.accepted)
            index.add_all(outcome.accepted)
        except CollectionCancelled:
            reporter.log(Severity.WARNING, f"{region}: cancelled")
            result.status = "aborted"
            break
        except Exception as exc:  # noqa: BLE001
            logger.debug("Region %s failed", region, exc_info=True)
            reporter.log(Severity.ERROR, f"{region}: collection failed", f"{type(exc).__name__}: {exc}")
            result.failed_regions.append(region)
        else:
            admitted += len(outcome.accepted)
            result.saved += saved
            result.skipped_duplicates += outcome.duplicates
            result.invalid += outcome.invalid
            result.over_budget += outcome.over_budget
            result.organizations.extend(outcome.accepted)
            details = _region_details(
                saved=saved,
                accepted=outcome.accepted,
                duplicates=outcome.duplicates,
                over_budget=outcome.over_budget,
                skip_duplicates=skip_duplicates,
                resumed_from=resumed_from,
            )
            if incomplete is not None:
                result.incomplete_regions.append(region)
                reason = str(incomplete)
                if isinstance(adapter, Resumable):
                    reason += f", resumes at page {adapter.resume_page(region)}"
                reporter.log(
                    Severity.WARNING, f"{region}: incomplete, partial results kept", f"{reason}; {details}"
                )
            elif token.cancelled:
                reporter.log(Severity.WARNING, f"{region}: stopped early, partial results kept", details)
            else:
                result.completed_regions.append(region)
                reporter.log(Severity.SUCCESS, f"{region}: collected", details)

        if token.cancelled:
            result.status = "aborted"
            break
        at_budget = max_items > 0 and admitted >= max_items
        if position + 1 < len(region_list) and not at_budget and token.wait(region_delay):
            result.status = "aborted"
            break

    if deferred:
        snapshot("saving", None, f"Saving {len(deferred)} records")
        reporter.log(Severity.SAVING, f"Saving {len(deferred)} collected records")
        try:
            result.saved += sink.append(deferred, category)
        except (OSError, StoreError) as exc:
            logger.debug("Deferred save failed", exc_info=True)
            reporter.log(Severity.ERROR, "Saving collected records failed", str(exc))

    if result.status != "aborted":
        result.status = "done"
    result.elapsed = time.monotonic() - started
    summary = f"new saved: {result.saved}, duplicates skipped: {result.skipped_duplicates}"
    if result.failed_regions:
        summary += f", failed regions: {', '.join(result.failed_regions)}"
    if result.incomplete_regions:
        summary += f", incomplete regions: {', '.join(result.incomplete_regions)}"
    snapshot(result.status, None, f"{result.status}: {result.saved} new records")
    reporter.log(
        Severity.SUCCESS if result.status == "done" else Severity.WARNING,
        f"Collection {'finished' if result.status == 'done' else 'aborted'}: {source.display_name}",
        f"{summary}, elapsed: {result.elapsed:.1f}s",
    )
    return result


def run_collection(
    config: CollectConfig,
    token: CancellationToken | None = None,
    *,
    on_progress: Callable[[Any], None] | None = None,
    on_log: Callable[[CollectionLog], None] | None = None,
    logger: logging.Logger | None = None,
    environ: Mapping[str, str] | None = None,
) -> CollectionResult:
    """Build dependencies from config and run one collection."""
    logger = logger or get_logger()
    token = token or CancellationToken()
    source = get_source(config.source_id, environ)
    regions = select_regions(source, config.regions)
    stores = open_stores(config.data_dir)
    session = make_retry_session(config.user_agent, retries=0)
    bar = None
    try:
        gateway = build_gateway(
            session=session,
            relays=config.relays,
            use_direct=config.use_direct,
            timeout=config.request_timeout,
            attempts=DEFAULT_ATTEMPTS,
            logger=logger,
        )
        adapter = build_adapter(
            source,
            gateway=gateway,
            checkpoints=stores.checkpoints,
            page_delay=config.page_delay,
            logger=logger,
        )
        if config.restart and isinstance(adapter, Resumable):
            logger.info("Clearing stored checkpoints for %s", source.id)
            adapter.reset_progress()
        if on_progress is None and config.show_progress:
            bar = TqdmProgress(f"collecting {source.id}")
            on_progress = bar
        reporter = Reporter(on_progress=on_progress, on_log=on_log, logger=logger)
        return collect_records(
            source,
            adapter=adapter,
            sink=stores.sink,
            token=token,
            reporter=reporter,
            regions=regions,
            filters=CollectionFilters(config.establishment_types),
            max_items=config.max_items,
            region_delay=config.region_delay,
            skip_duplicates=config.skip_duplicates,
            save_per_region=config.save_per_region,
            logger=logger,
        )
    finally:
        if bar is not None:
            bar.close()
        session.close()
