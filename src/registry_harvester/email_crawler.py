"""Email extraction stage over persisted organizations."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from tqdm import tqdm

from .cancellation import CancellationToken
from .config import DEFAULT_TARGET_DELAY, ExtractConfig
from .errors import CollectionCancelled, FetchError
from .extraction import extract_emails
from .fetchers import DEFAULT_ATTEMPTS, build_gateway, make_retry_session
from .logging_utils import get_logger
from .models import (
    CollectionLog,
    ContactRecord,
    CrawlTarget,
    EmailStatus,
    ExtractionProgress,
    ExtractionResult,
    PageFetcher,
    PayloadKind,
    Severity,
)
from .reporting import Reporter
from .storage import CsvContactStore, CsvOrganizationStore, open_stores
from .validation import is_supported_url, mx_check, normalize_homepage

MxCheckFn = Callable[[str], bool]


def crawl_target(target: CrawlTarget, *, gateway: PageFetcher, token: CancellationToken) -> list[str]:
    """Fetch a target's homepage and return its valid email candidates."""
    url = normalize_homepage(target.homepage)
    if not is_supported_url(url):
        raise FetchError(f"Unsupported homepage URL: {url}")
    html = gateway.fetch(url, PayloadKind.PAGE, token)
    if html is None:
        raise FetchError(f"No transport could fetch {url}")
    return extract_emails(html)


def run_email_extraction(
    *,
    store: CsvOrganizationStore,
    contacts: CsvContactStore,
    gateway: PageFetcher,
    token: CancellationToken,
    reporter: Reporter,
    categories: Sequence[str] = (),
    max_targets: int = 0,
    target_delay: float = DEFAULT_TARGET_DELAY,
    mx_checker: MxCheckFn | None = None,
    logger: logging.Logger,
    show_progress: bool = False,
) -> ExtractionResult:
    """Resolve one email per pending target; partial on cancellation."""
    targets = store.pending_targets(categories)
    if max_targets > 0:
        targets = targets[:max_targets]
    result = ExtractionResult(status="ready", total=len(targets))

    def snapshot(current: int, target: str | None, message: str) -> None:
        reporter.progress(
            ExtractionProgress(
                result.status, result.total, current, result.success, result.failed, target, message
            )
        )

    if not targets:
        result.status = "done"
        snapshot(0, None, "No pending targets")
        reporter.log(Severity.INFO, "No pending targets to crawl")
        return result

    result.status = "crawling"
    reporter.log(Severity.INFO, f"Email extraction started: {len(targets)} targets")
    snapshot(0, None, f"Crawling {len(targets)} targets")

    iterator: Any = enumerate(targets)
    if show_progress:
        iterator = tqdm(iterator, total=len(targets), desc="crawling homepages")
    for position, target in iterator:
        if token.cancelled:
            result.status = "aborted"
            break
        snapshot(position + 1, target.name, f"Crawling {target.name} ({position + 1}/{len(targets)})")
        try:
            candidates = crawl_target(target, gateway=gateway, token=token)
            if mx_checker is not None:
                candidates = [email for email in candidates if mx_checker(email)]
            if candidates:
                record = ContactRecord(target.name, candidates[0], target.category)
                contacts.append([record])
                store.update_status(target.row_index, EmailStatus.EXTRACTED)
                result.success += 1
                result.emails.append(record)
                reporter.log(Severity.SUCCESS, f"{target.name}: {record.email}")
            else:
                store.update_status(target.row_index, EmailStatus.FAILED)
                result.failed += 1
                reporter.log(Severity.WARNING, f"{target.name}: no email found", target.homepage)
        except CollectionCancelled:
            reporter.log(Severity.WARNING, f"{target.name}: cancelled")
            result.status = "aborted"
            break
        except Exception as exc:  # noqa: BLE001
            logger.debug("Target %s failed", target.name, exc_info=True)
            try:
                store.update_status(target.row_index, EmailStatus.FAILED)
            except Exception:  # noqa: BLE001
                logger.debug("Could not mark %s as failed", target.name, exc_info=True)
            result.failed += 1
            reporter.log(Severity.ERROR, f"{target.name}: crawl failed", f"{type(exc).__name__}: {exc}")

        if position + 1 < len(targets) and token.wait(target_delay):
            result.status = "aborted"
            break

    if result.status != "aborted":
        result.status = "done"
    processed = result.success + result.failed
    snapshot(processed, None, f"{result.status}: {result.success} succeeded, {result.failed} failed")
    reporter.log(
        Severity.SUCCESS if result.status == "done" else Severity.WARNING,
        f"Email extraction {'finished' if result.status == 'done' else 'aborted'}",
        f"success: {result.success}, failed: {result.failed}, total: {result.total}",
    )
    return result


def run_extraction(
    config: ExtractConfig,
    token: CancellationToken | None = None,
    *,
    on_progress: Callable[[Any], None] | None = None,
    on_log: Callable[[CollectionLog], None] | None = None,
    logger: logging.Logger | None = None,
) -> ExtractionResult:
    """Build dependencies from config and run the email extraction stage."""
    logger = logger or get_logger()
    token = token or CancellationToken()
    stores = open_stores(config.data_dir)
    if config.retry_failed:
        logger.info("Reset %d failed rows to pending", stores.organizations.reset_failed())
    session = make_retry_session(config.user_agent, retries=0)
    try:
        gateway = build_gateway(
            session=session,
            relays=config.relays,
            use_direct=config.use_direct,
            timeout=config.request_timeout,
            attempts=DEFAULT_ATTEMPTS,
            logger=logger,
        )
        return run_email_extraction(
            store=stores.organizations,
            contacts=stores.contacts,
            gateway=gateway,
            token=token,
            reporter=Reporter(on_progress=on_progress, on_log=on_log, logger=logger),
            categories=config.categories,
            max_targets=config.max_targets,
            target_delay=config.target_delay,
            mx_checker=mx_check if config.verify_mx else None,
            logger=logger,
            show_progress=config.show_progress,
        )
    finally:
        session.close()
