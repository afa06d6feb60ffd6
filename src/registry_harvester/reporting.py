"""Progress and log notification channels."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from tqdm import tqdm

from .models import CollectionLog, Severity

ProgressCallback = Callable[[Any], None]
LogCallback = Callable[[CollectionLog], None]

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.SAVING: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class Reporter:
    """Fans snapshots and log lines out to optional callbacks and the logger.

    Callbacks are fire-and-forget: anything they raise is logged at debug
    level and dropped.
    """

    def __init__(
        self,
        *,
        on_progress: ProgressCallback | None = None,
        on_log: LogCallback | None = None,
        logger: logging.Logger,
    ) -> None:
        self._on_progress = on_progress
        self._on_log = on_log
        self._logger = logger
        self.entries: list[CollectionLog] = []

    def progress(self, snapshot: Any) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(snapshot)
        except Exception:  # noqa: BLE001
            self._logger.debug("Progress callback failed", exc_info=True)

    def log(self, severity: Severity, message: str, details: str | None = None) -> CollectionLog:
        entry = CollectionLog(
            timestamp=datetime.now(timezone.utc),
            severity=severity,
            message=message,
            details=details,
        )
        self.entries.append(entry)
        text = f"{message} ({details})" if details else message
        self._logger.log(_LOG_LEVELS[severity], text)
        if self._on_log is not None:
            try:
                self._on_log(entry)
            except Exception:  # noqa: BLE001
                self._logger.debug("Log callback failed", exc_info=True)
        return entry


class TqdmProgress:
    """Progress callback drawing snapshots as a tqdm bar."""

    def __init__(self, desc: str, *, disable: bool = False) -> None:
        self._bar = tqdm(total=0, desc=desc, disable=disable, unit="item")

    def __call__(self, snapshot: Any) -> None:
        total = getattr(snapshot, "total", 0) or 0
        done = getattr(snapshot, "collected", None)
        if done is None:
            done = getattr(snapshot, "current", 0)
        if total and self._bar.total != total:
            self._bar.total = total
        self._bar.n = done
        label = getattr(snapshot, "current_region", None) or getattr(snapshot, "current_target", None)
        postfix = {"status": getattr(snapshot, "status", "")}
        if label:
            postfix["at"] = label
        self._bar.set_postfix(postfix, refresh=False)
        self._bar.refresh()

    def close(self) -> None:
        self._bar.close()
