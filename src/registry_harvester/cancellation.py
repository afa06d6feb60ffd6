"""Cooperative cancellation shared by one collection or extraction run."""

from __future__ import annotations

from threading import Event

from .errors import CollectionCancelled


class CancellationToken:
    """Externally owned stop flag checked at every page, fetch and delay."""

    def __init__(self) -> None:
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise CollectionCancelled when the token has been signaled."""
        if self._event.is_set():
            raise CollectionCancelled("Run cancelled by caller.")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)
