"""Exceptions raised by the collection and email extraction stages."""


class RegistryError(Exception):
    """Base exception for this project."""


class ConfigError(RegistryError):
    """Raised when runtime configuration or credentials are invalid."""


class FetchError(RegistryError):
    """Raised when a URL could not be fetched through any transport."""


class StoreError(RegistryError):
    """Raised when a persistent store holds unreadable data."""


class CollectionCancelled(RegistryError):
    """Raised when the shared cancellation token has been signaled."""


class IncompleteRegion(FetchError):
    """Raised when a region stopped on an unavailable page; ``records`` holds what was gathered."""

    def __init__(self, message: str, records: list | None = None) -> None:
        super().__init__(message)
        self.records = list(records or [])
