"""Exceptions raised by the cache and the refresh pipeline."""


class AptCacheError(Exception):
    """Base class for all aptcache errors."""


class MetadataError(AptCacheError):
    """Sources, lists or the status database are unreadable or corrupt.

    A cache whose construction raised this must not be used.
    """


class FetchError(AptCacheError):
    """The refresh could not run, or ran and one or more items failed hard."""

    def __init__(self, message: str, failures: list[tuple[str, int, str]] | None = None):
        super().__init__(message)
        self.failures = failures or []
