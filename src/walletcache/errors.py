from __future__ import annotations


class CacheError(Exception):
    """Base class for errors raised by a cached value."""


class FetchFailed(CacheError):
    """The injected fetch function raised.

    Every caller that joined the failing attempt receives the same
    instance; ``underlying`` holds the original exception.
    """

    def __init__(self, identifier: str, underlying: BaseException) -> None:
        super().__init__(f"Fetch for '{identifier}' failed: {underlying!r}")
        self.identifier = identifier
        self.underlying = underlying


class NullOwner(CacheError):
    """The owning service was torn down while a value was requested."""

    def __init__(self, owner: str) -> None:
        super().__init__(f"Owner '{owner}' is no longer available")
        self.owner = owner


class FetchNotConfigured(CacheError):
    def __init__(self, identifier: str) -> None:
        super().__init__(f"No fetch function set for '{identifier}'")
        self.identifier = identifier
