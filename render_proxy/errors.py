from typing import Optional


class ProxyError(Exception):
    """Base class for errors raised by the proxy pipeline."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInputError(ProxyError):
    """Raised when the caller supplied a bad URL or used a bad method."""

    def __init__(self, message: str = "Invalid URL.", status_code: int = 400):
        self.status_code = status_code
        super().__init__(message)


class FetchError(ProxyError):
    """Raised when a page could not be loaded through the renderer."""

    def __init__(
        self, message: str, url: Optional[str] = None, attempts: int = 0
    ):
        self.url = url
        self.attempts = attempts
        super().__init__(message)


class RendererBusyError(FetchError):
    """Raised when no render session became free within the queue timeout."""


class UpstreamAssetError(ProxyError):
    """Raised when a raw asset download fails."""

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        super().__init__(message)


class MalformedReferenceError(ProxyError):
    """Raised when a discovered reference cannot be resolved to an http(s) URL."""

    def __init__(self, reference: str, message: Optional[str] = None):
        self.reference = reference
        super().__init__(message or f"Cannot resolve reference: {reference!r}")
