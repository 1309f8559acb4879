"""Error taxonomy for the page summary pipeline."""

from typing import Optional


class FolioError(Exception):
    """Base class for pipeline errors."""


class MalformedInput(FolioError):
    """Missing identifying keys or empty source text.

    Raised synchronously, before any provider is called.
    """


class ProviderError(FolioError):
    """A completion or embedding call failed, timed out or returned a non-success status.

    The provider's diagnostic text is kept verbatim so operators can see what
    the upstream service actually said.
    """

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.message = message
        self.status_code = status_code
        status = f" ({status_code})" if status_code is not None else ""
        super().__init__(f"{provider} error{status}: {message}")


class StoreError(FolioError):
    """Database failure that survived the retry budget."""


class InvalidTransition(FolioError):
    """Illegal page lifecycle transition."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move page from {current} to {target}")
