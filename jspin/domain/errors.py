"""
Exceptions raised by the provider client and the document stores.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional


class JspinError(Exception):
    """Base class for every error raised by this package."""


class ResolutionError(JspinError):
    """A package could not be resolved to CDN URLs."""

    def __init__(self, message: str, name: Optional[str] = None, provider: Optional[str] = None):
        super().__init__(message)
        self.name = name
        self.provider = provider


class PackageNotFound(ResolutionError):
    """
    The provider answered with an HTTP status >= 400.

    Recoverable: callers may try another provider. Never retried automatically.
    """

    def __init__(self, name: str, provider: str, status_code: Optional[int] = None):
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Package '{name}' was not found on {provider}{detail}", name, provider)
        self.status_code = status_code


class LookupKeyMissing(ResolutionError):
    """
    The provider answered successfully but its import map has no entry for
    the requested name.
    """

    def __init__(self, name: str, provider: str, available: Iterable[str] = ()):
        self.available = sorted(available)
        listed = ", ".join(self.available) or "none"
        super().__init__(
            f"{provider} response has no import for '{name}' (returned: {listed})",
            name,
            provider,
        )


class TransportFailure(ResolutionError):
    """A network-layer failure; the original httpx exception is the ``__cause__``."""


class StoreError(JspinError):
    """
    Reading or writing a lock/import-map document failed.

    The message keeps the underlying OS or decode error text unchanged.
    """

    def __init__(self, path: Path, cause: BaseException):
        super().__init__(f"{path}: {cause}")
        self.path = path
