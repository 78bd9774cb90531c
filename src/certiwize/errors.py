"""Certiwize exception hierarchy.

Shared across the router, the dispatcher, the facade, and the HTTP
functions so every module raises and catches the same types.
"""

from dataclasses import dataclass
from typing import Any


class CertiwizeError(Exception):
    """Base for all certiwize-specific errors."""


class ConfigurationError(CertiwizeError):
    """Raised when static configuration is invalid.

    Typically raised at startup, while the route table or the entrypoint
    is being built, never while a request is in flight.
    """


class PatternSyntaxError(ConfigurationError, ValueError):
    """A route pattern could not be compiled."""


class DispatchError(CertiwizeError):
    """The handler chain broke a runtime contract (e.g. returned a non-Response)."""


@dataclass(frozen=True, slots=True)
class HTTPError(CertiwizeError):
    """An error that maps directly to an HTTP status code."""

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class UpstreamError(CertiwizeError):
    """An external service answered with a non-success status.

    ``payload`` holds the decoded error body (JSON when possible, text
    otherwise) so handlers can pass it back for diagnostics.
    """

    def __init__(self, service: str, status: int, payload: Any = None, reason: str = "") -> None:
        self.service = service
        self.status = status
        self.payload = payload
        self.reason = reason
        super().__init__(f"{service} error: {status} {reason}".rstrip())


class UpstreamTimeout(CertiwizeError, TimeoutError):
    """An outbound call exceeded its time budget and was aborted."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"The request took too long (>{timeout:g}s). Please try again.")


class AuthSessionError(CertiwizeError):
    """An auth operation needs a session and none is active."""
