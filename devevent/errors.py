"""Error taxonomy shared by the database layer, the services and the routes."""

from __future__ import annotations

import asyncio
import socket
from typing import Optional


class DevEventError(Exception):
    """Base error for the event backend."""


class ConfigurationError(DevEventError):
    """Raised when the database connection string is missing or unusable."""


class ConnectivityError(DevEventError):
    """Raised when the database cannot be reached. Always retryable."""

    KINDS = ("dns", "auth", "timeout", "network", "unknown")

    HINTS = {
        "dns": "Cannot resolve the database hostname. Check the connection string.",
        "auth": (
            "Authentication failed. Check the username and password; special characters "
            "in the password must be URL-encoded (e.g. @ becomes %40)."
        ),
        "timeout": (
            "Connection timed out. The server may be down, a firewall may be blocking "
            "the connection, or this host's IP is not allow-listed."
        ),
        "network": "The server rejected the connection. Check network access and IP allow-lists.",
        "unknown": "Check DATABASE_URL and make sure the database is reachable.",
    }

    def __init__(self, kind: str, message: str) -> None:
        if kind not in self.KINDS:
            kind = "unknown"
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def hint(self) -> str:
        return self.HINTS[self.kind]


class UniquenessViolation(DevEventError):
    """The store rejected a duplicate slug even after re-resolving it."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"An event with slug '{slug}' already exists")
        self.slug = slug


class ValidationError(DevEventError):
    """A required Event/Booking field is missing or malformed."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class EventNotFound(DevEventError):
    def __init__(self, reference: object) -> None:
        super().__init__(f"No event found for {reference!r}")
        self.reference = reference


_DNS_MARKERS = ("getaddrinfo", "enotfound", "name or service not known", "nodename nor servname")
_AUTH_MARKERS = ("authentication failed", "bad auth", "password authentication", "invalid password")
_TIMEOUT_MARKERS = ("timeout", "timed out")
_NETWORK_MARKERS = ("refused", "unreachable", "no route to host", "whitelist", "allowlist", "not allowed")


def classify_connectivity_error(exc: BaseException) -> ConnectivityError:
    """Map a driver/socket exception onto a ConnectivityError kind."""

    if isinstance(exc, ConnectivityError):
        return exc

    # SQLAlchemy wraps driver errors; the original is more telling.
    original = getattr(exc, "orig", None) or exc
    message = str(original) or original.__class__.__name__
    lowered = message.lower()

    if isinstance(original, socket.gaierror) or any(m in lowered for m in _DNS_MARKERS):
        kind = "dns"
    elif any(m in lowered for m in _AUTH_MARKERS):
        kind = "auth"
    elif isinstance(original, (asyncio.TimeoutError, TimeoutError)) or any(
        m in lowered for m in _TIMEOUT_MARKERS
    ):
        kind = "timeout"
    elif (
        isinstance(original, ConnectionError)
        or "ip" in lowered.split()
        or any(m in lowered for m in _NETWORK_MARKERS)
    ):
        kind = "network"
    else:
        kind = "unknown"

    return ConnectivityError(kind, message)


__all__ = [
    "ConfigurationError",
    "ConnectivityError",
    "DevEventError",
    "EventNotFound",
    "UniquenessViolation",
    "ValidationError",
    "classify_connectivity_error",
]
