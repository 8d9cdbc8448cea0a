"""DevEvent backend: events, slugs, bookings and the shared database handle."""

# Re-export the common database helpers for convenience.
from .database import Base, ConnectionCache, get_db  # noqa: F401

__all__ = ["Base", "ConnectionCache", "get_db"]
