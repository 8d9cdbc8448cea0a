"""Service layer: event writes, bookings and image storage."""

from .bookings import create_booking
from .events import create_event, get_event_by_slug, list_events, similar_events, update_event
from .storage import EventImageStorage, get_image_storage

__all__ = [
    "EventImageStorage",
    "create_booking",
    "create_event",
    "get_event_by_slug",
    "get_image_storage",
    "list_events",
    "similar_events",
    "update_event",
]
