"""ORM models. Importing this package registers every table with ``Base``."""

from devevent.models.booking import Booking
from devevent.models.event import SLUG_MAX_LENGTH, Event

__all__ = ["Booking", "Event", "SLUG_MAX_LENGTH"]
