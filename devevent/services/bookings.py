from __future__ import annotations

import logging
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from devevent.errors import EventNotFound, ValidationError
from devevent.models.booking import Booking
from devevent.models.event import Event

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str) -> str:
    normalized = (email or "").strip().lower()
    if not EMAIL_RE.match(normalized):
        raise ValidationError("Please provide a valid email address", field="email")
    return normalized


async def event_exists(db: AsyncSession, event_id: int) -> bool:
    return await db.scalar(select(Event.id).where(Event.id == event_id)) is not None


async def create_booking(db: AsyncSession, *, event_id: int, email: str) -> Booking:
    """Book ``email`` onto an event. The event must exist at booking time."""

    normalized = normalize_email(email)
    if not await event_exists(db, event_id):
        raise EventNotFound(event_id)

    booking = Booking(event_id=event_id, email=normalized)
    db.add(booking)
    await db.commit()
    await db.refresh(booking)
    logger.info("Created booking %s for event %s", booking.id, event_id)
    return booking
