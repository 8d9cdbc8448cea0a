import pytest
from sqlalchemy import func, select

from devevent.database import ConnectionCache, init_models
from devevent.errors import EventNotFound, ValidationError
from devevent.models.booking import Booking
from devevent.models.event import Event
from devevent.services.bookings import create_booking, normalize_email


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def cache(tmp_path):
    cache = ConnectionCache(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}", env={})
    await init_models(cache)
    yield cache
    await cache.release()


async def _add_event(session) -> Event:
    event = Event(
        title="TypeScript Meetup",
        slug="typescript-meetup",
        description="Monthly meetup",
        overview="Talks and pizza",
        image="/images/event4.png",
        venue="Office",
        location="New York, NY",
        date="2024-04-20",
        time="7:00 PM - 9:00 PM",
        mode="offline",
        audience="Developers",
        agenda=["Talks"],
        organizer="NYC TS",
        tags=["typescript"],
    )
    session.add(event)
    await session.commit()
    await session.refresh(event)
    return event


@pytest.mark.anyio
async def test_booking_is_stored_with_normalized_email(cache):
    async with cache.session() as session:
        event = await _add_event(session)
        booking = await create_booking(session, event_id=event.id, email="  Alice@Example.COM ")

    assert booking.id is not None
    assert booking.event_id == event.id
    assert booking.email == "alice@example.com"
    assert booking.created_at is not None


@pytest.mark.anyio
async def test_booking_for_unknown_event_is_rejected_before_insert(cache):
    async with cache.session() as session:
        with pytest.raises(EventNotFound):
            await create_booking(session, event_id=9999, email="bob@example.com")

        count = await session.scalar(select(func.count(Booking.id)))

    assert count == 0


@pytest.mark.anyio
async def test_invalid_email_is_rejected(cache):
    async with cache.session() as session:
        event = await _add_event(session)
        with pytest.raises(ValidationError):
            await create_booking(session, event_id=event.id, email="not-an-email")


@pytest.mark.parametrize("raw", ["", "a@b", "a b@example.com", "@example.com"])
def test_normalize_email_rejects_malformed_addresses(raw):
    with pytest.raises(ValidationError):
        normalize_email(raw)
