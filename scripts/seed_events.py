import asyncio

from devevent.database import ConnectionCache, init_models
from devevent.schemas import EventCreate
from devevent.services.events import create_event

SAMPLE_EVENTS = [
    {"title": "React Conf 2024", "location": "Las Vegas, NV", "date": "May 15, 2024", "time": "9:00 AM - 6:00 PM", "tags": ["react", "frontend"]},
    {"title": "Next.js Conf", "location": "San Francisco, CA", "date": "October 25, 2024", "time": "9:00 AM - 6:00 PM", "tags": ["nextjs", "react"]},
    {"title": "DevWorld Hackathon", "location": "Austin, TX", "date": "June 8, 2024", "time": "All Day Event", "tags": ["hackathon"]},
    {"title": "TypeScript Meetup", "location": "New York, NY", "date": "April 20, 2024", "time": "7:00 PM - 9:00 PM", "tags": ["typescript"]},
    {"title": "AWS Summit 2024", "location": "Seattle, WA", "date": "September 12, 2024", "time": "8:00 AM - 7:00 PM", "tags": ["cloud", "aws"]},
    {"title": "Node.js Interactive", "location": "Toronto, Canada", "date": "November 5, 2024", "time": "9:00 AM - 5:00 PM", "tags": ["nodejs", "backend"]},
]


async def main() -> None:
    """Create tables and insert a handful of sample events."""

    cache = ConnectionCache()
    await init_models(cache)
    async with cache.session() as session:
        for index, sample in enumerate(SAMPLE_EVENTS, start=1):
            payload = EventCreate(
                description=f"{sample['title']} brings developers together for talks and workshops.",
                overview=f"A day of sessions at {sample['title']}.",
                image=f"/images/event{index}.png",
                venue="Main Hall",
                mode="offline",
                audience="Developers",
                agenda=["Registration", "Keynote", "Workshops"],
                organizer="DevEvent",
                **sample,
            )
            event = await create_event(session, payload)
            print(f"Seeded {event.slug}")
    await cache.release()


if __name__ == "__main__":
    asyncio.run(main())
