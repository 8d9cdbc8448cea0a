from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from devevent.errors import EventNotFound, UniquenessViolation, ValidationError
from devevent.models.event import Event
from devevent.schemas import EventCreate, EventUpdate
from devevent.slugs import prepare_event_fields

logger = logging.getLogger(__name__)

# Re-resolutions after the unique index rejects a slug another writer just took.
MAX_SLUG_CONFLICT_RETRIES = 3


def _is_slug_conflict(exc: IntegrityError) -> bool:
    return "slug" in str(exc.orig).lower()


def normalize_slug(slug: Optional[str]) -> str:
    normalized = (slug or "").strip().lower()
    if not normalized:
        raise ValidationError("Slug is required and must be a non-empty string", field="slug")
    return normalized


async def create_event(db: AsyncSession, payload: EventCreate) -> Event:
    fields = payload.model_dump()
    slug = None

    for attempt in range(1, MAX_SLUG_CONFLICT_RETRIES + 1):
        prepared = await prepare_event_fields(db, fields)
        slug = prepared["slug"]
        event = Event(**prepared)
        db.add(event)
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            if not _is_slug_conflict(exc):
                raise
            logger.warning(
                "Slug %s was taken concurrently (attempt %s/%s), resolving again",
                slug,
                attempt,
                MAX_SLUG_CONFLICT_RETRIES,
            )
            continue

        await db.refresh(event)
        logger.info("Created event %s (id=%s)", event.slug, event.id)
        return event

    raise UniquenessViolation(slug)


async def update_event(db: AsyncSession, event: Event, payload: EventUpdate) -> Event:
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not changes:
        return event

    slug = event.slug
    for attempt in range(1, MAX_SLUG_CONFLICT_RETRIES + 1):
        prepared = await prepare_event_fields(db, changes, existing=event)
        slug = prepared.get("slug", event.slug)
        for key, value in prepared.items():
            setattr(event, key, value)
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            # rollback expires the instance; reload before comparing fields again
            await db.refresh(event)
            if not _is_slug_conflict(exc):
                raise
            logger.warning(
                "Slug %s was taken concurrently (attempt %s/%s), resolving again",
                slug,
                attempt,
                MAX_SLUG_CONFLICT_RETRIES,
            )
            continue

        await db.refresh(event)
        return event

    raise UniquenessViolation(slug)


async def get_event_by_slug(db: AsyncSession, slug: str) -> Optional[Event]:
    normalized = normalize_slug(slug)
    result = await db.execute(select(Event).where(Event.slug == normalized))
    return result.scalars().first()


async def require_event_by_slug(db: AsyncSession, slug: str) -> Event:
    event = await get_event_by_slug(db, slug)
    if event is None:
        raise EventNotFound(slug)
    return event


async def list_events(db: AsyncSession) -> list[Event]:
    stmt = select(Event).order_by(Event.created_at.desc(), Event.id.desc())
    return list((await db.execute(stmt)).scalars().all())


async def similar_events(db: AsyncSession, slug: str) -> list[Event]:
    """Other events sharing at least one tag with the event at ``slug``."""
    event = await get_event_by_slug(db, slug)
    if event is None:
        return []

    wanted = event.tag_set
    others = (await db.execute(select(Event).where(Event.id != event.id))).scalars().all()
    return [other for other in others if other.tag_set & wanted]
