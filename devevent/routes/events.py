# devevent/routes/events.py

import json
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from devevent.database import get_db
from devevent.schemas import EventBase, EventCreate, EventEnvelope, EventListEnvelope, EventRead, EventUpdate
from devevent.services import events as event_service
from devevent.services.storage import EventImageStorage

router = APIRouter(prefix="/api/events", tags=["Events"])


def get_event_image_storage(request: Request) -> EventImageStorage:
    return request.app.state.image_storage


def _parse_json_list(raw: Optional[str], field: str):
    """agenda/tags arrive as JSON array strings inside the multipart form."""
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {field} format. Expected JSON array.",
        )
    if not isinstance(value, list):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {field} format. Expected JSON array.",
        )
    return value


# Create event -------------------------------------------------------

@router.post("", response_model=EventEnvelope, status_code=status.HTTP_201_CREATED)
async def create_event(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    overview: Optional[str] = Form(None),
    venue: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    time: Optional[str] = Form(None),
    mode: Optional[str] = Form(None),
    audience: Optional[str] = Form(None),
    agenda: Optional[str] = Form(None),
    organizer: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    storage: EventImageStorage = Depends(get_event_image_storage),
):
    raw = {
        "title": title,
        "description": description,
        "overview": overview,
        "venue": venue,
        "location": location,
        "date": date,
        "time": time,
        "mode": mode,
        "audience": audience,
        "agenda": _parse_json_list(agenda, "agenda"),
        "organizer": organizer,
        "tags": _parse_json_list(tags, "tags"),
    }
    try:
        base = EventBase(**raw)
    except SchemaValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False, include_context=False))

    if image is None or not image.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Image file is required")

    stored = await storage.save(image)
    try:
        event = await event_service.create_event(
            db, EventCreate(**base.model_dump(), image=stored.url)
        )
    except Exception:
        # Don't leave orphaned uploads behind when the row is not written.
        await storage.delete(stored.path)
        raise

    return {"message": "Event created successfully", "event": event}


# List / fetch -------------------------------------------------------

@router.get("", response_model=EventListEnvelope)
async def list_events(db: AsyncSession = Depends(get_db)):
    events = await event_service.list_events(db)
    return {"message": "Events fetched successfully", "events": events}


@router.get("/{slug}", response_model=EventEnvelope)
async def get_event(slug: str, db: AsyncSession = Depends(get_db)):
    event = await event_service.require_event_by_slug(db, slug)
    return {"message": "Event fetched successfully", "event": event}


@router.get("/{slug}/similar", response_model=List[EventRead])
async def get_similar_events(slug: str, db: AsyncSession = Depends(get_db)):
    return await event_service.similar_events(db, slug)


# Update -------------------------------------------------------------

@router.patch("/{slug}", response_model=EventEnvelope)
async def update_event(
    slug: str,
    payload: EventUpdate,
    db: AsyncSession = Depends(get_db),
):
    event = await event_service.require_event_by_slug(db, slug)
    event = await event_service.update_event(db, event, payload)
    return {"message": "Event updated successfully", "event": event}
