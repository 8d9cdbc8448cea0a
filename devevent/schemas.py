# devevent/schemas.py
# ------------------------------------------------------------
# Pydantic v2 schemas, organized by domain
# ------------------------------------------------------------
from datetime import datetime
import re
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_SCRIPT_TAG_RE = re.compile(r"<\s*/?\s*script", re.IGNORECASE)

EventMode = Literal["online", "offline", "hybrid"]


def _sanitize_single_line_text(value: str | None, *, allow_empty: bool = False) -> str | None:
    if value is None:
        return value
    if not isinstance(value, str):
        raise TypeError("Expected string input")
    cleaned = _CONTROL_CHAR_RE.sub("", value).strip()
    if not allow_empty and not cleaned:
        raise ValueError("Value cannot be empty")
    if any(ch in {"\n", "\r"} for ch in cleaned):
        raise ValueError("Value must be a single line of text")
    if "<" in cleaned or ">" in cleaned:
        raise ValueError("HTML tags are not allowed in this field")
    return cleaned


def _sanitize_multiline_text(value: str | None, *, allow_empty: bool = False) -> str | None:
    if value is None:
        return value
    if not isinstance(value, str):
        raise TypeError("Expected string input")
    cleaned = _CONTROL_CHAR_RE.sub("", value).strip()
    if not allow_empty and not cleaned:
        raise ValueError("Value cannot be empty")
    if _SCRIPT_TAG_RE.search(cleaned):
        raise ValueError("Script tags are not allowed")
    return cleaned


def _sanitize_items(value: Sequence[str] | str | None) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    cleaned: list[str] = []
    for item in value:
        sanitized = _sanitize_multiline_text(str(item), allow_empty=True)
        if sanitized:
            cleaned.append(sanitized)
    return cleaned


def _sanitize_tags(value: Sequence[str] | str | None) -> list[str] | None:
    """Single-line tags, de-duplicated case-insensitively, order preserved."""
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    uniq: list[str] = []
    seen = set()
    for tag in value:
        sanitized = _sanitize_single_line_text(str(tag), allow_empty=True)
        key = (sanitized or "").lower()
        if sanitized and key not in seen:
            uniq.append(sanitized)
            seen.add(key)
    return uniq


def _clean_mode(value: Optional[str]) -> Optional[str]:
    if isinstance(value, str):
        return value.strip().lower()
    return value


# ============================================================
# Events
# ============================================================

class EventBase(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=5000)
    overview: str = Field(min_length=1, max_length=5000)
    venue: str = Field(min_length=1, max_length=200)
    location: str = Field(min_length=1, max_length=200)
    date: str = Field(min_length=1, max_length=64)
    time: str = Field(min_length=1, max_length=64)
    mode: EventMode
    audience: str = Field(min_length=1, max_length=200)
    agenda: List[str] = Field(min_length=1)
    organizer: str = Field(min_length=1, max_length=5000)
    tags: List[str] = Field(min_length=1)

    @field_validator("title", "venue", "location", "date", "time", "audience", mode="before")
    @classmethod
    def _clean_single_line_fields(cls, value: str) -> str:
        return _sanitize_single_line_text(value)

    @field_validator("description", "overview", "organizer", mode="before")
    @classmethod
    def _clean_multiline_fields(cls, value: str) -> str:
        return _sanitize_multiline_text(value)

    @field_validator("mode", mode="before")
    @classmethod
    def _lower_mode(cls, value: str) -> str:
        return _clean_mode(value)

    @field_validator("agenda", mode="before")
    @classmethod
    def _clean_agenda(cls, value):
        return _sanitize_items(value) or []

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value):
        return _sanitize_tags(value) or []


class EventCreate(EventBase):
    # populated from the image storage result, never from the form directly
    image: str = Field(min_length=1, max_length=500)


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    overview: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    image: Optional[str] = Field(default=None, min_length=1, max_length=500)
    venue: Optional[str] = Field(default=None, min_length=1, max_length=200)
    location: Optional[str] = Field(default=None, min_length=1, max_length=200)
    date: Optional[str] = Field(default=None, min_length=1, max_length=64)
    time: Optional[str] = Field(default=None, min_length=1, max_length=64)
    mode: Optional[EventMode] = None
    audience: Optional[str] = Field(default=None, min_length=1, max_length=200)
    agenda: Optional[List[str]] = Field(default=None, min_length=1)
    organizer: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    tags: Optional[List[str]] = Field(default=None, min_length=1)

    @field_validator("title", "image", "venue", "location", "date", "time", "audience", mode="before")
    @classmethod
    def _clean_optional_single_line(cls, value: Optional[str]) -> Optional[str]:
        return _sanitize_single_line_text(value) if value is not None else value

    @field_validator("description", "overview", "organizer", mode="before")
    @classmethod
    def _clean_optional_multiline(cls, value: Optional[str]) -> Optional[str]:
        return _sanitize_multiline_text(value) if value is not None else value

    @field_validator("mode", mode="before")
    @classmethod
    def _lower_mode(cls, value: Optional[str]) -> Optional[str]:
        return _clean_mode(value)

    @field_validator("agenda", mode="before")
    @classmethod
    def _clean_agenda(cls, value):
        return _sanitize_items(value) if value is not None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value):
        return _sanitize_tags(value) if value is not None else value


class EventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    slug: str
    description: str
    overview: str
    image: str
    venue: str
    location: str
    date: str
    time: str
    mode: str
    audience: str
    agenda: List[str]
    organizer: str
    tags: List[str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EventEnvelope(BaseModel):
    message: str
    event: EventRead


class EventListEnvelope(BaseModel):
    message: str
    events: List[EventRead]


# ============================================================
# Bookings
# ============================================================

class BookingCreate(BaseModel):
    event_id: int = Field(gt=0)
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class BookingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: int
    email: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookingEnvelope(BaseModel):
    message: str
    booking: BookingRead
