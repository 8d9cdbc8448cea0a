"""Slug derivation and field normalisation for events.

Every create, and every update that changes the title, runs the title through
:func:`resolve_unique_slug` before the row is written. Slugs are lowercase,
hyphen separated, at most ``SLUG_MAX_LENGTH`` characters, and unique across
the ``events`` table. Collisions get the lowest free numeric suffix starting
at ``-2``; the suffix is never truncated, the base is.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterable, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from devevent.errors import ValidationError
from devevent.models.event import SLUG_MAX_LENGTH, Event

logger = logging.getLogger(__name__)

MAX_SLUG_ATTEMPTS = 10_000

# Used when a title has no ASCII letters or digits at all.
FALLBACK_SLUG = "event"

# Suffixes up to this many digits are covered by the sibling query.
_MAX_SUFFIX_DIGITS = 20
_QUERY_PREFIX_LENGTH = SLUG_MAX_LENGTH - 1 - _MAX_SUFFIX_DIGITS

_DISALLOWED_RE = re.compile(r"[^a-z0-9_\s-]")
_SEPARATOR_RE = re.compile(r"[\s_-]+")
_SUFFIXED_RE = re.compile(r"^(.+)-([0-9]+)$")


def derive_base_slug(title: str) -> str:
    slug = title.lower().strip()
    slug = _DISALLOWED_RE.sub("", slug)
    slug = _SEPARATOR_RE.sub("-", slug)
    slug = slug.strip("-")
    return slug[:SLUG_MAX_LENGTH].rstrip("-")


def _compose(base: str, suffix: Union[int, str]) -> str:
    suffix_str = str(suffix)
    max_base_length = max(SLUG_MAX_LENGTH - len(suffix_str) - 1, 1)
    stem = base[:max_base_length].rstrip("-")
    return f"{stem}-{suffix_str}" if stem else suffix_str


def derive_slug_with_suffix(title: str, suffix: Union[int, str, None] = None) -> str:
    """Base slug of ``title`` with ``-<suffix>`` appended, within the length cap."""
    base = derive_base_slug(title) or FALLBACK_SLUG
    if suffix is None or suffix == "":
        return base
    return _compose(base, suffix)


def existing_slug_pattern(base: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(base)}(-[0-9]+)?$", re.IGNORECASE)


def _timestamp_suffix() -> int:
    return time.time_ns() // 1000


def _shares_base(slug: str, base: str, pattern: re.Pattern) -> bool:
    lowered = slug.lower()
    if pattern.match(lowered):
        return True
    # Long bases get truncated to make room for the suffix.
    match = _SUFFIXED_RE.match(lowered)
    return bool(match) and _compose(base, match.group(2)) == lowered


def pick_unique_slug(title: str, existing: Iterable[str]) -> str:
    """Choose a slug for ``title`` that is absent from ``existing`` (case-insensitive)."""

    taken = {slug.lower() for slug in existing if slug}
    base = derive_slug_with_suffix(title)

    if base not in taken:
        return base

    for counter in range(2, MAX_SLUG_ATTEMPTS):
        candidate = derive_slug_with_suffix(title, counter)
        if candidate not in taken:
            return candidate

    fallback = derive_slug_with_suffix(title, _timestamp_suffix())
    logger.warning("Slug counter exhausted for %r, using %s", base, fallback)
    return fallback


async def resolve_unique_slug(
    session: AsyncSession,
    title: str,
    exclude_id: Optional[int] = None,
) -> str:
    """Look up slugs sharing the title's base and pick the lowest free one.

    One read against ``events``; ``exclude_id`` keeps an updated row from
    colliding with itself.
    """

    base = derive_base_slug(title) or FALLBACK_SLUG
    prefix = base[:_QUERY_PREFIX_LENGTH]

    stmt = select(Event.slug).where(func.lower(Event.slug).like(f"{prefix}%"))
    if exclude_id is not None:
        stmt = stmt.where(Event.id != exclude_id)

    rows = (await session.execute(stmt)).scalars().all()
    pattern = existing_slug_pattern(base)
    existing = [slug for slug in rows if slug and _shares_base(slug, base, pattern)]
    return pick_unique_slug(title, existing)


# ---------------------------------------------------------------------------
# Date / time normalisation
# ---------------------------------------------------------------------------

_DATE_FORMATS = (
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%A, %B %d, %Y",
    "%a, %b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
)


def parse_event_date(value: str) -> Optional[date]:
    """Return the calendar date ``value`` describes, or None if it is not one."""

    candidate = value.strip()
    if not candidate:
        return None

    try:
        parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        parsed = None

    if parsed is None:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(candidate, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        try:
            parsed = parsedate_to_datetime(candidate)
        except (TypeError, ValueError, IndexError):
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def normalize_date(value: str) -> str:
    parsed = parse_event_date(value)
    if parsed is None:
        return value
    return parsed.isoformat()


def normalize_time(value: str) -> str:
    return value.strip()


async def prepare_event_fields(
    session: AsyncSession,
    fields: dict[str, Any],
    *,
    existing: Optional[Event] = None,
) -> dict[str, Any]:
    """Fill in the slug and normalise date/time before an event is written.

    ``existing`` is the stored row on update, ``None`` on create. Only fields
    that are new or changed get recomputed.
    """

    prepared = dict(fields)
    is_new = existing is None

    def _changed(name: str) -> bool:
        if name not in prepared:
            return False
        return is_new or prepared[name] != getattr(existing, name)

    if is_new or _changed("title"):
        title = prepared.get("title")
        if not title or not str(title).strip():
            raise ValidationError("Title is required", field="title")
        prepared["slug"] = await resolve_unique_slug(
            session, title, exclude_id=None if is_new else existing.id
        )

    if _changed("date"):
        prepared["date"] = normalize_date(prepared["date"])

    if _changed("time"):
        prepared["time"] = normalize_time(prepared["time"])

    return prepared
