from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, func
from sqlalchemy.orm import relationship

from devevent.database import Base

SLUG_MAX_LENGTH = 120


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    # Unique index is the backstop against two writers resolving the same slug.
    slug = Column(String(SLUG_MAX_LENGTH), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False)
    overview = Column(Text, nullable=False)
    image = Column(String(500), nullable=False)
    venue = Column(String(200), nullable=False)
    location = Column(String(200), nullable=False)
    date = Column(String(64), nullable=False)
    time = Column(String(64), nullable=False)
    mode = Column(String(16), nullable=False)
    audience = Column(String(200), nullable=False)
    agenda = Column(JSON, nullable=False, default=list)
    organizer = Column(Text, nullable=False)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    bookings = relationship("Booking", back_populates="event", lazy="noload")

    @property
    def tag_set(self) -> set[str]:
        """Tags lowered for case-insensitive comparisons."""
        return {t.lower() for t in (self.tags or [])}
