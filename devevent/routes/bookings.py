from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from devevent.database import get_db
from devevent.schemas import BookingCreate, BookingEnvelope
from devevent.services.bookings import create_booking

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])


@router.post("", response_model=BookingEnvelope, status_code=status.HTTP_201_CREATED)
async def book_event(payload: BookingCreate, db: AsyncSession = Depends(get_db)):
    booking = await create_booking(db, event_id=payload.event_id, email=payload.email)
    return {"message": "Booking created successfully", "booking": booking}
