"""
services/booking/router.py
Booking endpoints. The transaction itself lives in services/booking/engine.py.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.booking import engine
from shared.middleware.identity import IdentityPath
from shared.models.models import BookingState, ProfileRole, utcnow
from shared.schemas.schemas import (
    BookingCreateRequest,
    BookingEnvelope,
    BookingListEnvelope,
)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", response_model=BookingEnvelope, status_code=201)
async def create_booking(
    data: BookingCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Book a service: the student's wallet is debited by the service rate and
    the alumni's credited, atomically with the booking insert.
    """
    booking = await engine.create_booking(
        db, data.student_identity, data.alumni_identity, data.service_id
    )
    return {
        "success": True,
        "booking": engine.serialize_booking(booking, utcnow().date()),
    }


@router.get("/alumni/{identity}", response_model=BookingListEnvelope)
async def list_alumni_bookings(
    identity: IdentityPath,
    status: Optional[BookingState] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    bookings = await engine.list_bookings_for(
        db, identity, ProfileRole.ALUMNI, utcnow().date(), status
    )
    return {"success": True, "bookings": bookings}


@router.get("/student/{identity}", response_model=BookingListEnvelope)
async def list_student_bookings(
    identity: IdentityPath,
    status: Optional[BookingState] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    bookings = await engine.list_bookings_for(
        db, identity, ProfileRole.STUDENT, utcnow().date(), status
    )
    return {"success": True, "bookings": bookings}


@router.get("/{booking_id}", response_model=BookingEnvelope)
async def get_booking(booking_id: UUID, db: AsyncSession = Depends(get_db)):
    booking = await engine.get_booking(db, booking_id)
    return {
        "success": True,
        "booking": engine.serialize_booking(booking, utcnow().date()),
    }
