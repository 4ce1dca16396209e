"""
services/booking/engine.py
Booking transaction: debit the student, credit the alumni and record the
booking as one unit of work.

Lock order: both profile rows are locked FOR UPDATE in ascending order of
external identity, so two bookings touching the same pair of profiles
(in either direction) queue instead of deadlocking.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from shared.exceptions import (
    AppError,
    InsufficientBalanceError,
    NotFoundError,
    StorageFaultError,
    ValidationError,
)
from shared.middleware.identity import get_service_or_404, resolve_profile
from shared.middleware.metrics import bookings_total
from shared.models.models import (
    Booking,
    BookingState,
    Profile,
    ProfileRole,
    Service,
    utcnow,
)
from shared.utils.validity import classify_booking, compute_validity_date

logger = logging.getLogger(__name__)


# ── Helpers ───────────────────────────────────────────────────

async def _lock_profiles(
    db: AsyncSession, student_identity: str, alumni_identity: str
) -> Tuple[Profile, Profile]:
    locked = {}
    for identity in sorted((student_identity, alumni_identity)):
        locked[identity] = await resolve_profile(db, identity, for_update=True)
    return locked[student_identity], locked[alumni_identity]


async def _debit(db: AsyncSession, profile: Profile, amount: Decimal) -> None:
    result = await db.execute(
        update(Profile)
        .where(Profile.id == profile.id, Profile.balance >= amount)
        .values(balance=Profile.balance - amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientBalanceError()


async def _credit(db: AsyncSession, profile: Profile, amount: Decimal) -> None:
    await db.execute(
        update(Profile)
        .where(Profile.id == profile.id)
        .values(balance=Profile.balance + amount)
        .execution_options(synchronize_session=False)
    )


async def _insert_booking(
    db: AsyncSession,
    student: Profile,
    alumni: Profile,
    service: Service,
    now: datetime,
) -> Booking:
    booking_date = now.date()
    booking = Booking(
        student_id=student.id,
        alumni_id=alumni.id,
        service_id=service.id,
        booking_date=booking_date,
        booking_time=now.time(),
        validity_date=compute_validity_date(booking_date, service.duration_months),
        amount=service.rate,
        created_at=now,
    )
    db.add(booking)
    await db.flush()
    return booking


def serialize_booking(booking: Booking, today: date) -> dict:
    data = {col.name: getattr(booking, col.name) for col in Booking.__table__.columns}
    data["status"] = classify_booking(booking.validity_date, today)
    return data


# ── Write side ────────────────────────────────────────────────

async def create_booking(
    db: AsyncSession,
    student_identity: str,
    alumni_identity: str,
    service_id: UUID,
) -> Booking:
    """
    Book a service for a student.

    Raises:
        ValidationError: same identity on both sides, role mismatch, or the
            service does not belong to the alumni.
        NotFoundError: unknown profile or service.
        InsufficientBalanceError: student balance below the service rate.
        StorageFaultError: any database failure. Nothing is persisted.
    """
    if student_identity == alumni_identity:
        raise ValidationError("A profile cannot book itself")

    try:
        student, alumni = await _lock_profiles(db, student_identity, alumni_identity)
        service = await get_service_or_404(db, service_id)

        if student.role != ProfileRole.STUDENT.value:
            raise ValidationError("Booking profile is not a student")
        if alumni.role != ProfileRole.ALUMNI.value:
            raise ValidationError("Booked profile is not an alumni")
        if service.alumni_id != alumni.id:
            raise ValidationError("Service does not belong to this alumni")

        rate = service.rate
        if student.balance < rate:
            raise InsufficientBalanceError()

        await _debit(db, student, rate)
        await _credit(db, alumni, rate)
        booking = await _insert_booking(db, student, alumni, service, utcnow())
        await db.commit()
    except AppError as exc:
        await db.rollback()
        if isinstance(exc, InsufficientBalanceError):
            bookings_total.labels("insufficient_balance").inc()
            logger.info(
                "Booking rejected: insufficient balance student=%s service=%s",
                student_identity, service_id,
            )
        else:
            bookings_total.labels("rejected").inc()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        bookings_total.labels("storage_fault").inc()
        logger.error("Booking transaction failed: %s", type(exc).__name__, exc_info=True)
        raise StorageFaultError() from exc

    bookings_total.labels("created").inc()
    logger.info(
        "Booking %s created: student=%s alumni=%s amount=%s",
        booking.id, student_identity, alumni_identity, booking.amount,
    )
    return booking


# ── Read side ─────────────────────────────────────────────────

async def get_booking(db: AsyncSession, booking_id: UUID) -> Booking:
    booking = await db.scalar(select(Booking).where(Booking.id == booking_id))
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


async def list_bookings_for(
    db: AsyncSession,
    identity: str,
    role: ProfileRole,
    today: date,
    status: Optional[BookingState] = None,
) -> List[dict]:
    """Bookings of one profile, newest first, with the counterparty and service joined."""
    profile = await resolve_profile(db, identity)
    if profile.role != role.value:
        raise ValidationError(f"Profile is not a {role.value}")

    counterparty = aliased(Profile)
    if role == ProfileRole.ALUMNI:
        own_col, peer_col = Booking.alumni_id, Booking.student_id
    else:
        own_col, peer_col = Booking.student_id, Booking.alumni_id

    query = (
        select(Booking, counterparty, Service)
        .join(counterparty, counterparty.id == peer_col)
        .join(Service, Service.id == Booking.service_id)
        .where(own_col == profile.id)
        .order_by(
            Booking.booking_date.desc(),
            Booking.booking_time.desc(),
            Booking.created_at.desc(),
        )
    )
    if status == BookingState.ONGOING:
        query = query.where(Booking.validity_date >= today)
    elif status == BookingState.PAST:
        query = query.where(Booking.validity_date < today)

    rows = (await db.execute(query)).all()
    return [
        {
            "id": booking.id,
            "counterparty_identity": peer.external_identity,
            "counterparty_name": peer.full_name,
            "service_id": service.id,
            "service_title": service.title,
            "service_description": service.description,
            "duration_months": service.duration_months,
            "amount": booking.amount,
            "booking_date": booking.booking_date,
            "booking_time": booking.booking_time,
            "validity_date": booking.validity_date,
            "status": classify_booking(booking.validity_date, today),
        }
        for booking, peer, service in rows
    ]
