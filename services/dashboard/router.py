"""
services/dashboard/router.py
Read-only overview rollups for the alumni and student dashboards.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.exceptions import ValidationError
from shared.middleware.identity import IdentityPath, resolve_profile
from shared.models.models import Booking, Message, Profile, ProfileRole, Question, Service, utcnow
from shared.schemas.schemas import AlumniOverviewEnvelope, StudentOverviewEnvelope

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


async def _member(db: AsyncSession, identity: str, role: ProfileRole) -> Profile:
    profile = await resolve_profile(db, identity)
    if profile.role != role.value:
        raise ValidationError(f"Profile is not a {role.value}")
    return profile


async def _unread_count(db: AsyncSession, profile: Profile) -> int:
    return await db.scalar(
        select(func.count(Message.id)).where(
            Message.receiver_id == profile.id,
            Message.is_read.is_(False),
        )
    )


async def _booking_rollup(db: AsyncSession, own_col, peer_col, profile: Profile):
    """(total, ongoing, distinct counterparties, amount sum) for one side of bookings."""
    today = utcnow().date()
    row = (
        await db.execute(
            select(
                func.count(Booking.id),
                func.count(distinct(peer_col)),
                func.coalesce(func.sum(Booking.amount), 0),
            ).where(own_col == profile.id)
        )
    ).one()
    ongoing = await db.scalar(
        select(func.count(Booking.id)).where(
            own_col == profile.id,
            Booking.validity_date >= today,
        )
    )
    total, peers, amount = row
    return total, ongoing, peers, Decimal(str(amount)).quantize(Decimal("0.01"))


@router.get("/alumni/overview/{identity}", response_model=AlumniOverviewEnvelope)
async def alumni_overview(identity: IdentityPath, db: AsyncSession = Depends(get_db)):
    alumni = await _member(db, identity, ProfileRole.ALUMNI)
    total, ongoing, students, earnings = await _booking_rollup(
        db, Booking.alumni_id, Booking.student_id, alumni
    )
    services = await db.scalar(
        select(func.count(Service.id)).where(Service.alumni_id == alumni.id)
    )
    return {
        "success": True,
        "stats": {
            "total_sessions": total,
            "ongoing_sessions": ongoing,
            "total_students": students,
            "total_services": services,
            "earnings": earnings,
            "unread_messages": await _unread_count(db, alumni),
            "balance": alumni.balance,
        },
    }


@router.get("/student/overview/{identity}", response_model=StudentOverviewEnvelope)
async def student_overview(identity: IdentityPath, db: AsyncSession = Depends(get_db)):
    student = await _member(db, identity, ProfileRole.STUDENT)
    total, ongoing, mentors, spent = await _booking_rollup(
        db, Booking.student_id, Booking.alumni_id, student
    )
    questions = await db.scalar(
        select(func.count(Question.id)).where(Question.asked_by == student.id)
    )
    return {
        "success": True,
        "stats": {
            "total_sessions": total,
            "ongoing_sessions": ongoing,
            "total_mentors": mentors,
            "total_spent": spent,
            "unread_messages": await _unread_count(db, student),
            "questions_asked": questions,
            "balance": student.balance,
        },
    }
