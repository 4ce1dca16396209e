"""
services/profile/router.py
Profile store: search, idempotent upsert keyed by external identity,
preference toggles, cascading delete and the wallet.
Also hosts the public alumni directory.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import String, cast, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from shared.exceptions import ValidationError
from shared.middleware.identity import IdentityPath, resolve_profile
from shared.models.models import (
    Answer,
    Booking,
    Message,
    Profile,
    ProfileRole,
    Question,
    Service,
)
from shared.schemas.schemas import (
    AlumniDirectoryEnvelope,
    AvailabilityEnvelope,
    AvailabilityUpdateRequest,
    DarkModeEnvelope,
    DarkModeUpdateRequest,
    ProfileDeletedEnvelope,
    ProfileEnvelope,
    ProfileSearchEnvelope,
    ProfileUpsertRequest,
    WalletEnvelope,
    WalletTopUpRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profiles", tags=["Profiles"])
alumni_router = APIRouter(prefix="/alumni", tags=["Alumni Directory"])


def _apply_upsert(profile: Profile, data: ProfileUpsertRequest) -> None:
    if profile.role != data.role:
        raise ValidationError("Role cannot be changed once set")
    for field, value in data.model_dump(exclude={"external_identity", "role"}).items():
        setattr(profile, field, value)


# ── Search ────────────────────────────────────────────────────

@router.get("", response_model=ProfileSearchEnvelope)
async def search_profiles(
    q: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    """Case-insensitive substring search over name, company and college."""
    term = f"%{(q or '').strip()}%"
    rows = await db.scalars(
        select(Profile)
        .where(
            or_(
                Profile.first_name.ilike(term),
                Profile.last_name.ilike(term),
                Profile.company.ilike(term),
                Profile.college.ilike(term),
            )
        )
        .order_by(Profile.first_name, Profile.last_name)
        .limit(settings.PROFILE_SEARCH_LIMIT)
    )
    return {
        "success": True,
        "results": [
            {
                "id": p.external_identity,
                "name": p.full_name,
                "role": p.role,
                "profile_image_url": p.profile_image,
            }
            for p in rows
        ],
    }


# ── Read / Upsert ─────────────────────────────────────────────

@router.get("/{identity}", response_model=ProfileEnvelope)
async def get_profile(identity: IdentityPath, db: AsyncSession = Depends(get_db)):
    profile = await resolve_profile(db, identity)
    return {"success": True, "profile": profile}


@router.post("", response_model=ProfileEnvelope)
async def upsert_profile(data: ProfileUpsertRequest, db: AsyncSession = Depends(get_db)):
    """
    Create the profile on first call, overwrite its mutable fields after.
    Identity, role, balance and created_at are never changed here.
    """
    query = select(Profile).where(Profile.external_identity == data.external_identity)
    profile = await db.scalar(query)

    if profile is None:
        profile = Profile(external_identity=data.external_identity, role=data.role)
        _apply_upsert(profile, data)
        db.add(profile)
        try:
            await db.commit()
            logger.info("Profile created: %s (%s)", data.external_identity, data.role)
        except IntegrityError:
            # Concurrent first call won the insert
            await db.rollback()
            profile = await db.scalar(query)
            if profile is None:
                raise
            _apply_upsert(profile, data)
            await db.commit()
    else:
        _apply_upsert(profile, data)
        await db.commit()

    await db.refresh(profile)
    return {"success": True, "profile": profile}


# ── Preferences ───────────────────────────────────────────────

@router.patch("/{identity}/availability", response_model=AvailabilityEnvelope)
async def set_availability(
    identity: IdentityPath,
    data: AvailabilityUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    profile = await resolve_profile(db, identity)
    profile.is_available = data.is_available
    await db.commit()
    return {"success": True, "is_available": profile.is_available}


@router.patch("/{identity}/dark-mode", response_model=DarkModeEnvelope)
async def set_dark_mode(
    identity: IdentityPath,
    data: DarkModeUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    profile = await resolve_profile(db, identity)
    profile.dark_mode = data.dark_mode
    await db.commit()
    return {"success": True, "dark_mode": profile.dark_mode}


# ── Delete ────────────────────────────────────────────────────

@router.delete("/{identity}", response_model=ProfileDeletedEnvelope)
async def delete_profile(identity: IdentityPath, db: AsyncSession = Depends(get_db)):
    """
    Remove a profile and everything that references it, in one transaction.
    Bookings of the profile's services go too, whoever the student was.
    """
    profile = await resolve_profile(db, identity)
    pid = profile.id
    own_questions = select(Question.id).where(Question.asked_by == pid)
    own_services = select(Service.id).where(Service.alumni_id == pid)

    statements = [
        (
            "answers",
            delete(Answer).where(
                or_(Answer.answered_by == pid, Answer.question_id.in_(own_questions))
            ),
        ),
        ("questions", delete(Question).where(Question.asked_by == pid)),
        (
            "messages",
            delete(Message).where(or_(Message.sender_id == pid, Message.receiver_id == pid)),
        ),
        (
            "bookings",
            delete(Booking).where(
                or_(
                    Booking.student_id == pid,
                    Booking.alumni_id == pid,
                    Booking.service_id.in_(own_services),
                )
            ),
        ),
        ("services", delete(Service).where(Service.alumni_id == pid)),
        ("profiles", delete(Profile).where(Profile.id == pid)),
    ]

    deleted = {}
    for name, stmt in statements:
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        deleted[name] = result.rowcount
    await db.commit()

    logger.info("Profile %s deleted: %s", identity, deleted)
    return {"success": True, "deleted": deleted}


# ── Wallet ────────────────────────────────────────────────────

@router.get("/{identity}/wallet", response_model=WalletEnvelope)
async def get_wallet(identity: IdentityPath, db: AsyncSession = Depends(get_db)):
    profile = await resolve_profile(db, identity)
    return {"success": True, "identity": profile.external_identity, "balance": profile.balance}


@router.post("/{identity}/wallet/top-up", response_model=WalletEnvelope)
async def top_up_wallet(
    identity: IdentityPath,
    data: WalletTopUpRequest,
    db: AsyncSession = Depends(get_db),
):
    """Credit the wallet. A ledger entry only; no payment gateway is involved."""
    profile = await resolve_profile(db, identity, for_update=True)
    await db.execute(
        update(Profile)
        .where(Profile.id == profile.id)
        .values(balance=Profile.balance + data.amount)
        .execution_options(synchronize_session=False)
    )
    balance = await db.scalar(select(Profile.balance).where(Profile.id == profile.id))
    await db.commit()

    logger.info("Wallet top-up: %s +%s -> %s", identity, data.amount, balance)
    return {"success": True, "identity": identity, "balance": balance}


# ── Alumni Directory ──────────────────────────────────────────

@alumni_router.get("", response_model=AlumniDirectoryEnvelope)
async def search_alumni(
    search: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    """Available alumni matching name, company, college or an exact skill."""
    query = select(Profile).where(
        Profile.role == ProfileRole.ALUMNI.value,
        Profile.is_available.is_(True),
    )
    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        query = query.where(
            or_(
                Profile.first_name.ilike(like),
                Profile.last_name.ilike(like),
                Profile.company.ilike(like),
                Profile.college.ilike(like),
                # skills is a JSON list of strings
                cast(Profile.skills, String).ilike(f'%"{term}"%'),
            )
        )
    rows = await db.scalars(query.order_by(Profile.last_name, Profile.first_name))
    return {
        "success": True,
        "alumni": [
            {
                "id": p.external_identity,
                "first_name": p.first_name,
                "last_name": p.last_name,
                "company": p.company,
                "position": p.industry,
                "expertise": p.skills or [],
                "college": p.college,
                "graduation_year": p.graduation_year,
                "rating": p.rating,
                "profile_image_url": p.profile_image,
                "hourly_rate": p.hourly_rate,
            }
            for p in rows
        ],
    }
