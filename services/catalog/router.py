"""
services/catalog/router.py
Alumni-authored service offerings. Writes to an existing service are
restricted to its owner, identified by the X-Profile-Identity header.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.exceptions import ForbiddenError, ValidationError
from shared.middleware.identity import (
    IdentityPath,
    get_caller_identity,
    get_service_or_404,
    resolve_profile,
)
from shared.models.models import Booking, ProfileRole, Service
from shared.schemas.schemas import (
    MessageResponse,
    ServiceCreateRequest,
    ServiceEnvelope,
    ServiceListEnvelope,
    ServiceUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services", tags=["Services"])


async def _get_owned_service(db: AsyncSession, service_id: UUID, caller: str) -> Service:
    service = await get_service_or_404(db, service_id)
    owner = await resolve_profile(db, caller)
    if service.alumni_id != owner.id:
        raise ForbiddenError("Only the owning alumni can modify this service")
    return service


@router.get("/alumni/{identity}", response_model=ServiceListEnvelope)
async def list_services(identity: IdentityPath, db: AsyncSession = Depends(get_db)):
    alumni = await resolve_profile(db, identity)
    services = await db.scalars(
        select(Service)
        .where(Service.alumni_id == alumni.id)
        .order_by(Service.created_at.desc())
    )
    return {"success": True, "services": list(services)}


@router.post("/alumni/{identity}", response_model=ServiceEnvelope, status_code=201)
async def create_service(
    identity: IdentityPath,
    data: ServiceCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    alumni = await resolve_profile(db, identity)
    if alumni.role != ProfileRole.ALUMNI.value:
        raise ValidationError("Only alumni can offer services")

    service = Service(alumni_id=alumni.id, **data.model_dump())
    db.add(service)
    await db.commit()
    await db.refresh(service)

    logger.info("Service %s created by %s", service.id, identity)
    return {"success": True, "service": service}


@router.patch("/{service_id}", response_model=ServiceEnvelope)
async def update_service(
    service_id: UUID,
    data: ServiceUpdateRequest,
    caller: str = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db),
):
    """Partial update. Only fields present in the body are changed."""
    updates = data.model_dump(exclude_none=True)
    if not updates:
        raise ValidationError("Nothing to update")

    service = await _get_owned_service(db, service_id, caller)
    for field, value in updates.items():
        setattr(service, field, value)
    await db.commit()
    await db.refresh(service)
    return {"success": True, "service": service}


@router.delete("/{service_id}", response_model=MessageResponse)
async def delete_service(
    service_id: UUID,
    caller: str = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db),
):
    """Delete a service together with its bookings."""
    service = await _get_owned_service(db, service_id, caller)
    await db.execute(
        delete(Booking)
        .where(Booking.service_id == service.id)
        .execution_options(synchronize_session=False)
    )
    await db.delete(service)
    await db.commit()

    logger.info("Service %s deleted by %s", service_id, caller)
    return MessageResponse(message="Service deleted")
