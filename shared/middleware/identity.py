"""
shared/middleware/identity.py
External identity handling. The identity provider issues a stable opaque
user id; it is validated at every boundary and mapped to a local Profile
row here. Lookup misses surface as NotFoundError (404), never as a raw
storage exception.
"""

from typing import Annotated
from uuid import UUID

from fastapi import Header, Path
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.exceptions import NotFoundError
from shared.models.models import Profile, Service

IDENTITY_PATTERN = r"^[^\s/]+$"
IDENTITY_MAX_LENGTH = 255

# Body/schema field
ExternalIdentity = Annotated[
    str,
    Field(min_length=1, max_length=IDENTITY_MAX_LENGTH, pattern=IDENTITY_PATTERN),
]

# Path segment
IdentityPath = Annotated[
    str,
    Path(min_length=1, max_length=IDENTITY_MAX_LENGTH, pattern=IDENTITY_PATTERN),
]


async def resolve_profile(
    db: AsyncSession,
    identity: str,
    *,
    for_update: bool = False,
) -> Profile:
    """Map an external identity to its Profile, optionally row-locked."""
    query = select(Profile).where(Profile.external_identity == identity)
    if for_update:
        # Fresh balance under lock, not the identity-map copy
        query = query.with_for_update().execution_options(populate_existing=True)
    profile = await db.scalar(query)
    if not profile:
        raise NotFoundError("Profile not found")
    return profile


async def get_service_or_404(db: AsyncSession, service_id: UUID) -> Service:
    service = await db.scalar(select(Service).where(Service.id == service_id))
    if not service:
        raise NotFoundError("Service not found")
    return service


async def get_caller_identity(
    x_profile_identity: Annotated[
        str,
        Header(min_length=1, max_length=IDENTITY_MAX_LENGTH, pattern=IDENTITY_PATTERN),
    ],
) -> str:
    """
    Identity of the member making the request, forwarded by the gateway
    after the identity provider has authenticated it.
    """
    return x_profile_identity
