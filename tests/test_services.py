"""
tests/test_services.py
Service catalog CRUD and the owner check on writes.
"""

import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import Booking, Profile, ProfileRole, Service
from tests.conftest import make_profile, owner_headers


@pytest.mark.asyncio
async def test_create_and_list_services(client: AsyncClient, alumni: Profile):
    url = f"/services/alumni/{alumni.external_identity}"
    first = await client.post(url, json={"title": "Resume review", "rate": "40", "durationMonths": 1})
    assert first.status_code == 201
    service = first.json()["service"]
    assert service["description"] == ""
    assert Decimal(service["rate"]) == Decimal("40")
    assert service["duration_months"] == 1

    await client.post(
        url,
        json={"title": "Mock interview", "description": "45 minutes", "rate": "70.50", "duration_months": 2},
    )

    listed = await client.get(url)
    assert listed.status_code == 200
    assert [s["title"] for s in listed.json()["services"]] == ["Mock interview", "Resume review"]


@pytest.mark.asyncio
async def test_students_cannot_offer_services(client: AsyncClient, student: Profile):
    response = await client.post(
        f"/services/alumni/{student.external_identity}",
        json={"title": "Tutoring", "rate": "10", "durationMonths": 1},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"title": "Free", "rate": "0", "durationMonths": 1},
        {"title": "Zero months", "rate": "10", "durationMonths": 0},
    ],
)
async def test_invalid_service_rejected(client: AsyncClient, alumni: Profile, payload):
    response = await client.post(f"/services/alumni/{alumni.external_identity}", json=payload)
    assert response.status_code == 400
    assert response.json()["code"] == "ValidationError"


@pytest.mark.asyncio
async def test_service_missing_fields(client: AsyncClient, alumni: Profile):
    response = await client.post(f"/services/alumni/{alumni.external_identity}", json={"title": "x"})
    assert response.status_code == 400
    assert response.json()["code"] == "MissingFields"


@pytest.mark.asyncio
async def test_owner_can_update_service(client: AsyncClient, alumni: Profile, service: Service):
    response = await client.patch(
        f"/services/{service.id}",
        headers=owner_headers(alumni),
        json={"rate": "55.00"},
    )
    assert response.status_code == 200
    updated = response.json()["service"]
    assert Decimal(updated["rate"]) == Decimal("55.00")
    assert updated["title"] == "Resume review"


@pytest.mark.asyncio
async def test_empty_update_rejected(client: AsyncClient, alumni: Profile, service: Service):
    response = await client.patch(f"/services/{service.id}", headers=owner_headers(alumni), json={})
    assert response.status_code == 400
    assert response.json()["error"] == "Nothing to update"


@pytest.mark.asyncio
async def test_non_owner_cannot_modify_service(
    client: AsyncClient, db: AsyncSession, service: Service
):
    intruder = await make_profile(db, "user_alumni_intruder", ProfileRole.ALUMNI)

    patch = await client.patch(
        f"/services/{service.id}", headers=owner_headers(intruder), json={"rate": "1"}
    )
    assert patch.status_code == 403
    assert patch.json()["code"] == "Forbidden"

    delete = await client.delete(f"/services/{service.id}", headers=owner_headers(intruder))
    assert delete.status_code == 403


@pytest.mark.asyncio
async def test_write_without_identity_header(client: AsyncClient, service: Service):
    response = await client.delete(f"/services/{service.id}")
    assert response.status_code == 400
    assert response.json()["code"] == "MissingFields"


@pytest.mark.asyncio
async def test_delete_service_removes_its_bookings(
    client: AsyncClient,
    db: AsyncSession,
    student: Profile,
    alumni: Profile,
    service: Service,
):
    await client.post(
        "/bookings",
        json={
            "studentIdentity": student.external_identity,
            "alumniIdentity": alumni.external_identity,
            "serviceId": str(service.id),
        },
    )

    response = await client.delete(f"/services/{service.id}", headers=owner_headers(alumni))
    assert response.status_code == 200
    assert response.json()["success"] is True

    assert await db.scalar(select(func.count(Service.id))) == 0
    assert await db.scalar(select(func.count(Booking.id))) == 0


@pytest.mark.asyncio
async def test_unknown_service_is_404(client: AsyncClient, alumni: Profile):
    response = await client.patch(
        f"/services/{uuid.uuid4()}", headers=owner_headers(alumni), json={"title": "x"}
    )
    assert response.status_code == 404
