"""
tests/test_dashboard.py
Alumni and student overview rollups.
"""

from datetime import time, timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import Booking, Profile, ProfileRole, Service, utcnow
from shared.utils.validity import compute_validity_date
from tests.conftest import make_profile, make_service


async def _book(client: AsyncClient, student: Profile, alumni: Profile, service: Service):
    response = await client.post(
        "/bookings",
        json={
            "studentIdentity": student.external_identity,
            "alumniIdentity": alumni.external_identity,
            "serviceId": str(service.id),
        },
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_empty_alumni_overview(client: AsyncClient, alumni: Profile):
    response = await client.get(f"/dashboard/alumni/overview/{alumni.external_identity}")
    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["totalSessions"] == 0
    assert stats["totalStudents"] == 0
    assert stats["totalServices"] == 0
    assert Decimal(stats["earnings"]) == Decimal("0")
    assert stats["unreadMessages"] == 0


@pytest.mark.asyncio
async def test_alumni_overview(
    client: AsyncClient,
    db: AsyncSession,
    student: Profile,
    alumni: Profile,
    service: Service,
):
    second_student = await make_profile(db, "user_student_2", ProfileRole.STUDENT, balance="200")
    await make_service(db, alumni, rate="70.00", title="Mock interview")
    old_date = utcnow().date() - timedelta(days=365)
    db.add(
        Booking(
            student_id=student.id,
            alumni_id=alumni.id,
            service_id=service.id,
            booking_date=old_date,
            booking_time=time(10, 0),
            validity_date=compute_validity_date(old_date, 1),
            amount=Decimal("25.00"),
        )
    )
    await db.commit()

    await _book(client, student, alumni, service)
    await _book(client, second_student, alumni, service)
    await client.post(
        f"/messages/student/{student.external_identity}/threads/{alumni.external_identity}",
        json={"body": "Thanks!"},
    )

    response = await client.get(f"/dashboard/alumni/overview/{alumni.external_identity}")
    stats = response.json()["stats"]
    assert stats["totalSessions"] == 3
    assert stats["ongoingSessions"] == 2
    assert stats["totalStudents"] == 2
    assert stats["totalServices"] == 2
    assert Decimal(stats["earnings"]) == Decimal("105.00")
    assert stats["unreadMessages"] == 1
    assert Decimal(stats["balance"]) == Decimal("80.00")


@pytest.mark.asyncio
async def test_student_overview(
    client: AsyncClient,
    db: AsyncSession,
    student: Profile,
    alumni: Profile,
    service: Service,
):
    await _book(client, student, alumni, service)
    await client.post("/qna", json={"question": "Any tips?", "askedById": student.external_identity})
    await client.post(
        f"/messages/alumni/{alumni.external_identity}/threads/{student.external_identity}",
        json={"body": "Welcome"},
    )

    response = await client.get(f"/dashboard/student/overview/{student.external_identity}")
    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["totalSessions"] == 1
    assert stats["ongoingSessions"] == 1
    assert stats["totalMentors"] == 1
    assert Decimal(stats["totalSpent"]) == Decimal("40.00")
    assert stats["unreadMessages"] == 1
    assert stats["questionsAsked"] == 1
    assert Decimal(stats["balance"]) == Decimal("60.00")


@pytest.mark.asyncio
async def test_overview_role_mismatch(client: AsyncClient, student: Profile):
    response = await client.get(f"/dashboard/alumni/overview/{student.external_identity}")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_overview_unknown_profile(client: AsyncClient):
    response = await client.get("/dashboard/student/overview/user_ghost")
    assert response.status_code == 404
