"""
tests/test_qna.py
Question board feed ordering and answer attribution.
"""

import uuid

import pytest
from httpx import AsyncClient

from shared.models.models import Profile


@pytest.mark.asyncio
async def test_empty_feed(client: AsyncClient):
    response = await client.get("/qna")
    assert response.status_code == 200
    assert response.json() == {"success": True, "qna": []}


@pytest.mark.asyncio
async def test_ask_and_answer(client: AsyncClient, student: Profile, alumni: Profile):
    await client.post("/qna", json={"question": "First?", "askedById": student.external_identity})
    feed = await client.post(
        "/qna", json={"question": "Second?", "askedById": student.external_identity}
    )
    assert feed.status_code == 200
    items = feed.json()["qna"]
    assert [q["question"] for q in items] == ["Second?", "First?"]
    assert items[0]["askedBy"] == {"id": student.external_identity, "name": "Asha Rao"}

    question_id = items[1]["id"]
    await client.post(
        f"/qna/{question_id}/answer",
        json={"answer": "Start early", "byId": alumni.external_identity},
    )
    feed = await client.post(
        f"/qna/{question_id}/answer",
        json={"answer": "Practise daily", "byId": student.external_identity},
    )
    answered = next(q for q in feed.json()["qna"] if q["id"] == question_id)
    assert [a["body"] for a in answered["answers"]] == ["Start early", "Practise daily"]
    assert answered["answers"][0]["by"] == "Vikram Shah"
    assert answered["answers"][0]["byId"] == alumni.external_identity
    assert "answeredAt" in answered["answers"][0]


@pytest.mark.asyncio
async def test_answer_unknown_question(client: AsyncClient, alumni: Profile):
    response = await client.post(
        f"/qna/{uuid.uuid4()}/answer",
        json={"answer": "?", "byId": alumni.external_identity},
    )
    assert response.status_code == 404
    assert response.json()["error"] == "Question not found"


@pytest.mark.asyncio
async def test_question_by_unknown_profile(client: AsyncClient):
    response = await client.post("/qna", json={"question": "Hello?", "askedById": "user_ghost"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_question_missing_fields(client: AsyncClient):
    response = await client.post("/qna", json={"question": "Hello?"})
    assert response.status_code == 400
    assert response.json()["code"] == "MissingFields"
