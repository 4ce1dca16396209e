"""
services/qna/router.py
Public question board. Every write returns the refreshed feed.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config.database import get_db
from shared.exceptions import NotFoundError
from shared.middleware.identity import resolve_profile
from shared.models.models import Answer, Profile, Question
from shared.schemas.schemas import AnswerCreateRequest, QnaEnvelope, QuestionCreateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/qna", tags=["Q&A"])


async def fetch_feed(db: AsyncSession) -> list:
    """Questions newest first, each with its answers oldest first."""
    questions = list(
        await db.scalars(
            select(Question)
            .options(selectinload(Question.answers))
            .order_by(Question.asked_at.desc())
            .execution_options(populate_existing=True)
        )
    )
    author_ids = {q.asked_by for q in questions}
    author_ids.update(a.answered_by for q in questions for a in q.answers)
    authors = {}
    if author_ids:
        authors = {
            p.id: p
            for p in await db.scalars(select(Profile).where(Profile.id.in_(author_ids)))
        }

    return [
        {
            "id": q.id,
            "question": q.question,
            "asked_at": q.asked_at,
            "asked_by": {
                "id": authors[q.asked_by].external_identity,
                "name": authors[q.asked_by].full_name,
            },
            "answers": [
                {
                    "id": a.id,
                    "body": a.body,
                    "answered_at": a.answered_at,
                    "by": authors[a.answered_by].full_name,
                    "by_id": authors[a.answered_by].external_identity,
                }
                for a in q.answers
            ],
        }
        for q in questions
    ]


@router.get("", response_model=QnaEnvelope)
async def get_feed(db: AsyncSession = Depends(get_db)):
    return {"success": True, "qna": await fetch_feed(db)}


@router.post("", response_model=QnaEnvelope)
async def ask_question(data: QuestionCreateRequest, db: AsyncSession = Depends(get_db)):
    asker = await resolve_profile(db, data.asked_by_id)
    db.add(Question(asked_by=asker.id, question=data.question))
    await db.commit()
    return {"success": True, "qna": await fetch_feed(db)}


@router.post("/{question_id}/answer", response_model=QnaEnvelope)
async def answer_question(
    question_id: UUID,
    data: AnswerCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    question = await db.scalar(select(Question).where(Question.id == question_id))
    if not question:
        raise NotFoundError("Question not found")
    author = await resolve_profile(db, data.by_id)

    db.add(Answer(question_id=question.id, answered_by=author.id, body=data.answer))
    await db.commit()
    return {"success": True, "qna": await fetch_feed(db)}
