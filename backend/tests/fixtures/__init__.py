"""Seed data helpers for tests."""

import uuid
from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pha.models import Assessment, AssessmentStatus, Child, Practice, SurveyQuestionDefinition
from pha.models.base import utcnow

QUESTIONS = [
    {
        "id": "q1",
        "question_text": "How would you rate your child's focus at school?",
        "question_type": "scale",
        "category": "cognitive",
        "order_index": 1,
    },
    {
        "id": "q2",
        "question_text": "Gender",
        "question_type": "multiple_choice",
        "category": "demographics",
        "order_index": 2,
        "options": {
            "choices": [
                {"value": "male", "label": "Male"},
                {"value": "female", "label": "Female"},
            ]
        },
    },
    {
        "id": "q3",
        "question_text": "Does your child sleep through the night?",
        "question_type": "boolean",
        "category": "sleep",
        "order_index": 3,
    },
    {
        "id": "q4",
        "question_text": "How many hours of screen time per day?",
        "question_type": "number",
        "category": "cognitive",
        "order_index": 4,
        "validation_rules": {"min": 0, "max": 24},
    },
]

A1_RESPONSES = [
    {"question_id": "q1", "response_value": "8", "response_text": "8"},
    {"question_id": "q2", "response_value": "male", "response_text": "Male"},
]


async def create_practice(session: AsyncSession, **overrides) -> Practice:
    practice = Practice(
        name=overrides.pop("name", "Healthy Spine Chiropractic"),
        email=overrides.pop("email", "front-desk@example.com"),
        **overrides,
    )
    session.add(practice)
    await session.flush()
    return practice


async def create_child(
    session: AsyncSession, parent_id: Optional[uuid.UUID] = None, **overrides
) -> Child:
    child = Child(
        parent_id=parent_id or uuid.uuid4(),
        first_name=overrides.pop("first_name", "Sam"),
        last_name=overrides.pop("last_name", "Rivera"),
        date_of_birth=overrides.pop("date_of_birth", date(2016, 3, 14)),
        gender=overrides.pop("gender", "male"),
        **overrides,
    )
    session.add(child)
    await session.flush()
    return child


async def create_assessment(
    session: AsyncSession,
    child: Child,
    practice: Optional[Practice] = None,
    status: str = AssessmentStatus.STARTED.value,
) -> Assessment:
    assessment = Assessment(
        child_id=child.id,
        practice_id=practice.id if practice else None,
        status=status,
        started_at=utcnow(),
    )
    if status == AssessmentStatus.COMPLETED.value:
        assessment.completed_at = utcnow()
        assessment.brain_o_meter_score = 60
    session.add(assessment)
    await session.flush()
    return assessment


async def create_questions(session: AsyncSession) -> None:
    for question in QUESTIONS:
        session.add(SurveyQuestionDefinition(**question))
    await session.flush()


async def seed_started_assessment(session: AsyncSession, with_questions: bool = True):
    """Practice, child and a started assessment, committed. Returns ``(practice, child, assessment)``."""
    if with_questions:
        await create_questions(session)
    practice = await create_practice(session)
    child = await create_child(session)
    assessment = await create_assessment(session, child, practice)
    await session.commit()
    return practice, child, assessment
