from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import ensure_utc
from app.core.config import settings
from app.core.errors import NotFound
from app.models.constants import AUTO_GRADED_QUESTION_KINDS
from app.models.exam import ExamQuestion, ExamTest


@dataclass(frozen=True)
class TestConfiguration:
    __test__ = False

    test_id: UUID
    duration_minutes: int
    start_window: datetime
    end_window: datetime
    passing_score_percent: int
    is_active: bool


@dataclass(frozen=True)
class QuestionSnapshot:
    id: UUID
    kind: str
    correct_answer: str | None
    points: int

    @property
    def auto_gradable(self) -> bool:
        return self.kind in AUTO_GRADED_QUESTION_KINDS


def to_test_configuration(test: ExamTest) -> TestConfiguration:
    passing = test.passing_score_percent
    return TestConfiguration(
        test_id=test.id,
        duration_minutes=test.duration_minutes,
        start_window=ensure_utc(test.start_window),
        end_window=ensure_utc(test.end_window),
        passing_score_percent=settings.DEFAULT_PASSING_SCORE_PERCENT if passing is None else passing,
        is_active=test.is_active,
    )


def to_question_snapshot(question: ExamQuestion) -> QuestionSnapshot:
    return QuestionSnapshot(
        id=question.id,
        kind=question.kind,
        correct_answer=question.correct_answer,
        points=question.points or settings.DEFAULT_QUESTION_POINTS,
    )


def load_test_configuration(db: Session, test_id: UUID) -> TestConfiguration:
    test = db.scalar(select(ExamTest).where(ExamTest.id == test_id))
    if not test:
        raise NotFound('Test not found')
    return to_test_configuration(test)


def load_question_snapshots(db: Session, test_id: UUID) -> list[QuestionSnapshot]:
    questions = db.scalars(
        select(ExamQuestion)
        .where(ExamQuestion.test_id == test_id)
        .order_by(ExamQuestion.order_index.asc(), ExamQuestion.created_at.asc())
    ).all()
    return [to_question_snapshot(question) for question in questions]


def question_ids_for_test(db: Session, test_id: UUID) -> set[UUID]:
    return set(db.scalars(select(ExamQuestion.id).where(ExamQuestion.test_id == test_id)).all())
