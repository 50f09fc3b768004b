"""
Pure scoring for submitted attempts.

Nothing here touches the database or the clock: given the same answers, question
snapshots and configuration, ``grade`` always returns the same ``GradeResult``,
so a submission whose persistence step failed can simply be graded again.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import assert_never
from uuid import UUID

from app.models.constants import (
    ATTEMPT_STATUS_COMPLETED,
    ATTEMPT_STATUS_FAILED,
    ATTEMPT_STATUS_PASSED,
)
from app.services.catalog_service import QuestionSnapshot, TestConfiguration


@dataclass(frozen=True)
class Ungraded:
    pass


@dataclass(frozen=True)
class AutoGraded:
    correct: bool
    points: float


@dataclass(frozen=True)
class ManualPending:
    pass


@dataclass(frozen=True)
class ManuallyGraded:
    correct: bool | None
    points: float


Grade = Ungraded | AutoGraded | ManualPending | ManuallyGraded


@dataclass(frozen=True)
class GradedAnswer:
    question_id: UUID
    answer: str | None
    grade: Grade

    @property
    def answered(self) -> bool:
        return self.answer is not None


@dataclass(frozen=True)
class GradeResult:
    percentage: int
    status: str
    earned_points: float
    total_points: float
    graded_answers: tuple[GradedAnswer, ...]

    @property
    def correct_count(self) -> int:
        return sum(1 for item in self.graded_answers if isinstance(item.grade, AutoGraded) and item.grade.correct)

    @property
    def pending_manual_count(self) -> int:
        return sum(1 for item in self.graded_answers if isinstance(item.grade, ManualPending))


def compute_percentage(earned_points: float, total_points: float) -> int:
    if total_points <= 0:
        return 0
    # Half-up rounding; round() would send 62.5 to 62.
    return int(math.floor(earned_points / total_points * 100 + 0.5))


def grade_question(question: QuestionSnapshot, answer: str | None) -> Grade:
    if not question.auto_gradable:
        return ManualPending()
    if answer is None:
        return AutoGraded(correct=False, points=0)
    if question.correct_answer is not None and answer == question.correct_answer:
        return AutoGraded(correct=True, points=question.points)
    return AutoGraded(correct=False, points=0)


def earned_points_for(grade: Grade) -> float:
    if isinstance(grade, (AutoGraded, ManuallyGraded)):
        return grade.points
    if isinstance(grade, (Ungraded, ManualPending)):
        return 0
    assert_never(grade)


def summarize(
    answers: Mapping[UUID, str],
    grades: Mapping[UUID, Grade],
    questions: Sequence[QuestionSnapshot],
    config: TestConfiguration,
) -> GradeResult:
    total_points = 0.0
    earned_points = 0.0
    pending = False
    graded: list[GradedAnswer] = []

    for question in questions:
        total_points += question.points
        grade = grades.get(question.id, Ungraded())
        if isinstance(grade, (ManualPending, Ungraded)) and not question.auto_gradable:
            pending = True
            grade = ManualPending()
        earned_points += earned_points_for(grade)
        graded.append(GradedAnswer(question_id=question.id, answer=answers.get(question.id), grade=grade))

    percentage = compute_percentage(earned_points, total_points)
    if pending:
        status = ATTEMPT_STATUS_COMPLETED
    elif total_points <= 0:
        # An empty question set can never be passed, even with a zero threshold.
        status = ATTEMPT_STATUS_FAILED
    elif percentage >= config.passing_score_percent:
        status = ATTEMPT_STATUS_PASSED
    else:
        status = ATTEMPT_STATUS_FAILED

    return GradeResult(
        percentage=percentage,
        status=status,
        earned_points=earned_points,
        total_points=total_points,
        graded_answers=tuple(graded),
    )


def grade(
    answers: Mapping[UUID, str],
    questions: Sequence[QuestionSnapshot],
    config: TestConfiguration,
) -> GradeResult:
    grades = {question.id: grade_question(question, answers.get(question.id)) for question in questions}
    return summarize(answers, grades, questions, config)


def to_columns(grade: Grade) -> tuple[bool | None, float | None]:
    """Map a grade onto the nullable (is_correct, score) pair stored per answer."""
    if isinstance(grade, AutoGraded):
        return grade.correct, grade.points
    if isinstance(grade, ManuallyGraded):
        return grade.correct, grade.points
    if isinstance(grade, (Ungraded, ManualPending)):
        return None, None
    assert_never(grade)


def from_columns(question: QuestionSnapshot, is_correct: bool | None, score: float | None) -> Grade:
    if score is None:
        return Ungraded() if question.auto_gradable else ManualPending()
    if question.auto_gradable:
        return AutoGraded(correct=bool(is_correct), points=score)
    return ManuallyGraded(correct=is_correct, points=score)
