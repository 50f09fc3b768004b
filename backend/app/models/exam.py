import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base_class import Base
from app.models.mixins import TimestampMixin, UUIDPrimaryKeyMixin


class ExamTest(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Test configuration owned by the authoring side; read-only for attempts."""

    __tablename__ = 'exam_tests'
    __table_args__ = (
        CheckConstraint('duration_minutes > 0', name='exam_test_duration_positive'),
        CheckConstraint('end_window > start_window', name='exam_test_window_order'),
        CheckConstraint(
            'passing_score_percent is null or (passing_score_percent >= 0 and passing_score_percent <= 100)',
            name='exam_test_passing_score_range',
        ),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    start_window: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_window: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    passing_score_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    questions: Mapped[list['ExamQuestion']] = relationship(
        back_populates='test', cascade='all, delete-orphan', order_by='ExamQuestion.order_index'
    )


class ExamQuestion(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = 'exam_questions'
    __table_args__ = (
        CheckConstraint(
            "kind in ('multiple_choice', 'true_false', 'short_answer', 'essay')",
            name='exam_question_kind_values',
        ),
        CheckConstraint('points is null or points > 0', name='exam_question_points_positive'),
    )

    test_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey('exam_tests.id', ondelete='CASCADE'), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(30), nullable=False, default='multiple_choice')
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    correct_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    test: Mapped['ExamTest'] = relationship(back_populates='questions')


class TestAttempt(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __test__ = False
    __tablename__ = 'test_attempts'
    __table_args__ = (
        CheckConstraint(
            "status in ('in_progress', 'passed', 'failed', 'completed')",
            name='test_attempt_status_values',
        ),
        CheckConstraint(
            "(status = 'in_progress' and end_time is null) or (status <> 'in_progress' and end_time is not null)",
            name='test_attempt_end_time_iff_terminal',
        ),
        CheckConstraint('score is null or (score >= 0 and score <= 100)', name='test_attempt_score_range'),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    test_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey('exam_tests.id', ondelete='RESTRICT'), nullable=False
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False, default='in_progress')
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    earned_points: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_points: Mapped[float | None] = mapped_column(Float, nullable=True)
    expired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class TestAttemptAnswer(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __test__ = False
    __tablename__ = 'test_attempt_answers'
    __table_args__ = (
        UniqueConstraint('attempt_id', 'question_id', name='uq_test_attempt_answer_question'),
    )

    attempt_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey('test_attempts.id', ondelete='CASCADE'), nullable=False
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey('exam_questions.id', ondelete='RESTRICT'), nullable=False
    )
    answer: Mapped[str] = mapped_column(Text, nullable=False, default='')
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)


class AttemptRetakeGrant(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """An external re-authorization allowing one fresh attempt after a terminal one."""

    __tablename__ = 'attempt_retake_grants'

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    test_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey('exam_tests.id', ondelete='CASCADE'), nullable=False
    )
    granted_by: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    consumed_attempt_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey('test_attempts.id', ondelete='SET NULL'), nullable=True
    )


# One in-progress attempt per (user, test), enforced by the database.
Index(
    'uq_test_attempts_active_user_test',
    TestAttempt.user_id,
    TestAttempt.test_id,
    unique=True,
    postgresql_where=text("status = 'in_progress'"),
    sqlite_where=text("status = 'in_progress'"),
)
Index('ix_test_attempts_user_test', TestAttempt.user_id, TestAttempt.test_id)
Index('ix_test_attempts_status', TestAttempt.status)
Index('ix_test_attempt_answers_attempt_id', TestAttemptAnswer.attempt_id)
Index('ix_exam_questions_test_id', ExamQuestion.test_id)
Index('ix_attempt_retake_grants_user_test', AttemptRetakeGrant.user_id, AttemptRetakeGrant.test_id)
