from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.constants import ATTEMPT_STATUS_IN_PROGRESS, TERMINAL_ATTEMPT_STATUS_VALUES
from app.models.exam import AttemptRetakeGrant, TestAttempt, TestAttemptAnswer


logger = logging.getLogger(__name__)


class AttemptRepository:
    """
    Storage boundary for attempts and their answers.

    Every coordination point between concurrent request handlers lives here:
    the partial unique index on in-progress attempts, the answer upsert keyed by
    ``(attempt_id, question_id)`` and the compare-and-swap on attempt status.
    Callers own the transaction; nothing in this class commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_attempt(self, attempt_id: UUID, *, for_update: bool = False) -> TestAttempt | None:
        stmt = select(TestAttempt).where(TestAttempt.id == attempt_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.scalar(stmt)

    def find_active_attempt(self, user_id: UUID, test_id: UUID) -> TestAttempt | None:
        return self.db.scalar(
            select(TestAttempt).where(
                TestAttempt.user_id == user_id,
                TestAttempt.test_id == test_id,
                TestAttempt.status == ATTEMPT_STATUS_IN_PROGRESS,
            )
        )

    def find_terminal_attempt(self, user_id: UUID, test_id: UUID) -> TestAttempt | None:
        return self.db.scalar(
            select(TestAttempt)
            .where(
                TestAttempt.user_id == user_id,
                TestAttempt.test_id == test_id,
                TestAttempt.status.in_(TERMINAL_ATTEMPT_STATUS_VALUES),
            )
            .order_by(TestAttempt.start_time.desc())
            .limit(1)
        )

    def insert_attempt(self, *, user_id: UUID, test_id: UUID, start_time: datetime) -> tuple[TestAttempt, bool]:
        """
        Insert a new in-progress attempt, returning ``(attempt, created)``.

        A concurrent start that already won the partial unique index makes the
        insert fail; the savepoint is rolled back and the winner's row returned.
        """
        attempt = TestAttempt(
            user_id=user_id,
            test_id=test_id,
            status=ATTEMPT_STATUS_IN_PROGRESS,
            start_time=start_time,
        )
        try:
            with self.db.begin_nested():
                self.db.add(attempt)
                self.db.flush()
        except IntegrityError:
            existing = self.find_active_attempt(user_id, test_id)
            if existing is None:
                raise
            logger.info('Concurrent start for user %s on test %s resolved to attempt %s', user_id, test_id, existing.id)
            return existing, False
        return attempt, True

    def upsert_answer(self, *, attempt_id: UUID, question_id: UUID, answer: str) -> None:
        dialect = self.db.get_bind().dialect.name
        if dialect == 'postgresql':
            insert = postgresql.insert
        elif dialect == 'sqlite':
            insert = sqlite.insert
        else:
            raise NotImplementedError(f'Answer upsert is not supported on {dialect}')

        stmt = insert(TestAttemptAnswer).values(
            id=uuid.uuid4(),
            attempt_id=attempt_id,
            question_id=question_id,
            answer=answer,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[TestAttemptAnswer.attempt_id, TestAttemptAnswer.question_id],
            set_={'answer': stmt.excluded.answer, 'updated_at': func.now()},
        )
        self.db.execute(stmt)

    def list_answers(self, attempt_id: UUID) -> list[TestAttemptAnswer]:
        return list(
            self.db.scalars(
                select(TestAttemptAnswer)
                .where(TestAttemptAnswer.attempt_id == attempt_id)
                .order_by(TestAttemptAnswer.created_at.asc())
                .execution_options(populate_existing=True)
            ).all()
        )

    def answers_by_question(self, attempt_id: UUID) -> dict[UUID, str]:
        rows = self.db.execute(
            select(TestAttemptAnswer.question_id, TestAttemptAnswer.answer).where(
                TestAttemptAnswer.attempt_id == attempt_id
            )
        ).all()
        return {question_id: answer for question_id, answer in rows}

    def set_answer_grade(
        self, *, attempt_id: UUID, question_id: UUID, is_correct: bool | None, score: float | None
    ) -> None:
        self.db.execute(
            update(TestAttemptAnswer)
            .where(TestAttemptAnswer.attempt_id == attempt_id, TestAttemptAnswer.question_id == question_id)
            .values(is_correct=is_correct, score=score, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )

    def compare_and_swap_status(self, attempt_id: UUID, *, expected: str, new_status: str, **values: Any) -> bool:
        """Move the attempt to ``new_status`` only if it is still ``expected``; True if this call won."""
        result = self.db.execute(
            update(TestAttempt)
            .where(TestAttempt.id == attempt_id, TestAttempt.status == expected)
            .values(status=new_status, updated_at=func.now(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def refresh(self, attempt: TestAttempt) -> TestAttempt:
        self.db.refresh(attempt)
        return attempt

    def list_attempts(
        self,
        *,
        page: int,
        page_size: int,
        user_id: UUID | None = None,
        test_id: UUID | None = None,
        status_filter: str | None = None,
    ) -> tuple[list[TestAttempt], int]:
        base = select(TestAttempt)
        if user_id:
            base = base.where(TestAttempt.user_id == user_id)
        if test_id:
            base = base.where(TestAttempt.test_id == test_id)
        if status_filter:
            base = base.where(TestAttempt.status == status_filter)
        total = self.db.scalar(select(func.count()).select_from(base.subquery()))
        items = self.db.scalars(
            base.order_by(TestAttempt.start_time.desc()).offset((page - 1) * page_size).limit(page_size)
        ).all()
        return list(items), int(total or 0)

    def list_in_progress_attempts(self, *, started_before: datetime) -> list[TestAttempt]:
        return list(
            self.db.scalars(
                select(TestAttempt)
                .where(TestAttempt.status == ATTEMPT_STATUS_IN_PROGRESS, TestAttempt.start_time <= started_before)
                .order_by(TestAttempt.start_time.asc())
            ).all()
        )

    def add_retake_grant(self, *, user_id: UUID, test_id: UUID, granted_by: UUID) -> AttemptRetakeGrant:
        grant = AttemptRetakeGrant(user_id=user_id, test_id=test_id, granted_by=granted_by)
        self.db.add(grant)
        self.db.flush()
        return grant

    def find_open_retake_grant(self, user_id: UUID, test_id: UUID) -> AttemptRetakeGrant | None:
        return self.db.scalar(
            select(AttemptRetakeGrant)
            .where(
                AttemptRetakeGrant.user_id == user_id,
                AttemptRetakeGrant.test_id == test_id,
                AttemptRetakeGrant.consumed_at.is_(None),
            )
            .order_by(AttemptRetakeGrant.created_at.asc())
            .limit(1)
        )

    def consume_retake_grant(self, grant_id: UUID, *, attempt_id: UUID, consumed_at: datetime) -> bool:
        result = self.db.execute(
            update(AttemptRetakeGrant)
            .where(AttemptRetakeGrant.id == grant_id, AttemptRetakeGrant.consumed_at.is_(None))
            .values(consumed_at=consumed_at, consumed_attempt_id=attempt_id, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

