from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.clock import Clock
from app.core.errors import InvalidState, NotFound
from app.core.identity import AuthenticatedIdentity
from app.models.constants import ATTEMPT_STATUS_IN_PROGRESS
from app.models.exam import TestAttempt
from app.repositories.attempt_repository import AttemptRepository
from app.services import catalog_service
from app.services.attempt_service import get_owned_attempt, get_remaining_time


logger = logging.getLogger(__name__)


def upsert_answers(db: Session, repo: AttemptRepository, attempt: TestAttempt, answers: Mapping[UUID, str]) -> None:
    known = catalog_service.question_ids_for_test(db, attempt.test_id)
    unknown = [question_id for question_id in answers if question_id not in known]
    if unknown:
        raise NotFound('Question not found')

    # Stable key order keeps concurrent upserts on the same attempt from deadlocking.
    for question_id in sorted(answers, key=str):
        repo.upsert_answer(attempt_id=attempt.id, question_id=question_id, answer=answers[question_id])


def save_answers(
    db: Session,
    *,
    identity: AuthenticatedIdentity,
    attempt_id: UUID,
    answers: Mapping[UUID, str],
    clock: Clock,
) -> None:
    """
    Idempotent autosave: every pair overwrites the row keyed by (attempt, question).

    Grades and attempt status are left untouched; replaying the same payload
    leaves storage exactly as one delivery would.
    """
    repo = AttemptRepository(db)
    attempt = get_owned_attempt(repo, identity, attempt_id, for_update=True)
    if attempt.status != ATTEMPT_STATUS_IN_PROGRESS:
        raise InvalidState('Attempt is not editable', reason=attempt.status)

    config = catalog_service.load_test_configuration(db, attempt.test_id)
    if get_remaining_time(attempt, config, clock.now()) <= timedelta(0):
        raise InvalidState('Attempt time has elapsed', reason='expired')

    upsert_answers(db, repo, attempt, answers)
    logger.debug('Autosaved %s answers for attempt %s', len(answers), attempt.id)


def get_answers(db: Session, *, identity: AuthenticatedIdentity, attempt_id: UUID) -> dict[UUID, str]:
    repo = AttemptRepository(db)
    attempt = get_owned_attempt(repo, identity, attempt_id, allow_admin=True)
    return repo.answers_by_question(attempt.id)
