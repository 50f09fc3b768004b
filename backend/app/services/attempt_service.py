from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.clock import Clock, ensure_utc
from app.core.errors import (
    AlreadyCompleted,
    AlreadySubmitted,
    Forbidden,
    InvalidState,
    NotFound,
    OutOfWindow,
    ValidationFailed,
)
from app.core.identity import AuthenticatedIdentity
from app.models.constants import (
    ATTEMPT_STATUS_COMPLETED,
    ATTEMPT_STATUS_IN_PROGRESS,
)
from app.models.exam import AttemptRetakeGrant, TestAttempt
from app.repositories.attempt_repository import AttemptRepository
from app.services import audit_service, catalog_service, grading_service
from app.services.catalog_service import TestConfiguration
from app.services.grading_service import GradeResult, ManuallyGraded


logger = logging.getLogger(__name__)

ENTITY_TYPE = 'test_attempt'


@dataclass(frozen=True)
class SubmissionOutcome:
    attempt: TestAttempt
    result: GradeResult
    expired: bool


@dataclass(frozen=True)
class ManualScore:
    score: float
    is_correct: bool | None = None


def attempt_deadline(attempt: TestAttempt, config: TestConfiguration) -> datetime:
    """The authoritative cutoff: whichever ends first, the personal budget or the test window."""
    start_time = ensure_utc(attempt.start_time)
    return min(start_time + timedelta(minutes=config.duration_minutes), config.end_window)


def get_remaining_time(attempt: TestAttempt, config: TestConfiguration, now: datetime) -> timedelta:
    if attempt.status != ATTEMPT_STATUS_IN_PROGRESS:
        return timedelta(0)
    remaining = attempt_deadline(attempt, config) - ensure_utc(now)
    return max(remaining, timedelta(0))


def ensure_within_window(config: TestConfiguration, now: datetime) -> None:
    if not config.is_active:
        raise OutOfWindow('Test is not active', reason='inactive')
    if now < config.start_window:
        raise OutOfWindow('Test has not opened yet', reason='not_yet_open')
    if now > config.end_window:
        raise OutOfWindow('Test window has closed', reason='closed')


def get_owned_attempt(
    repo: AttemptRepository,
    identity: AuthenticatedIdentity,
    attempt_id: UUID,
    *,
    for_update: bool = False,
    allow_admin: bool = False,
) -> TestAttempt:
    attempt = repo.get_attempt(attempt_id, for_update=for_update)
    if not attempt:
        raise NotFound('Attempt not found')
    if attempt.user_id != identity.user_id and not (allow_admin and identity.is_admin):
        raise Forbidden()
    return attempt


def start_attempt(
    db: Session, *, identity: AuthenticatedIdentity, test_id: UUID, clock: Clock
) -> tuple[TestAttempt, bool]:
    """Return ``(attempt, created)``; an in-progress attempt is resumed rather than duplicated."""
    repo = AttemptRepository(db)
    config = catalog_service.load_test_configuration(db, test_id)
    now = clock.now()
    ensure_within_window(config, now)

    existing = repo.find_active_attempt(identity.user_id, test_id)
    if existing:
        logger.info('Resuming attempt %s for user %s', existing.id, identity.user_id)
        return existing, False

    grant = None
    finished = repo.find_terminal_attempt(identity.user_id, test_id)
    if finished:
        grant = repo.find_open_retake_grant(identity.user_id, test_id)
        if not grant:
            raise AlreadyCompleted('Test already completed', reason=finished.status)

    attempt, created = repo.insert_attempt(user_id=identity.user_id, test_id=test_id, start_time=now)
    if not created:
        return attempt, False

    if grant and not repo.consume_retake_grant(grant.id, attempt_id=attempt.id, consumed_at=now):
        raise AlreadyCompleted('Retake authorization was already used', reason='retake_consumed')

    audit_service.log_action(
        db,
        actor_user_id=identity.user_id,
        action='attempt.start',
        entity_type=ENTITY_TYPE,
        entity_id=attempt.id,
        details={'test_id': test_id, 'retake_grant_id': grant.id if grant else None},
    )
    logger.info('Started attempt %s for user %s on test %s', attempt.id, identity.user_id, test_id)
    return attempt, True


def _finalize(
    db: Session,
    repo: AttemptRepository,
    attempt: TestAttempt,
    config: TestConfiguration,
    *,
    now: datetime,
    expired: bool,
    actor_user_id: UUID | None,
) -> SubmissionOutcome:
    questions = catalog_service.load_question_snapshots(db, attempt.test_id)
    answers = repo.answers_by_question(attempt.id)
    result = grading_service.grade(answers, questions, config)

    end_time = attempt_deadline(attempt, config) if expired else now
    won = repo.compare_and_swap_status(
        attempt.id,
        expected=ATTEMPT_STATUS_IN_PROGRESS,
        new_status=result.status,
        end_time=end_time,
        score=result.percentage,
        earned_points=result.earned_points,
        total_points=result.total_points,
        expired=expired,
    )
    if not won:
        logger.warning('Attempt %s was finalized concurrently; rejecting duplicate submission', attempt.id)
        raise AlreadySubmitted('Attempt already submitted')

    for graded in result.graded_answers:
        if not graded.answered:
            continue
        is_correct, score = grading_service.to_columns(graded.grade)
        repo.set_answer_grade(attempt_id=attempt.id, question_id=graded.question_id, is_correct=is_correct, score=score)

    audit_service.log_action(
        db,
        actor_user_id=actor_user_id,
        action='attempt.expire' if expired else 'attempt.submit',
        entity_type=ENTITY_TYPE,
        entity_id=attempt.id,
        details={
            'status': result.status,
            'score': result.percentage,
            'earned_points': result.earned_points,
            'total_points': result.total_points,
            'pending_manual': result.pending_manual_count,
        },
    )
    repo.refresh(attempt)
    logger.info(
        'Attempt %s finalized as %s with %s%% (%s/%s points, expired=%s)',
        attempt.id,
        result.status,
        result.percentage,
        result.earned_points,
        result.total_points,
        expired,
    )
    return SubmissionOutcome(attempt=attempt, result=result, expired=expired)


def force_expire(
    db: Session, attempt: TestAttempt, *, clock: Clock, actor_user_id: UUID | None = None
) -> SubmissionOutcome:
    """Submit with whatever answers are persisted; used once the deadline has passed."""
    if attempt.status != ATTEMPT_STATUS_IN_PROGRESS:
        raise AlreadySubmitted('Attempt already submitted')
    repo = AttemptRepository(db)
    config = catalog_service.load_test_configuration(db, attempt.test_id)
    return _finalize(db, repo, attempt, config, now=clock.now(), expired=True, actor_user_id=actor_user_id)


def submit_attempt(
    db: Session,
    *,
    identity: AuthenticatedIdentity,
    attempt_id: UUID,
    final_answers: Mapping[UUID, str] | None,
    clock: Clock,
) -> SubmissionOutcome:
    repo = AttemptRepository(db)
    attempt = get_owned_attempt(repo, identity, attempt_id, for_update=True)
    if attempt.status != ATTEMPT_STATUS_IN_PROGRESS:
        raise AlreadySubmitted('Attempt already submitted', reason=attempt.status)

    config = catalog_service.load_test_configuration(db, attempt.test_id)
    now = clock.now()
    expired = get_remaining_time(attempt, config, now) <= timedelta(0)

    if expired:
        if final_answers:
            logger.info('Discarding %s late answers for expired attempt %s', len(final_answers), attempt.id)
    elif final_answers:
        # Local import to avoid circular dependency.
        from app.services import autosave_service

        autosave_service.upsert_answers(db, repo, attempt, final_answers)

    return _finalize(db, repo, attempt, config, now=now, expired=expired, actor_user_id=identity.user_id)


def get_attempt(
    db: Session, *, identity: AuthenticatedIdentity, attempt_id: UUID, clock: Clock
) -> tuple[TestAttempt, TestConfiguration, timedelta]:
    """Owner or admin view; an in-progress attempt whose time ran out is expired on read."""
    repo = AttemptRepository(db)
    attempt = get_owned_attempt(repo, identity, attempt_id, allow_admin=True)
    config = catalog_service.load_test_configuration(db, attempt.test_id)
    now = clock.now()
    remaining = get_remaining_time(attempt, config, now)
    if attempt.status == ATTEMPT_STATUS_IN_PROGRESS and remaining <= timedelta(0):
        try:
            attempt = force_expire(db, attempt, clock=clock, actor_user_id=None).attempt
        except AlreadySubmitted:
            logger.info('Attempt %s was finalized concurrently while being read', attempt.id)
            attempt = repo.get_attempt(attempt.id)
    return attempt, config, remaining


def list_attempts(
    db: Session,
    *,
    identity: AuthenticatedIdentity,
    page: int,
    page_size: int,
    user_id: UUID | None,
    test_id: UUID | None,
    status_filter: str | None,
) -> tuple[list[TestAttempt], int]:
    effective_user_id = user_id if identity.is_admin else identity.user_id
    return AttemptRepository(db).list_attempts(
        page=page,
        page_size=page_size,
        user_id=effective_user_id,
        test_id=test_id,
        status_filter=status_filter,
    )


def expire_overdue_attempts(db: Session, *, clock: Clock) -> list[UUID]:
    repo = AttemptRepository(db)
    now = clock.now()
    configs: dict[UUID, TestConfiguration] = {}
    expired_ids: list[UUID] = []

    for candidate in repo.list_in_progress_attempts(started_before=now):
        attempt = repo.get_attempt(candidate.id, for_update=True)
        if attempt is None or attempt.status != ATTEMPT_STATUS_IN_PROGRESS:
            continue
        config = configs.get(attempt.test_id)
        if config is None:
            config = catalog_service.load_test_configuration(db, attempt.test_id)
            configs[attempt.test_id] = config
        if get_remaining_time(attempt, config, now) > timedelta(0):
            continue
        try:
            _finalize(db, repo, attempt, config, now=now, expired=True, actor_user_id=None)
        except AlreadySubmitted:
            continue
        expired_ids.append(attempt.id)

    if expired_ids:
        logger.info('Expired %s overdue attempts', len(expired_ids))
    return expired_ids


def grant_retake(
    db: Session, *, identity: AuthenticatedIdentity, test_id: UUID, user_id: UUID
) -> AttemptRetakeGrant:
    """Record an external re-authorization; the next start after a finished attempt consumes it."""
    if not identity.is_admin:
        raise Forbidden()
    catalog_service.load_test_configuration(db, test_id)
    grant = AttemptRepository(db).add_retake_grant(user_id=user_id, test_id=test_id, granted_by=identity.user_id)
    audit_service.log_action(
        db,
        actor_user_id=identity.user_id,
        action='attempt.retake_grant',
        entity_type='attempt_retake_grant',
        entity_id=grant.id,
        details={'test_id': test_id, 'user_id': user_id},
    )
    return grant


def grade_manually(
    db: Session,
    *,
    identity: AuthenticatedIdentity,
    attempt_id: UUID,
    scores: Mapping[UUID, ManualScore],
    clock: Clock,
) -> SubmissionOutcome:
    """
    Fold reviewer scores for manually graded questions into a ``completed`` attempt.

    Once no question is left pending the attempt moves to passed/failed; until
    then the stored percentage is provisional and the status stays ``completed``.
    Manually graded questions the participant left blank score zero here.
    """
    if not identity.is_admin:
        raise Forbidden()
    repo = AttemptRepository(db)
    attempt = repo.get_attempt(attempt_id, for_update=True)
    if not attempt:
        raise NotFound('Attempt not found')
    if attempt.status != ATTEMPT_STATUS_COMPLETED:
        raise InvalidState('Only attempts awaiting manual grading can be graded', reason=attempt.status)

    config = catalog_service.load_test_configuration(db, attempt.test_id)
    questions = {question.id: question for question in catalog_service.load_question_snapshots(db, attempt.test_id)}
    rows = {row.question_id: row for row in repo.list_answers(attempt.id)}

    for question_id, manual in scores.items():
        question = questions.get(question_id)
        if question is None or question_id not in rows:
            raise NotFound('Answer not found for question')
        if question.auto_gradable:
            raise ValidationFailed('Automatically graded questions cannot be scored manually', reason='auto_graded')
        if manual.score < 0 or manual.score > question.points:
            raise ValidationFailed('Score must be between 0 and the question points', reason='score_out_of_range')

    grades: dict[UUID, grading_service.Grade] = {}
    for question in questions.values():
        row = rows.get(question.id)
        if question.id in scores:
            manual = scores[question.id]
            grades[question.id] = ManuallyGraded(correct=manual.is_correct, points=manual.score)
        elif row is None and not question.auto_gradable:
            grades[question.id] = ManuallyGraded(correct=False, points=0)
        elif row is None:
            grades[question.id] = grading_service.grade_question(question, None)
        else:
            grades[question.id] = grading_service.from_columns(question, row.is_correct, row.score)

    answers = {question_id: row.answer for question_id, row in rows.items()}
    result = grading_service.summarize(answers, grades, list(questions.values()), config)

    won = repo.compare_and_swap_status(
        attempt.id,
        expected=ATTEMPT_STATUS_COMPLETED,
        new_status=result.status,
        score=result.percentage,
        earned_points=result.earned_points,
        total_points=result.total_points,
    )
    if not won:
        raise InvalidState('Attempt was graded concurrently', reason='concurrent_grade')

    for question_id in scores:
        is_correct, score = grading_service.to_columns(grades[question_id])
        repo.set_answer_grade(attempt_id=attempt.id, question_id=question_id, is_correct=is_correct, score=score)

    audit_service.log_action(
        db,
        actor_user_id=identity.user_id,
        action='attempt.manual_grade',
        entity_type=ENTITY_TYPE,
        entity_id=attempt.id,
        details={
            'status': result.status,
            'score': result.percentage,
            'graded_questions': list(scores.keys()),
            'graded_at': clock.now(),
        },
    )
    repo.refresh(attempt)
    return SubmissionOutcome(attempt=attempt, result=result, expired=attempt.expired)
