from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import Clock, get_clock, get_identity
from app.core.identity import AuthenticatedIdentity
from app.db.session import get_db
from app.models.constants import ATTEMPT_STATUS_PASSED
from app.models.exam import TestAttempt
from app.schemas.attempt import (
    AttemptAnswersIn,
    AttemptAnswersOut,
    AttemptListResponse,
    AttemptOut,
    AttemptStartIn,
    AttemptSubmitIn,
    AttemptSubmitOut,
)
from app.schemas.common import PaginationMeta
from app.services import attempt_service, autosave_service, catalog_service
from app.services.attempt_service import SubmissionOutcome
from app.services.catalog_service import TestConfiguration


router = APIRouter(prefix='/attempts', tags=['attempts'])


def build_attempt_out(attempt: TestAttempt, config: TestConfiguration, clock: Clock) -> AttemptOut:
    remaining = attempt_service.get_remaining_time(attempt, config, clock.now())
    return AttemptOut.model_validate(attempt).model_copy(
        update={
            'deadline': attempt_service.attempt_deadline(attempt, config),
            'remaining_seconds': int(remaining.total_seconds()),
        }
    )


def build_submit_out(outcome: SubmissionOutcome) -> AttemptSubmitOut:
    result = outcome.result
    return AttemptSubmitOut(
        attempt_id=outcome.attempt.id,
        score=result.percentage,
        status=result.status,
        passed=result.status == ATTEMPT_STATUS_PASSED,
        expired=outcome.expired,
        earned_points=result.earned_points,
        total_points=result.total_points,
        correct_count=result.correct_count,
        pending_manual_count=result.pending_manual_count,
    )


@router.post('', response_model=AttemptOut, status_code=status.HTTP_201_CREATED)
def start_attempt(
    payload: AttemptStartIn,
    response: Response,
    db: Session = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_identity),
    clock: Clock = Depends(get_clock),
) -> AttemptOut:
    attempt, created = attempt_service.start_attempt(db, identity=identity, test_id=payload.test_id, clock=clock)
    db.commit()
    if not created:
        response.status_code = status.HTTP_200_OK
    config = catalog_service.load_test_configuration(db, attempt.test_id)
    return build_attempt_out(attempt, config, clock)


@router.get('', response_model=AttemptListResponse)
def list_attempts(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    user_id: UUID | None = Query(default=None),
    test_id: UUID | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_identity),
) -> AttemptListResponse:
    items, total = attempt_service.list_attempts(
        db,
        identity=identity,
        page=page,
        page_size=page_size,
        user_id=user_id,
        test_id=test_id,
        status_filter=status_filter,
    )
    return AttemptListResponse(
        items=[AttemptOut.model_validate(item) for item in items],
        meta=PaginationMeta(page=page, page_size=page_size, total=total),
    )


@router.get('/{attempt_id}', response_model=AttemptOut)
def get_attempt(
    attempt_id: UUID,
    db: Session = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_identity),
    clock: Clock = Depends(get_clock),
) -> AttemptOut:
    attempt, config, _ = attempt_service.get_attempt(db, identity=identity, attempt_id=attempt_id, clock=clock)
    db.commit()
    return build_attempt_out(attempt, config, clock)


@router.get('/{attempt_id}/answers', response_model=AttemptAnswersOut)
def get_answers(
    attempt_id: UUID,
    db: Session = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_identity),
) -> AttemptAnswersOut:
    answers = autosave_service.get_answers(db, identity=identity, attempt_id=attempt_id)
    return AttemptAnswersOut(answers=answers)


@router.put('/{attempt_id}/answers', status_code=status.HTTP_204_NO_CONTENT)
def save_answers(
    attempt_id: UUID,
    payload: AttemptAnswersIn,
    db: Session = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_identity),
    clock: Clock = Depends(get_clock),
) -> Response:
    autosave_service.save_answers(db, identity=identity, attempt_id=attempt_id, answers=payload.answers, clock=clock)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post('/{attempt_id}/submit', response_model=AttemptSubmitOut)
def submit_attempt(
    attempt_id: UUID,
    payload: AttemptSubmitIn | None = None,
    db: Session = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(get_identity),
    clock: Clock = Depends(get_clock),
) -> AttemptSubmitOut:
    outcome = attempt_service.submit_attempt(
        db,
        identity=identity,
        attempt_id=attempt_id,
        final_answers=payload.answers if payload else None,
        clock=clock,
    )
    db.commit()
    return build_submit_out(outcome)
