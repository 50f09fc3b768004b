from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import Clock, get_clock, require_admin
from app.api.v1.endpoints.attempts import build_submit_out
from app.core.identity import AuthenticatedIdentity
from app.db.session import get_db
from app.schemas.attempt import (
    AttemptSubmitOut,
    ExpireOverdueOut,
    ManualGradeIn,
    RetakeGrantIn,
    RetakeGrantOut,
)
from app.services import attempt_service
from app.services.attempt_service import ManualScore


router = APIRouter(prefix='/admin', tags=['admin'])


@router.post('/attempts/{attempt_id}/grades', response_model=AttemptSubmitOut)
def grade_attempt(
    attempt_id: UUID,
    payload: ManualGradeIn,
    db: Session = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(require_admin),
    clock: Clock = Depends(get_clock),
) -> AttemptSubmitOut:
    scores = {item.question_id: ManualScore(score=item.score, is_correct=item.is_correct) for item in payload.grades}
    outcome = attempt_service.grade_manually(
        db, identity=identity, attempt_id=attempt_id, scores=scores, clock=clock
    )
    db.commit()
    return build_submit_out(outcome)


@router.post(
    '/tests/{test_id}/retake-grants',
    response_model=RetakeGrantOut,
    status_code=status.HTTP_201_CREATED,
)
def grant_retake(
    test_id: UUID,
    payload: RetakeGrantIn,
    db: Session = Depends(get_db),
    identity: AuthenticatedIdentity = Depends(require_admin),
) -> RetakeGrantOut:
    grant = attempt_service.grant_retake(db, identity=identity, test_id=test_id, user_id=payload.user_id)
    db.commit()
    return RetakeGrantOut.model_validate(grant)


@router.post('/attempts/expire-overdue', response_model=ExpireOverdueOut)
def expire_overdue(
    db: Session = Depends(get_db),
    _: AuthenticatedIdentity = Depends(require_admin),
    clock: Clock = Depends(get_clock),
) -> ExpireOverdueOut:
    expired_ids = attempt_service.expire_overdue_attempts(db, clock=clock)
    db.commit()
    return ExpireOverdueOut(expired_attempt_ids=expired_ids)
