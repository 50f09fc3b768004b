from app.schemas.attempt import (
    AttemptAnswersIn,
    AttemptAnswersOut,
    AttemptListResponse,
    AttemptOut,
    AttemptStartIn,
    AttemptSubmitIn,
    AttemptSubmitOut,
    ExpireOverdueOut,
    ManualGradeIn,
    RetakeGrantIn,
    RetakeGrantOut,
)
from app.schemas.common import PaginationMeta

__all__ = [
    'AttemptAnswersIn',
    'AttemptAnswersOut',
    'AttemptListResponse',
    'AttemptOut',
    'AttemptStartIn',
    'AttemptSubmitIn',
    'AttemptSubmitOut',
    'ExpireOverdueOut',
    'ManualGradeIn',
    'PaginationMeta',
    'RetakeGrantIn',
    'RetakeGrantOut',
]
