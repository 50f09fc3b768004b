from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.clock import ensure_utc
from app.schemas.common import BaseSchema, PaginatedResponse


class AttemptStartIn(BaseModel):
    test_id: UUID


class AttemptAnswersIn(BaseModel):
    answers: dict[UUID, str] = Field(default_factory=dict)


class AttemptSubmitIn(BaseModel):
    answers: dict[UUID, str] | None = None


class AttemptOut(BaseSchema):
    id: UUID
    user_id: UUID
    test_id: UUID
    status: str
    start_time: datetime
    end_time: datetime | None
    score: int | None
    earned_points: float | None
    total_points: float | None
    expired: bool
    deadline: datetime | None = None
    remaining_seconds: int | None = None

    @field_validator('start_time', 'end_time', 'deadline')
    @classmethod
    def as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class AttemptAnswersOut(BaseModel):
    answers: dict[UUID, str]


class AttemptSubmitOut(BaseModel):
    attempt_id: UUID
    score: int
    status: str
    passed: bool
    expired: bool
    earned_points: float
    total_points: float
    correct_count: int
    pending_manual_count: int


AttemptListResponse = PaginatedResponse[AttemptOut]


class ManualGradeItem(BaseModel):
    question_id: UUID
    score: float = Field(ge=0)
    is_correct: bool | None = None


class ManualGradeIn(BaseModel):
    grades: list[ManualGradeItem] = Field(default_factory=list)


class RetakeGrantIn(BaseModel):
    user_id: UUID


class RetakeGrantOut(BaseSchema):
    id: UUID
    user_id: UUID
    test_id: UUID
    granted_by: UUID | None
    consumed_at: datetime | None
    consumed_attempt_id: UUID | None
    created_at: datetime

    @field_validator('consumed_at', 'created_at')
    @classmethod
    def as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class ExpireOverdueOut(BaseModel):
    expired_attempt_ids: list[UUID]
