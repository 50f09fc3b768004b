from app.db.base_class import Base
from app.models.audit import AuditLog
from app.models.exam import (
    AttemptRetakeGrant,
    ExamQuestion,
    ExamTest,
    TestAttempt,
    TestAttemptAnswer,
)


__all__ = [
    'AttemptRetakeGrant',
    'AuditLog',
    'Base',
    'ExamQuestion',
    'ExamTest',
    'TestAttempt',
    'TestAttemptAnswer',
]
