from app.models.audit import AuditLog
from app.models.exam import AttemptRetakeGrant, ExamQuestion, ExamTest, TestAttempt, TestAttemptAnswer

__all__ = [
    'AttemptRetakeGrant',
    'AuditLog',
    'ExamQuestion',
    'ExamTest',
    'TestAttempt',
    'TestAttemptAnswer',
]
