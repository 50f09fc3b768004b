from __future__ import annotations


class ExamError(Exception):
    """
    Base for every failure the attempt lifecycle reports to callers.

    code:
      - unauthorized
      - forbidden
      - not_found
      - invalid_state
      - already_completed
      - already_submitted
      - out_of_window
      - invalid_input

    reason is an optional machine-readable refinement (e.g. ``not_yet_open``
    vs ``closed``) so clients can tell rejections of the same code apart.
    """

    code = 'exam_error'
    http_status = 400

    def __init__(self, message: str, *, reason: str | None = None):
        super().__init__(message)
        self.message = str(message)
        self.reason = reason

    def to_dict(self) -> dict[str, str | None]:
        return {'detail': self.message, 'code': self.code, 'reason': self.reason}


class Unauthorized(ExamError):
    code = 'unauthorized'
    http_status = 401


class Forbidden(ExamError):
    code = 'forbidden'
    http_status = 403

    def __init__(self, message: str = 'Forbidden', *, reason: str | None = None):
        super().__init__(message, reason=reason)


class NotFound(ExamError):
    code = 'not_found'
    http_status = 404


class InvalidState(ExamError):
    code = 'invalid_state'
    http_status = 409


class AlreadyCompleted(ExamError):
    code = 'already_completed'
    http_status = 409


class AlreadySubmitted(ExamError):
    code = 'already_submitted'
    http_status = 409


class OutOfWindow(ExamError):
    code = 'out_of_window'
    http_status = 400


class ValidationFailed(ExamError):
    code = 'invalid_input'
    http_status = 422
