ATTEMPT_STATUS_IN_PROGRESS = 'in_progress'
ATTEMPT_STATUS_PASSED = 'passed'
ATTEMPT_STATUS_FAILED = 'failed'
ATTEMPT_STATUS_COMPLETED = 'completed'

ATTEMPT_STATUS_VALUES = [
    ATTEMPT_STATUS_IN_PROGRESS,
    ATTEMPT_STATUS_PASSED,
    ATTEMPT_STATUS_FAILED,
    ATTEMPT_STATUS_COMPLETED,
]
TERMINAL_ATTEMPT_STATUS_VALUES = [
    ATTEMPT_STATUS_PASSED,
    ATTEMPT_STATUS_FAILED,
    ATTEMPT_STATUS_COMPLETED,
]

AUTO_GRADED_QUESTION_KINDS = ['multiple_choice', 'true_false', 'short_answer']
