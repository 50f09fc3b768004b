from app.services import (
    attempt_service,
    audit_service,
    autosave_service,
    catalog_service,
    grading_service,
)

__all__ = [
    'attempt_service',
    'audit_service',
    'autosave_service',
    'catalog_service',
    'grading_service',
]
