from dataclasses import dataclass
from uuid import UUID

from app.core.security import ROLE_ADMIN


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """The resolved caller; token parsing never happens below the API layer."""

    user_id: UUID
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
