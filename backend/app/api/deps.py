from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.clock import Clock, get_clock
from app.core.errors import Forbidden, Unauthorized
from app.core.identity import AuthenticatedIdentity
from app.core.security import TokenDecodeError, decode_access_token


bearer_scheme = HTTPBearer(auto_error=False)

__all__ = ['Clock', 'get_clock', 'get_identity', 'require_admin']


def get_identity(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> AuthenticatedIdentity:
    if credentials is None or not credentials.credentials:
        raise Unauthorized('Not authenticated')
    try:
        payload = decode_access_token(credentials.credentials)
        subject = payload.get('sub')
        if not subject:
            raise Unauthorized('Invalid access token subject')
        user_id = UUID(subject)
    except (TokenDecodeError, ValueError) as exc:
        raise Unauthorized('Invalid access token') from exc

    return AuthenticatedIdentity(user_id=user_id, role=payload['role'])


def require_admin(identity: AuthenticatedIdentity = Depends(get_identity)) -> AuthenticatedIdentity:
    if not identity.is_admin:
        raise Forbidden('Insufficient role permissions')
    return identity
