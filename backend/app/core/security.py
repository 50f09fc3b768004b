from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from app.core.config import settings


ROLE_PARTICIPANT = 'participant'
ROLE_ADMIN = 'admin'
ROLE_VALUES = (ROLE_PARTICIPANT, ROLE_ADMIN)


class TokenDecodeError(Exception):
    pass


def create_access_token(subject: str, role: str, expires_delta: timedelta | None = None) -> str:
    """Issue a token carrying the identity this service consumes; login lives elsewhere."""
    data: dict[str, Any] = {'sub': subject, 'role': role, 'token_type': 'access'}
    expire = datetime.now(UTC) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    data.update({'exp': expire})
    return jwt.encode(data, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise TokenDecodeError('Invalid access token') from exc

    if payload.get('token_type') != 'access':
        raise TokenDecodeError('Unexpected token type for access token')
    if payload.get('role') not in ROLE_VALUES:
        raise TokenDecodeError('Unknown role in access token')
    return payload
