"""FastAPI authentication dependencies for route protection."""

import uuid
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.auth.jwt import decode_token
from app.config import Settings, get_settings

# Missing tokens are reported as 401 by get_current_user, not 403 by the scheme
_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    """Identity extracted from a verified access token."""

    id: uuid.UUID
    email: str | None = None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    config: Settings = Depends(get_settings),
) -> CurrentUser:
    """Validate the Bearer token and return the authenticated identity.

    Raises:
        HTTPException 401: If the token is missing, invalid, expired, or has no subject.
        HTTPException 500: If no JWT secret is configured.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    if not config.supabase_jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication not configured",
        )

    try:
        payload = decode_token(credentials.credentials, config)
    except JWTError:
        raise credentials_exception from None

    sub: str | None = payload.get("sub")
    if sub is None:
        raise credentials_exception

    try:
        user_id = uuid.UUID(sub)
    except ValueError:
        raise credentials_exception from None

    return CurrentUser(id=user_id, email=payload.get("email"))
