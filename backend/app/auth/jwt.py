"""Supabase access-token verification (and minting, for tests and scripts)."""

from datetime import datetime, timedelta, timezone

from jose import jwt

from app.config import Settings, settings


def create_access_token(
    user_id: str,
    email: str | None = None,
    expires_delta: timedelta | None = None,
    config: Settings = settings,
) -> str:
    """Create an access token shaped like the ones Supabase Auth issues.

    Args:
        user_id: The user's UUID as a string (``sub`` claim).
        email: Optional ``email`` claim.
        expires_delta: Token lifetime. Defaults to one hour.
        config: Settings providing the signing secret and audience.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=1))
    claims = {
        "sub": user_id,
        "aud": config.supabase_jwt_audience,
        "role": "authenticated",
        "exp": expire,
        "iat": now,
    }
    if email is not None:
        claims["email"] = email
    return jwt.encode(claims, config.supabase_jwt_secret, algorithm=config.supabase_jwt_algorithm)


def decode_token(token: str, config: Settings = settings) -> dict:
    """Decode and verify a Supabase access token.

    Args:
        token: Encoded JWT string.
        config: Settings providing the signing secret and audience.

    Returns:
        Decoded payload dictionary.

    Raises:
        jose.JWTError: If the token is invalid, expired, or for another audience.
    """
    return jwt.decode(
        token,
        config.supabase_jwt_secret,
        algorithms=[config.supabase_jwt_algorithm],
        audience=config.supabase_jwt_audience,
    )
