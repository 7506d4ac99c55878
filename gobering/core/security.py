"""Bearer tokens for professionals and random tokens for emailed links."""

import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from gobering.core.config import settings

PROFESSIONAL_ACTOR = "professional"


def create_access_token(
    subject: str,
    actor_type: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign a JWT for ``subject`` acting as ``actor_type``.

    Login lives outside this service; the issuing side and the tests use
    this to mint tokens the API accepts.
    """
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        "sub": subject,
        "actor_type": actor_type,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def create_professional_token(professional_id: str) -> str:
    return create_access_token(professional_id, PROFESSIONAL_ACTOR)


def decode_access_token(token: str) -> dict | None:
    """Return the verified claims, or None for a bad or expired token."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def generate_link_token() -> str:
    """Unguessable token for emailed cancellation and priority links."""
    return secrets.token_urlsafe(32)
