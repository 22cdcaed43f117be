from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from collab_messaging.config import Settings, get_settings
from collab_messaging.utils.errors import AuthError


def decode_access_token(token: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
    settings = settings or get_settings()
    if not token:
        raise AuthError()
    try:
        return jwt.decode(token, settings.auth.jwt_secret, algorithms=[settings.auth.jwt_algorithm])
    except jwt.PyJWTError as exc:
        # expired, malformed and bad-signature tokens look the same to the caller
        raise AuthError() from exc


def identity_from_token(token: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    payload = decode_access_token(token, settings)
    for claim in settings.auth.user_id_claims:
        value = payload.get(claim)
        if value:
            return str(value)
    raise AuthError()


def create_access_token(user_id: str, settings: Optional[Settings] = None, expires_minutes: int = 60) -> str:
    """Issue a token the way the external auth service does. Used by tests and local tooling."""
    settings = settings or get_settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": user_id, "exp": expire}
    return jwt.encode(payload, settings.auth.jwt_secret, algorithm=settings.auth.jwt_algorithm)


def extract_bearer(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError()
    return authorization.split(" ", 1)[1].strip()
