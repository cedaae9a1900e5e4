import os
import time
from typing import Optional, Dict, Any

import jwt
from flask import current_app, has_app_context

ISSUER = "betwise"
DEFAULT_TTL_SECONDS = 60 * 60 * 24 * 7


def _setting(name: str, default):
    if has_app_context():
        value = current_app.config.get(name)
        if value:
            return value
    return os.getenv(name) or default


def create_access_token(user_id: int, ttl_seconds: Optional[int] = None) -> str:
    now = int(time.time())
    ttl = int(ttl_seconds or _setting("JWT_ACCESS_TTL_SECONDS", DEFAULT_TTL_SECONDS))
    payload = {
        "sub": str(user_id),
        "iss": ISSUER,
        "iat": now,
        "exp": now + ttl,
        "type": "access",
    }
    return jwt.encode(payload, _setting("SECRET_KEY", "dev-secret-change-me"), algorithm="HS256")


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Claims of a valid, unexpired BetWise token; None for anything else."""
    try:
        return jwt.decode(
            token,
            _setting("SECRET_KEY", "dev-secret-change-me"),
            algorithms=["HS256"],
            issuer=ISSUER,
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError:
        return None


def get_bearer_token(auth_header: str) -> Optional[str]:
    if not auth_header:
        return None
    scheme, _, token = auth_header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip() or " " in token.strip():
        return None
    return token.strip()
