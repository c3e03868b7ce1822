# core/security.py
from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from jose import jwt
from passlib.context import CryptContext
from core.config import settings
import secrets

# pbkdf2 keeps passlib independent of the bcrypt wheel
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
ALGORITHM = "HS256"
ISSUER = "opname-system"

def hash_password(pw: str) -> str:
    return pwd_context.hash(pw)

def verify_password(pw: str, hashed: str) -> bool:
    return pwd_context.verify(pw, hashed)

def _encode(claims: Dict[str, Any], lifetime: timedelta) -> str:
    issued = datetime.now(timezone.utc)
    body = {
        **claims,
        "iat": int(issued.timestamp()),
        "exp": issued + lifetime,
        "iss": ISSUER,
    }
    return jwt.encode(body, settings.SECRET_KEY, algorithm=ALGORITHM)

def create_access_token(sub: str, role: str) -> str:
    """Short-lived token carrying the role used by `require_roles`."""
    return _encode(
        {"sub": sub, "role": role, "type": "access"},
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )

def create_refresh_token(sub: str) -> str:
    # jti makes every rotated token distinct, even within one second
    return _encode(
        {"sub": sub, "type": "refresh", "jti": secrets.token_urlsafe(32)},
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )

def decode_token(token: str) -> Dict[str, Any]:
    """Checks signature and expiry only; `iss` is informational."""
    return jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[ALGORITHM],
        options={"verify_aud": False},
    )

def verify_token_type(payload: dict, expected_type: str) -> bool:
    return payload.get("type") == expected_type
