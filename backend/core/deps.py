"""
core/deps.py ── who is calling, and may they do this?
─────────────────────────────────────────────────────
Roles in the opname workflow:

    admin    catalog import, record delete, user administration
    auditor  field staff entering opname observations
    viewer   read-only (assets, records, report)
"""
from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, Literal

import sqlite3
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import BaseModel, ValidationError

from core.db import get_db, get_user_by_username, row_to_dict
from core.security import decode_token, verify_token_type

logger = logging.getLogger(__name__)

Role = Literal["admin", "auditor", "viewer"]

class TokenPayload(BaseModel):
    sub: str
    exp: int
    type: Literal["access", "refresh"]

class User(BaseModel):
    id: int
    username: str
    role: Role
    is_active: bool = True

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/auth/token",
    scheme_name="JWT",
    auto_error=False,
)

def http_exc(code: int, detail: str) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(status_code=code, detail=detail, headers=headers)

# ─────────────── token → payload ───────────────
def _access_payload(token: str | None) -> TokenPayload:
    if not token:
        raise http_exc(status.HTTP_401_UNAUTHORIZED, "Not authenticated")
    try:
        claims = decode_token(token)  # signature + exp
        payload = TokenPayload(**claims)
    except (JWTError, ValidationError) as e:
        logger.warning(f"🔑 Rejected token: {e}")
        raise http_exc(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not verify_token_type(claims, "access"):
        raise http_exc(status.HTTP_401_UNAUTHORIZED, "Invalid token type")
    return payload

# ─────────────── payload → account ───────────────
def load_account(db: sqlite3.Connection, username: str) -> Dict[str, Any] | None:
    """User row as a dict; a locked database surfaces as 503."""
    try:
        return row_to_dict(get_user_by_username(db, username))
    except sqlite3.OperationalError as e:
        if "locked" in str(e).lower():
            logger.warning(f"DB locked while loading account {username}")
            raise http_exc(status.HTTP_503_SERVICE_UNAVAILABLE, "Database temporarily unavailable")
        logger.error(f"DB error while loading account {username}: {e}")
        raise http_exc(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error")

def get_current_user(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    db: Annotated[sqlite3.Connection, Depends(get_db)],
) -> User:
    payload = _access_payload(token)
    account = load_account(db, payload.sub)
    if not account:
        logger.warning(f"Token for unknown user {payload.sub}")
        raise http_exc(status.HTTP_401_UNAUTHORIZED, "User not found")
    if not account["is_active"]:
        logger.warning(f"Token for inactive user {payload.sub}")
        raise http_exc(status.HTTP_401_UNAUTHORIZED, "User inactive")
    return User.model_validate(account)

# ─────────────── role gates ───────────────
def require_roles(*allowed: Role):
    allowed_set = frozenset(allowed)

    def checker(user: Annotated[User, Depends(get_current_user)]) -> User:
        if user.role not in allowed_set:
            logger.warning(f"🚫 {user.username} ({user.role}) needs one of {sorted(allowed_set)}")
            raise http_exc(status.HTTP_403_FORBIDDEN, "Insufficient permissions")
        return user

    checker.__name__ = f"require_{'_or_'.join(sorted(allowed_set))}"
    return checker

require_admin = require_roles("admin")
require_auditor = require_roles("admin", "auditor")
