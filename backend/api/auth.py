"""Login / token rotation REST router – prefix=/api/auth"""
import logging
import sqlite3

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError

from core.config import settings
from core.db import (
    get_db, get_user_by_username,
    save_refresh_token, get_refresh_token,
    delete_refresh_token, delete_user_refresh_tokens,
)
from core.deps import User, get_current_user
from core.security import (
    verify_password, create_access_token,
    create_refresh_token, decode_token, verify_token_type,
)
from models.auth_model import MeOut, RefreshTokenRequest, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _issue_tokens(db: sqlite3.Connection, account: sqlite3.Row) -> dict:
    """New access + refresh pair; the refresh token is remembered for rotation."""
    refresh = create_refresh_token(sub=account["username"])
    save_refresh_token(db, account["id"], refresh, settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return {
        "access_token": create_access_token(sub=account["username"], role=account["role"]),
        "refresh_token": refresh,
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }


@router.post("/token", response_model=TokenResponse)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: sqlite3.Connection = Depends(get_db),
):
    account = get_user_by_username(db, form_data.username)
    if not account or not verify_password(form_data.password, account["hashed_password"]):
        logger.warning(f"🔒 Failed login for '{form_data.username}'")
        raise _unauthorized("Incorrect username or password")
    if not account["is_active"]:
        raise _unauthorized("User account is inactive")

    logger.info(f"🔓 {account['username']} ({account['role']}) logged in")
    return _issue_tokens(db, account)


@router.post("/refresh", response_model=TokenResponse)
def refresh(body: RefreshTokenRequest, db: sqlite3.Connection = Depends(get_db)):
    try:
        claims = decode_token(body.refresh_token)
    except JWTError:
        raise _unauthorized("Invalid refresh token")
    if not verify_token_type(claims, "refresh"):
        raise _unauthorized("Invalid refresh token")

    # rotated or logged-out tokens are no longer on record
    if not get_refresh_token(db, body.refresh_token):
        raise _unauthorized("Refresh token not found or expired")

    account = get_user_by_username(db, claims.get("sub"))
    if not account or not account["is_active"]:
        raise _unauthorized("User not found or inactive")

    delete_refresh_token(db, body.refresh_token)
    return _issue_tokens(db, account)


@router.post("/logout")
def logout(
    current_user: User = Depends(get_current_user),
    db: sqlite3.Connection = Depends(get_db),
):
    delete_user_refresh_tokens(db, current_user.id)
    logger.info(f"👋 {current_user.username} logged out")
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=MeOut)
def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user
