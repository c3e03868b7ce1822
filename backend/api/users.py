# backend/api/users.py
"""Account administration – prefix=/api/users (admin only)"""
import logging
import sqlite3
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from core.db import (
    get_db,
    list_users,
    get_user_by_id,
    get_user_by_username,
    count_active_admins,
    create_user,
    update_user,
    delete_user,
)
from core.deps import User, require_admin
from core.security import hash_password
from models.user_model import UserCreate, UserOut, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _username_free(db: sqlite3.Connection, username: str, uid: int | None = None) -> None:
    existing = get_user_by_username(db, username)
    if existing and existing["id"] != uid:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Username already exists")


def _keeps_an_admin(db: sqlite3.Connection, target: sqlite3.Row, *, removing: bool) -> None:
    """Refuse the change when it would leave no active admin."""
    if target["role"] == "admin" and target["is_active"] and removing:
        if count_active_admins(db) <= 1:
            raise HTTPException(status.HTTP_409_CONFLICT, "At least one active admin is required")


@router.get("/", response_model=List[UserOut])
def get_users(db: sqlite3.Connection = Depends(get_db), _: User = Depends(require_admin)):
    return [dict(r) for r in list_users(db)]


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=UserOut)
def add_user(
    payload: UserCreate,
    db: sqlite3.Connection = Depends(get_db),
    admin: User = Depends(require_admin),
):
    _username_free(db, payload.username)
    row = create_user(db, payload.username, hash_password(payload.password), payload.role)
    logger.info(f"👤 {admin.username} created {payload.role} account '{payload.username}'")
    return dict(row)


@router.put("/{uid}", response_model=UserOut)
@router.patch("/{uid}", response_model=UserOut)
def edit_user(
    uid: int,
    payload: UserUpdate,
    db: sqlite3.Connection = Depends(get_db),
    admin: User = Depends(require_admin),
):
    target = get_user_by_id(db, uid)
    if not target:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")

    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Nothing to update")

    if "username" in changes:
        _username_free(db, changes["username"], uid)
    demoted = changes.get("role", "admin") != "admin" or changes.get("is_active") is False
    _keeps_an_admin(db, target, removing=demoted)

    password = changes.pop("password", None)
    if password:
        changes["hashed_pw"] = hash_password(password)
    row = update_user(db, uid, **changes)
    logger.info(f"✏️ {admin.username} updated account {uid}: {sorted(changes)}")
    return dict(row)


@router.delete("/{uid}", status_code=status.HTTP_204_NO_CONTENT)
def remove_user(
    uid: int,
    db: sqlite3.Connection = Depends(get_db),
    admin: User = Depends(require_admin),
):
    target = get_user_by_id(db, uid)
    if not target:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")
    if target["id"] == admin.id:
        raise HTTPException(status.HTTP_409_CONFLICT, "You cannot delete your own account")
    _keeps_an_admin(db, target, removing=True)

    delete_user(db, uid)
    logger.info(f"🗑️ {admin.username} deleted account '{target['username']}'")
