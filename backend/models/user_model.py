# backend/models/user_model.py
from typing import Literal, Optional
from pydantic import BaseModel, Field

RoleName = Literal["admin", "auditor", "viewer"]

# -------- account as listed to admins --------
class UserOut(BaseModel):
    id:        int
    username:  str
    role:      RoleName
    is_active: bool

# -------- create (new accounts default to read-only) --------
class UserCreate(BaseModel):
    username: str = Field(..., min_length=2, max_length=64)
    password: str = Field(..., min_length=4)
    role:     RoleName = "viewer"

# -------- partial update; omitted fields stay as they are --------
class UserUpdate(BaseModel):
    username:  Optional[str] = Field(None, min_length=2, max_length=64)
    password:  Optional[str] = Field(None, min_length=4)
    role:      Optional[RoleName] = None
    is_active: Optional[bool] = None
