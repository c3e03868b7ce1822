# backend/models/auth_model.py
from pydantic import BaseModel

from models.user_model import RoleName

# -------- issued on login and on every refresh --------
class TokenResponse(BaseModel):
    access_token:  str
    refresh_token: str
    token_type:    str = "bearer"
    expires_in:    int              # seconds until the access token expires

class RefreshTokenRequest(BaseModel):
    refresh_token: str

# -------- the caller, as the UI shows it --------
class MeOut(BaseModel):
    username:  str
    role:      RoleName
    is_active: bool
