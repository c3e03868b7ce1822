# backend/models/asset_model.py
from typing import Optional
from pydantic import BaseModel

# -------- catalog row --------
class AssetOut(BaseModel):
    id:         int
    name:       str
    merk:       Optional[str] = None
    tahun:      Optional[int] = None
    no_asset:   Optional[str] = None
    pemakai:    Optional[str] = None
    site:       Optional[str] = None
    lokasi:     Optional[str] = None
    created_at: Optional[str] = None
    opnamed:    bool = False          # has at least one opname record
