# api/assets.py
from __future__ import annotations

import sqlite3
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from core.config import settings
from core.db import (
    get_db,
    get_asset,
    list_assets,
    list_pending_assets,
    list_opname_records_for_asset,
    opname_rows_to_dicts,
)
from core.deps import get_current_user
from models.asset_model import AssetOut
from models.opname_model import OpnameRecordOut
from services.opname_filters import search_assets

# ───────────────────────────────────────────────
# Router  →  every endpoint needs a logged-in user
# ───────────────────────────────────────────────
router = APIRouter(prefix="/assets", tags=["assets"], dependencies=[Depends(get_current_user)])


def _rows(rows) -> List[dict]:
    return [dict(r) for r in rows]


@router.get("", response_model=List[AssetOut])
def all_assets(db: sqlite3.Connection = Depends(get_db)):
    return _rows(list_assets(db))


@router.get("/search", response_model=List[AssetOut])
def search(q: str = Query("", max_length=200), db: sqlite3.Connection = Depends(get_db)):
    """
    Asset picker for the opname form.

    Returns nothing until `q` reaches the configured minimum length, then
    matches name, no_asset and merk (case-insensitive substring).
    """
    if len(q) < settings.ASSET_SEARCH_MIN_CHARS:
        return []
    return search_assets(_rows(list_assets(db)), q, settings.ASSET_SEARCH_MIN_CHARS)


@router.get("/pending", response_model=List[AssetOut])
def pending(db: sqlite3.Connection = Depends(get_db)):
    """Assets still waiting for their first opname record."""
    return _rows(list_pending_assets(db, settings.PENDING_ASSET_LIMIT))


@router.get("/{asset_id}")
def asset_detail(asset_id: int, db: sqlite3.Connection = Depends(get_db)):
    row = get_asset(db, asset_id)
    if not row:
        raise HTTPException(404, f"Asset {asset_id} not found")

    # newest record first; the first one is treated as current
    records = opname_rows_to_dicts(list_opname_records_for_asset(db, asset_id))
    return {
        "asset": AssetOut.model_validate(dict(row)),
        "current_opname": OpnameRecordOut.model_validate(records[0]) if records else None,
        "opname_count": len(records),
    }
