"""Opname entry / records REST router – prefix=/api/opname"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import FileResponse

from core.db import (
    get_db,
    get_asset,
    create_opname_record,
    delete_opname_record,
    get_opname_record,
    list_opname_records,
    opname_row_to_dict,
    opname_rows_to_dicts,
)
from core.deps import get_current_user, require_admin, require_auditor
from models.opname_model import OpnameRecordOut
from services.opname_filters import Condition, Presence, filter_records, parse_currency
from services.photo_storage import PhotoRejectedError, PhotoStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/opname", tags=["opname"])

# ─────────────────────────── helpers ──────────────────────────────
def get_photo_storage(request: Request) -> PhotoStorage:
    return request.app.state.photo_storage


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _record_or_404(db: sqlite3.Connection, record_id: int) -> dict:
    row = get_opname_record(db, record_id)
    if not row:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Opname record {record_id} not found")
    return opname_row_to_dict(row)

# ① input form ---------------------------------------------------------
@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=OpnameRecordOut,
    dependencies=[Depends(require_auditor)],
)
async def submit_opname(
    asset_id: int = Form(...),
    keterangan: Optional[str] = Form(None),
    status_aktiva: Optional[str] = Form(None, alias="status"),
    h_perolehan: str = Form(""),
    nilai_buku: str = Form(""),
    photo: Optional[UploadFile] = File(None),
    db: sqlite3.Connection = Depends(get_db),
    storage: PhotoStorage = Depends(get_photo_storage),
):
    asset = get_asset(db, asset_id)
    if not asset:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Silakan pilih asset terlebih dahulu")

    # every missing field is reported at once
    errors = {}
    if keterangan not in (Presence.ADA.value, Presence.TIDAK_ADA.value):
        errors["keterangan"] = "Keterangan (Ada/Tidak Ada) wajib dipilih"
    if status_aktiva not in (Condition.BAGUS.value, Condition.RUSAK.value):
        errors["status"] = "Status (Bagus/Rusak) wajib dipilih"
    content = await photo.read() if photo is not None else b""
    if not content:
        errors["image"] = "Foto asset wajib diupload"
    if errors:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "\n".join(errors.values()), "errors": errors},
        )

    # photo first, then the record
    try:
        image_url = storage.save(content, photo.filename or "photo")
    except PhotoRejectedError as e:
        logger.warning(f"⚠️ Photo rejected for asset {asset_id}: {e}")
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Upload gagal: {e}")

    record = {
        "asset_id": asset_id,
        "keterangan_ada": int(keterangan == Presence.ADA.value),
        "keterangan_tidak_ada": int(keterangan == Presence.TIDAK_ADA.value),
        "status_bagus": int(status_aktiva == Condition.BAGUS.value),
        "status_rusak": int(status_aktiva == Condition.RUSAK.value),
        "h_perolehan": parse_currency(h_perolehan),
        "nilai_buku": parse_currency(nilai_buku),
        "image_url": image_url,
        "created_at": _now_iso(),
    }
    try:
        row = create_opname_record(db, record)
    except sqlite3.Error as e:
        logger.error(f"❌ Save failed for asset {asset_id}: {e}")
        storage.remove_by_url(image_url)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Save failed: {e}")

    logger.info(f"✅ Opname saved for asset {asset_id} ({asset['name']})")
    return opname_row_to_dict(row)

# ② records list (delete page search) ------------------------------------
@router.get("", response_model=List[OpnameRecordOut], dependencies=[Depends(get_current_user)])
def list_records(
    q: str = Query("", max_length=200),
    db: sqlite3.Connection = Depends(get_db),
):
    records = opname_rows_to_dicts(list_opname_records(db))
    return filter_records(records, q=q or None)

# ③ photos (public, like the original bucket URLs) ------------------------
@router.get("/photos/{filename}")
def photo_file(filename: str, storage: PhotoStorage = Depends(get_photo_storage)):
    path = storage.path_for(filename)
    if path is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Photo not found")
    return FileResponse(path)


@router.get("/{record_id}", response_model=OpnameRecordOut, dependencies=[Depends(get_current_user)])
def read_record(record_id: int, db: sqlite3.Connection = Depends(get_db)):
    return _record_or_404(db, record_id)

# ④ delete so the asset can be re-entered ---------------------------------
@router.delete("/{record_id}", dependencies=[Depends(require_admin)])
def remove_record(
    record_id: int,
    db: sqlite3.Connection = Depends(get_db),
    storage: PhotoStorage = Depends(get_photo_storage),
):
    record = _record_or_404(db, record_id)

    storage.remove_by_url(record["image_url"])
    if not delete_opname_record(db, record_id):
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Opname record {record_id} not found")

    name = record["asset"]["name"]
    logger.info(f"🗑️ Opname record {record_id} deleted ({name})")
    return {
        "status": "success",
        "message": f'Data opname untuk "{name}" berhasil dihapus!',
    }
