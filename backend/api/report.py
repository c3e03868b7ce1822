"""Opname report REST router – prefix=/api/report"""
from __future__ import annotations

import sqlite3
from datetime import datetime
from io import BytesIO
from typing import Dict, List, Optional

import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from core.db import get_db, list_opname_records, opname_rows_to_dicts
from core.deps import get_current_user
from models.opname_model import ReportOut
from services.opname_filters import Condition, Presence, filter_records, summarize

router = APIRouter(prefix="/report", tags=["report"], dependencies=[Depends(get_current_user)])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _filtered(
    db: sqlite3.Connection,
    q: Optional[str],
    site: Optional[str],
    lokasi: Optional[str],
    presence: Optional[Presence],
    condition: Optional[Condition],
) -> List[Dict]:
    records = opname_rows_to_dicts(list_opname_records(db))
    return filter_records(
        records, q=q, site=site, lokasi=lokasi, presence=presence, condition=condition
    )


def _mark(flag: bool) -> str:
    return "✓" if flag else ""


@router.get("", response_model=ReportOut)
def report(
    q: Optional[str] = Query(None, max_length=200),
    site: Optional[str] = Query(None, max_length=100),
    lokasi: Optional[str] = Query(None, max_length=100),
    presence: Optional[Presence] = Query(None),
    condition: Optional[Condition] = Query(None),
    db: sqlite3.Connection = Depends(get_db),
):
    """
    Opname records, newest first, with summary totals.

    **Filters** (all optional, combined with AND)
    • `q`: matches name / merk / no_asset / pemakai / site / lokasi
    • `site`, `lokasi`: substring match on that column only
    • `presence`: `ada` | `tidak_ada` | `unset`
    • `condition`: `bagus` | `rusak` | `unset`
    """
    records = _filtered(db, q, site, lokasi, presence, condition)
    return {"summary": summarize(records), "records": records}


@router.get("/export")
def export_report(
    q: Optional[str] = Query(None, max_length=200),
    site: Optional[str] = Query(None, max_length=100),
    lokasi: Optional[str] = Query(None, max_length=100),
    presence: Optional[Presence] = Query(None),
    condition: Optional[Condition] = Query(None),
    db: sqlite3.Connection = Depends(get_db),
):
    records = _filtered(db, q, site, lokasi, presence, condition)
    if not records:
        raise HTTPException(404, "no data")

    df = pd.DataFrame(
        [
            {
                "No": idx,
                "Nama": r["asset"]["name"],
                "Merk": r["asset"]["merk"] or "",
                "Tahun": r["asset"]["tahun"],
                "No. Asset": r["asset"]["no_asset"] or "",
                "Pemakai": r["asset"]["pemakai"] or "",
                "Site": r["asset"]["site"] or "",
                "Lokasi": r["asset"]["lokasi"] or "",
                "Ada": _mark(r["keterangan_ada"]),
                "Tidak Ada": _mark(r["keterangan_tidak_ada"]),
                "Bagus": _mark(r["status_bagus"]),
                "Rusak": _mark(r["status_rusak"]),
                "H. Perolehan": r["h_perolehan"],
                "Nilai Buku": r["nilai_buku"],
                "Gambar": r["image_url"] or "",
            }
            for idx, r in enumerate(records, start=1)
        ]
    )

    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as w:
        df.to_excel(w, index=False, sheet_name="Opname Report")

    fn = f"opname_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"
    return Response(
        content=buf.getvalue(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{fn}"'},
    )
