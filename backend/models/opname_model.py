# ========================= models/opname_model.py =========================
from typing import List, Optional

from pydantic import BaseModel, computed_field

from services.opname_filters import Condition, Presence, condition_of, presence_of

# ── asset fields carried on every record ─────────────────────────────
class OpnameAsset(BaseModel):
    id: int
    name: str
    merk: Optional[str] = None
    tahun: Optional[int] = None
    no_asset: Optional[str] = None
    pemakai: Optional[str] = None
    site: Optional[str] = None
    lokasi: Optional[str] = None

# ── single record returned to the client ────────────────────────────
class OpnameRecordOut(BaseModel):
    id: int
    asset_id: int
    keterangan_ada: bool
    keterangan_tidak_ada: bool
    status_bagus: bool
    status_rusak: bool
    h_perolehan: Optional[float] = None
    nilai_buku: Optional[float] = None
    image_url: str
    created_at: str
    asset: OpnameAsset

    @computed_field
    @property
    def presence(self) -> Presence:
        return presence_of({"keterangan_ada": self.keterangan_ada,
                            "keterangan_tidak_ada": self.keterangan_tidak_ada})

    @computed_field
    @property
    def condition(self) -> Condition:
        return condition_of({"status_bagus": self.status_bagus,
                             "status_rusak": self.status_rusak})

# ── report aggregate ────────────────────────────────────────────────
class ReportSummary(BaseModel):
    total: int
    ada_count: int
    bagus_count: int
    total_h_perolehan: float
    total_nilai_buku: float

class ReportOut(BaseModel):
    summary: ReportSummary
    records: List[OpnameRecordOut]
