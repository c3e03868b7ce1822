# backend/models/import_model.py
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from services.asset_import import TargetField

# -------- mapping change (null field = leave column unmapped) --------
class MappingUpdateIn(BaseModel):
    column: str = Field(..., min_length=1)
    field:  Optional[TargetField] = None

# -------- wizard state returned after every step --------
class CommitSummary(BaseModel):
    inserted: int
    batches:  int

class ImportSessionOut(BaseModel):
    session_id:    str
    step:          str                      # upload / mapping / preview / uploading
    filename:      Optional[str] = None
    headers:       List[str] = []
    mapping:       Dict[str, TargetField] = {}
    target_fields: List[str] = []
    row_count:     int = 0
    mapped_count:  int = 0
    preview:       List[Dict[str, Any]] = []  # first rows only
    error:         Optional[str] = None
    last_result:   Optional[CommitSummary] = None
