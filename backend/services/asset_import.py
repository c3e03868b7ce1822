"""
services/asset_import.py
──────────────────────────────────────────────
Spreadsheet → asset catalog pipeline.

    parse_spreadsheet  →  auto_map / assign_mapping  →  project_rows
                       →  validate_rows  →  commit_rows (batched)

Everything here is pure except `commit_rows`, which only talks to storage
through the `insert_batch` callable it is handed.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from io import BytesIO
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

ACCEPTED_EXTENSIONS = (".xlsx", ".xls")
DEFAULT_BATCH_SIZE = 100


class TargetField(str, Enum):
    """Closed set of asset columns a spreadsheet column may be mapped to."""
    NAME = "name"
    MERK = "merk"
    TAHUN = "tahun"
    NO_ASSET = "no_asset"
    PEMAKAI = "pemakai"
    SITE = "site"
    LOKASI = "lokasi"


# (header, raw cell value) pairs in sheet column order
ImportRow = Tuple[Tuple[str, Any], ...]
ColumnMapping = Dict[str, TargetField]
MappedRow = Dict[str, Any]


# ─────────────────────────── errors ───────────────────────────
class AssetImportError(Exception):
    """Base class for every error the import wizard reports to the user."""


class FileFormatError(AssetImportError):
    pass


class SpreadsheetParseError(AssetImportError):
    pass


class MappingError(AssetImportError):
    pass


class ImportValidationError(AssetImportError):
    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("Validation errors found:\n" + "\n".join(self.errors))


class BatchInsertError(AssetImportError):
    def __init__(self, batch_number: int, cause: Exception, committed_rows: int):
        self.batch_number = batch_number
        self.committed_rows = committed_rows
        super().__init__(f"Failed to insert batch {batch_number}: {cause}")


# ─────────────────────────── cell helpers ───────────────────────────
def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _is_blank(value: Any) -> bool:
    """Falsy in the sense the wizard has always used: None, '', 0, NaN, False."""
    if _is_missing(value) or value is False:
        return True
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, str):
        return value == ""
    return False


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def _to_number(value: Any) -> Optional[float]:
    """Numeric reading of a cell, or None when it is not a finite number."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0.0
        if "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _clean_cell(value: Any) -> Any:
    if _is_missing(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime().isoformat()
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        return value.item()  # numpy scalar → python scalar
    return value


def _clean_text(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    return _stringify(value).strip() or None


# ─────────────────────────── ① parse ───────────────────────────
@dataclass(frozen=True)
class ParsedSheet:
    headers: List[str]
    rows: List[ImportRow]
    # 1-based sheet row of each entry in `rows`; blank rows leave gaps
    row_numbers: List[int] = field(default_factory=list)


def check_extension(filename: str) -> None:
    if not (filename or "").lower().endswith(ACCEPTED_EXTENSIONS):
        raise FileFormatError("Please upload a valid Excel file (.xlsx or .xls)")


def _header_names(raw: Sequence[Any]) -> List[str]:
    """Header text per column; blanks become `Column N`, repeats get `_1`, `_2`…"""
    names: List[str] = []
    used: set[str] = set()
    for pos, cell in enumerate(raw, start=1):
        text = "" if _is_missing(cell) else _stringify(cell)
        base = text if text.strip() else f"Column {pos}"
        name, n = base, 1
        while name in used:
            name = f"{base}_{n}"
            n += 1
        used.add(name)
        names.append(name)
    return names


def parse_spreadsheet(content: bytes, filename: str) -> ParsedSheet:
    """Read the first sheet; row 1 is the header, every later row is data."""
    check_extension(filename)
    try:
        df = pd.read_excel(BytesIO(content), sheet_name=0, header=None, dtype=object)
    except Exception as e:
        logger.warning(f"⚠️ Could not read workbook {filename!r}: {e}")
        raise SpreadsheetParseError(
            "Failed to parse Excel file. Please check the file format."
        ) from e

    if df.empty:
        raise SpreadsheetParseError("Excel file appears to be empty or has no data")

    headers = _header_names(df.iloc[0].tolist())
    data = df.iloc[1:].dropna(how="all")
    if data.empty:
        raise SpreadsheetParseError("Excel file appears to be empty or has no data")

    rows: List[ImportRow] = [
        tuple(zip(headers, (_clean_cell(v) for v in values)))
        for values in data.itertuples(index=False, name=None)
    ]
    row_numbers = [int(pos) + 1 for pos in data.index]
    logger.info(f"📄 Parsed {filename!r}: {len(headers)} columns, {len(rows)} rows")
    return ParsedSheet(headers=headers, rows=rows, row_numbers=row_numbers)


# ─────────────────────────── ② mapping ───────────────────────────
# First match wins; order matters ("Nama Pemakai" is a name column).
_KEYWORD_RULES: Tuple[Tuple[Tuple[str, ...], TargetField], ...] = (
    (("nama", "name"), TargetField.NAME),
    (("merk", "brand"), TargetField.MERK),
    (("tahun", "year"), TargetField.TAHUN),
    (("asset", "no", "kode"), TargetField.NO_ASSET),
    (("pemakai", "user"), TargetField.PEMAKAI),
    (("site", "lokasi", "location"), TargetField.LOKASI),
)


def match_header(header: str) -> Optional[TargetField]:
    lower = header.lower().strip()
    for tokens, target in _KEYWORD_RULES:
        if any(token in lower for token in tokens):
            if target is TargetField.LOKASI and "site" in lower:
                return TargetField.SITE
            return target
    return None


def auto_map(headers: Sequence[str]) -> ColumnMapping:
    """Suggest a mapping; the leftmost column keeps a contested field."""
    mapping: ColumnMapping = {}
    claimed: set[TargetField] = set()
    for header in headers:
        target = match_header(header)
        if target is not None and target not in claimed:
            mapping[header] = target
            claimed.add(target)
    return mapping


def assign_mapping(
    mapping: ColumnMapping,
    headers: Sequence[str],
    column: str,
    target: Optional[TargetField],
) -> ColumnMapping:
    """Map `column` to `target` (None clears it), releasing `target` elsewhere."""
    if column not in headers:
        raise MappingError(f"Unknown column: {column}")
    if target is not None and not isinstance(target, TargetField):
        try:
            target = TargetField(target)
        except ValueError:
            raise MappingError(f"Unknown field: {target}") from None

    updated = {
        col: field
        for col, field in mapping.items()
        if col != column and field is not target
    }
    if target is not None:
        updated[column] = target
    return {h: updated[h] for h in headers if h in updated}


def project_rows(rows: Sequence[ImportRow], mapping: ColumnMapping) -> List[MappedRow]:
    projected: List[MappedRow] = []
    for row in rows:
        out: MappedRow = {}
        for header, value in row:
            target = mapping.get(header)
            if target is not None:
                out[target.value] = value
        projected.append(out)
    return projected


# ─────────────────────────── ③ validate ───────────────────────────
def validate_rows(
    rows: Sequence[MappedRow],
    row_numbers: Optional[Sequence[int]] = None,
) -> List[str]:
    """
    Check every row and return all messages.

    Messages cite `row_numbers` (sheet rows) when given; otherwise the row
    position plus one for the header.
    """
    errors: List[str] = []
    for index, row in enumerate(rows):
        row_no = row_numbers[index] if row_numbers else index + 2
        name = row.get(TargetField.NAME.value)
        if _is_blank(name) or _stringify(name).strip() == "":
            errors.append(f"Row {row_no}: Name is required")

        tahun = row.get(TargetField.TAHUN.value)
        if not _is_blank(tahun) and _to_number(tahun) is None:
            errors.append(f"Row {row_no}: Year must be a valid number")
    return errors


# ─────────────────────────── ④ commit ───────────────────────────
@dataclass(frozen=True)
class CommitResult:
    inserted: int
    batches: int


def _to_year(value: Any) -> Optional[int]:
    if _is_blank(value) or _clean_text(value) is None:
        return None
    number = _to_number(value)
    return int(number) if number is not None else None


def normalize_row(row: MappedRow, created_at: str) -> Dict[str, Any]:
    """Shape one validated row the way the assets table stores it."""
    return {
        "name": _clean_text(row.get("name")) or "",
        "merk": _clean_text(row.get("merk")),
        "tahun": _to_year(row.get("tahun")),
        "no_asset": _clean_text(row.get("no_asset")),
        "pemakai": _clean_text(row.get("pemakai")),
        "site": _clean_text(row.get("site")),
        "lokasi": _clean_text(row.get("lokasi")),
        "created_at": created_at,
    }


def commit_rows(
    rows: Sequence[MappedRow],
    insert_batch: Callable[[List[Dict[str, Any]]], Any],
    batch_size: int = DEFAULT_BATCH_SIZE,
    now: Optional[datetime] = None,
) -> CommitResult:
    """
    Write rows in order, one batch at a time.

    Stops at the first failing batch. Batches written before it stay
    written; the error carries the 1-based batch number and the number of
    rows already committed.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be positive")

    created_at = (now or datetime.now(timezone.utc)).isoformat()
    records = [normalize_row(r, created_at) for r in rows]

    committed = 0
    batches = 0
    for start in range(0, len(records), batch_size):
        batch = records[start:start + batch_size]
        batch_number = start // batch_size + 1
        try:
            insert_batch(batch)
        except Exception as e:
            logger.error(
                f"❌ Batch {batch_number} failed after {committed} committed rows: {e}"
            )
            raise BatchInsertError(batch_number, e, committed) from e
        committed += len(batch)
        batches = batch_number

    logger.info(f"✅ Imported {committed} assets in {batches} batch(es)")
    return CommitResult(inserted=committed, batches=batches)
