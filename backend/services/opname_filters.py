"""
services/opname_filters.py
──────────────────────────────────────────────
In-memory filtering and totals for opname listings (records page, report).
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence


class Presence(str, Enum):
    ADA = "ada"
    TIDAK_ADA = "tidak_ada"
    UNSET = "unset"


class Condition(str, Enum):
    BAGUS = "bagus"
    RUSAK = "rusak"
    UNSET = "unset"


RECORD_SEARCH_FIELDS = ("name", "merk", "no_asset", "pemakai", "site", "lokasi")
ASSET_SEARCH_FIELDS = ("name", "no_asset", "merk")


# Stored as two booleans per pair; the first true flag wins.
def presence_of(record: Dict[str, Any]) -> Presence:
    if record.get("keterangan_ada"):
        return Presence.ADA
    if record.get("keterangan_tidak_ada"):
        return Presence.TIDAK_ADA
    return Presence.UNSET


def condition_of(record: Dict[str, Any]) -> Condition:
    if record.get("status_bagus"):
        return Condition.BAGUS
    if record.get("status_rusak"):
        return Condition.RUSAK
    return Condition.UNSET


def _contains(value: Any, needle: str) -> bool:
    return value is not None and needle in str(value).lower()


def matches_query(item: Dict[str, Any], query: str, fields: Sequence[str]) -> bool:
    needle = (query or "").lower()
    return any(_contains(item.get(f), needle) for f in fields)


def search_assets(assets: Iterable[Dict[str, Any]], query: str, min_chars: int) -> List[Dict[str, Any]]:
    """Nothing until the query is long enough, then substring match."""
    if not query or not query.strip() or len(query) < min_chars:
        return []
    return [a for a in assets if matches_query(a, query, ASSET_SEARCH_FIELDS)]


def filter_records(
    records: Iterable[Dict[str, Any]],
    *,
    q: Optional[str] = None,
    site: Optional[str] = None,
    lokasi: Optional[str] = None,
    presence: Optional[Presence] = None,
    condition: Optional[Condition] = None,
) -> List[Dict[str, Any]]:
    """Every given filter must hold; blank filters are ignored."""
    out: List[Dict[str, Any]] = []
    for record in records:
        asset = record.get("asset") or {}
        if q and not matches_query(asset, q, RECORD_SEARCH_FIELDS):
            continue
        if site and not _contains(asset.get("site"), site.lower()):
            continue
        if lokasi and not _contains(asset.get("lokasi"), lokasi.lower()):
            continue
        if presence is not None and presence_of(record) is not presence:
            continue
        if condition is not None and condition_of(record) is not condition:
            continue
        out.append(record)
    return out


def summarize(records: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "total": len(records),
        "ada_count": sum(1 for r in records if r.get("keterangan_ada")),
        "bagus_count": sum(1 for r in records if r.get("status_bagus")),
        "total_h_perolehan": sum(r.get("h_perolehan") or 0 for r in records),
        "total_nilai_buku": sum(r.get("nilai_buku") or 0 for r in records),
    }


def parse_currency(text: Optional[str]) -> Optional[float]:
    """Keep digits only; empty or zero means no value."""
    digits = "".join(ch for ch in (text or "") if ch in "0123456789")
    if not digits:
        return None
    value = float(digits)
    return value or None
