"""
core/db.py ── SQLite layer for users, assets and opname records
"""
from __future__ import annotations

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Generator, Dict, Any, Iterable, List

from fastapi import Request

logger = logging.getLogger(__name__)

ASSET_COLUMNS = ("name", "merk", "tahun", "no_asset", "pemakai", "site", "lokasi")

# ══════════════════════════════════════════════
# ① Database manager
# ══════════════════════════════════════════════
class DatabaseManager:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self._lock = threading.Lock()
        self._initialized = False
        self._init_db()

    # ───────── schema ─────────
    def _init_db(self):
        with self._lock:
            if self._initialized:
                return
            try:
                with self.get_connection() as conn:
                    conn.executescript(
                        """
                        CREATE TABLE IF NOT EXISTS users(
                            id              INTEGER PRIMARY KEY AUTOINCREMENT,
                            username        TEXT UNIQUE NOT NULL,
                            hashed_password TEXT NOT NULL,
                            role            TEXT NOT NULL DEFAULT 'viewer',
                            is_active       INTEGER NOT NULL DEFAULT 1,
                            created_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        );

                        CREATE TABLE IF NOT EXISTS refresh_tokens(
                            id         INTEGER PRIMARY KEY AUTOINCREMENT,
                            user_id    INTEGER NOT NULL,
                            token      TEXT UNIQUE NOT NULL,
                            expires_at TIMESTAMP NOT NULL,
                            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                        );

                        CREATE TABLE IF NOT EXISTS assets(
                            id         INTEGER PRIMARY KEY AUTOINCREMENT,
                            name       TEXT NOT NULL CHECK (trim(name) <> ''),
                            merk       TEXT,
                            tahun      INTEGER,
                            no_asset   TEXT,
                            pemakai    TEXT,
                            site       TEXT,
                            lokasi     TEXT,
                            created_at TEXT NOT NULL
                        );
                        CREATE INDEX IF NOT EXISTS idx_assets_name ON assets(name);

                        CREATE TABLE IF NOT EXISTS opname_records(
                            id                   INTEGER PRIMARY KEY AUTOINCREMENT,
                            asset_id             INTEGER NOT NULL,
                            keterangan_ada       INTEGER NOT NULL DEFAULT 0,
                            keterangan_tidak_ada INTEGER NOT NULL DEFAULT 0,
                            status_bagus         INTEGER NOT NULL DEFAULT 0,
                            status_rusak         INTEGER NOT NULL DEFAULT 0,
                            h_perolehan          REAL,
                            nilai_buku           REAL,
                            image_url            TEXT NOT NULL,
                            created_at           TEXT NOT NULL,
                            FOREIGN KEY (asset_id) REFERENCES assets(id)
                        );
                        CREATE INDEX IF NOT EXISTS idx_opname_asset   ON opname_records(asset_id);
                        CREATE INDEX IF NOT EXISTS idx_opname_created ON opname_records(created_at);
                        """
                    )
                    self._initialized = True
                    logger.info(f"🗄️  DB schema ready ({self.db_path})")
            except Exception as e:
                logger.error(f"DB init failed: {e}")
                raise

    # ───────── connection ─────────
    def _connect(self) -> sqlite3.Connection:
        for attempt in range(3):
            conn: sqlite3.Connection | None = None
            try:
                conn = sqlite3.connect(
                    self.db_path,
                    timeout=30.0,
                    check_same_thread=False,
                    isolation_level=None,  # autocommit; batches open their own BEGIN
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA foreign_keys=ON")
                return conn
            except sqlite3.OperationalError as e:
                if conn:
                    conn.close()
                if "locked" in str(e).lower() and attempt < 2:
                    logger.warning(f"DB locked, retrying ({attempt+1}/3)…")
                    time.sleep(0.1 * (attempt + 1))
                    continue
                raise
        raise sqlite3.OperationalError("database is locked")

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()


def get_db(request: Request) -> Generator[sqlite3.Connection, None, None]:
    """FastAPI dependency; the manager is built once by the app factory."""
    with request.app.state.db_manager.get_connection() as conn:
        yield conn

# ══════════════════════════════════════════════
# ② User CRUD
# ══════════════════════════════════════════════
def list_users(db: sqlite3.Connection):
    return db.execute("SELECT * FROM users ORDER BY username").fetchall()


def count_users(db: sqlite3.Connection) -> int:
    return db.execute("SELECT COUNT(*) FROM users").fetchone()[0]


def count_active_admins(db: sqlite3.Connection) -> int:
    return db.execute(
        "SELECT COUNT(*) FROM users WHERE role = 'admin' AND is_active = 1"
    ).fetchone()[0]


def get_user_by_username(db: sqlite3.Connection, username: str):
    return db.execute(
        "SELECT * FROM users WHERE username = ? LIMIT 1", (username,)
    ).fetchone()


def get_user_by_id(db: sqlite3.Connection, uid: int):
    return db.execute("SELECT * FROM users WHERE id = ?", (uid,)).fetchone()


def create_user(db: sqlite3.Connection, username: str, hashed_pw: str, role: str):
    cur = db.execute(
        "INSERT INTO users(username, hashed_password, role) VALUES(?,?,?)",
        (username, hashed_pw, role),
    )
    return get_user_by_id(db, cur.lastrowid)


# keyword → column for partial account updates
_USER_UPDATE_COLUMNS = {
    "username": "username",
    "hashed_pw": "hashed_password",
    "role": "role",
    "is_active": "is_active",
}


def update_user(db: sqlite3.Connection, uid: int, **changes: Any):
    """Apply only the given fields; unknown keywords are a programming error."""
    unknown = set(changes) - set(_USER_UPDATE_COLUMNS)
    if unknown:
        raise TypeError(f"update_user() got unexpected fields {sorted(unknown)}")
    if "is_active" in changes:
        changes["is_active"] = int(bool(changes["is_active"]))

    pairs = [(_USER_UPDATE_COLUMNS[k], v) for k, v in changes.items() if v is not None]
    if pairs:
        assignments = ", ".join(f"{col} = ?" for col, _ in pairs)
        db.execute(
            f"UPDATE users SET {assignments} WHERE id = ?",
            [v for _, v in pairs] + [uid],
        )
    return get_user_by_id(db, uid)


def delete_user(db: sqlite3.Connection, uid: int) -> bool:
    cur = db.execute("DELETE FROM users WHERE id = ?", (uid,))
    return cur.rowcount > 0

# ══════════════════════════════════════════════
# ③ Refresh-token helpers
# ══════════════════════════════════════════════
def save_refresh_token(db, user_id, token, expires_days):
    exp = datetime.now(timezone.utc) + timedelta(days=expires_days)
    db.execute(
        "INSERT INTO refresh_tokens(user_id, token, expires_at) VALUES(?,?,?)",
        (user_id, token, exp.isoformat()),
    )


def get_refresh_token(db, token):
    return db.execute(
        "SELECT * FROM refresh_tokens WHERE token = ? AND expires_at > ?",
        (token, datetime.now(timezone.utc).isoformat()),
    ).fetchone()


def delete_refresh_token(db, token):
    db.execute("DELETE FROM refresh_tokens WHERE token = ?", (token,))


def delete_user_refresh_tokens(db, user_id):
    db.execute("DELETE FROM refresh_tokens WHERE user_id = ?", (user_id,))

# ══════════════════════════════════════════════
# ④ Assets
# ══════════════════════════════════════════════
_ASSET_SELECT = """
    SELECT a.*,
           EXISTS(SELECT 1 FROM opname_records o WHERE o.asset_id = a.id) AS opnamed
    FROM assets a
"""


def list_assets(db: sqlite3.Connection):
    return db.execute(f"{_ASSET_SELECT} ORDER BY a.name, a.id").fetchall()


def list_pending_assets(db: sqlite3.Connection, limit: int):
    return db.execute(
        """
        SELECT a.*, 0 AS opnamed
        FROM assets a
        WHERE NOT EXISTS(SELECT 1 FROM opname_records o WHERE o.asset_id = a.id)
        ORDER BY a.name, a.id
        LIMIT ?
        """,
        (limit,),
    ).fetchall()


def get_asset(db: sqlite3.Connection, asset_id: int):
    return db.execute(f"{_ASSET_SELECT} WHERE a.id = ?", (asset_id,)).fetchone()


def insert_assets(db: sqlite3.Connection, rows: List[Dict[str, Any]]) -> int:
    """Insert one batch atomically: either every row lands or none does."""
    db.execute("BEGIN")
    try:
        db.executemany(
            """
            INSERT INTO assets(name, merk, tahun, no_asset, pemakai, site, lokasi, created_at)
            VALUES(:name, :merk, :tahun, :no_asset, :pemakai, :site, :lokasi, :created_at)
            """,
            rows,
        )
    except Exception:
        db.execute("ROLLBACK")
        raise
    db.execute("COMMIT")
    return len(rows)

# ══════════════════════════════════════════════
# ⑤ Opname records
# ══════════════════════════════════════════════
_OPNAME_SELECT = """
    SELECT o.*,
           a.name     AS asset_name,
           a.merk     AS asset_merk,
           a.tahun    AS asset_tahun,
           a.no_asset AS asset_no_asset,
           a.pemakai  AS asset_pemakai,
           a.site     AS asset_site,
           a.lokasi   AS asset_lokasi
    FROM opname_records o
    JOIN assets a ON a.id = o.asset_id
"""


def create_opname_record(db: sqlite3.Connection, record: Dict[str, Any]):
    cur = db.execute(
        """
        INSERT INTO opname_records(
            asset_id, keterangan_ada, keterangan_tidak_ada,
            status_bagus, status_rusak, h_perolehan, nilai_buku,
            image_url, created_at
        ) VALUES(
            :asset_id, :keterangan_ada, :keterangan_tidak_ada,
            :status_bagus, :status_rusak, :h_perolehan, :nilai_buku,
            :image_url, :created_at
        )
        """,
        record,
    )
    return get_opname_record(db, cur.lastrowid)


def list_opname_records(db: sqlite3.Connection):
    return db.execute(
        f"{_OPNAME_SELECT} ORDER BY o.created_at DESC, o.id DESC"
    ).fetchall()


def list_opname_records_for_asset(db: sqlite3.Connection, asset_id: int):
    return db.execute(
        f"{_OPNAME_SELECT} WHERE o.asset_id = ? ORDER BY o.created_at DESC, o.id DESC",
        (asset_id,),
    ).fetchall()


def get_opname_record(db: sqlite3.Connection, record_id: int):
    return db.execute(f"{_OPNAME_SELECT} WHERE o.id = ?", (record_id,)).fetchone()


def delete_opname_record(db: sqlite3.Connection, record_id: int) -> bool:
    cur = db.execute("DELETE FROM opname_records WHERE id = ?", (record_id,))
    return cur.rowcount > 0

# ══════════════════════════════════════════════
# ⑥ Utilities / maintenance
# ══════════════════════════════════════════════
def row_to_dict(row: sqlite3.Row) -> Dict[str, Any] | None:
    return dict(row) if row else None


def opname_row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    """Split the joined row into the record plus a nested `asset` dict."""
    data = dict(row)
    asset = {"id": data["asset_id"]}
    for col in ASSET_COLUMNS:
        asset[col] = data.pop(f"asset_{col}", None)
    data["asset"] = asset
    for flag in ("keterangan_ada", "keterangan_tidak_ada", "status_bagus", "status_rusak"):
        data[flag] = bool(data[flag])
    return data


def opname_rows_to_dicts(rows: Iterable[sqlite3.Row]) -> List[Dict[str, Any]]:
    return [opname_row_to_dict(r) for r in rows]


def check_database_health(manager: DatabaseManager) -> bool:
    try:
        with manager.get_connection() as db:
            db.execute("SELECT 1").fetchone()
        return True
    except Exception as e:
        logger.error(f"DB health check failed: {e}")
        return False
