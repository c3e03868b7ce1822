from __future__ import annotations

import os
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

# Settings are read when core.config is first imported.
_RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="opname-tests-"))
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DB_PATH"] = str(_RUNTIME_DIR / "default.db")
os.environ["PHOTO_DIR"] = str(_RUNTIME_DIR / "photos")
os.environ.pop("ADMIN_USERNAME", None)
os.environ.pop("ADMIN_PASSWORD", None)

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from openpyxl import Workbook
from PIL import Image

from core.db import insert_assets
from core.deps import User, get_current_user
from main import create_app


def build_xlsx(rows: Sequence[Sequence[Any]], sheet_title: str = "Assets") -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title
    for row in rows:
        ws.append(list(row))
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


def build_png(color: str = "red") -> bytes:
    buf = BytesIO()
    Image.new("RGB", (8, 8), color).save(buf, format="PNG")
    return buf.getvalue()


def asset_row(name: str, **fields: Any) -> dict:
    row = {col: None for col in ("merk", "tahun", "no_asset", "pemakai", "site", "lokasi")}
    row.update(fields)
    row["name"] = name
    row["created_at"] = "2024-01-01T00:00:00+00:00"
    return row


@pytest.fixture()
def app(tmp_path: Path) -> FastAPI:
    return create_app(db_path=str(tmp_path / "opname.db"), photo_dir=str(tmp_path / "photos"))


@pytest.fixture()
def login_as(app: FastAPI) -> Callable[[str], User]:
    def _login(role: str) -> User:
        user = User(id=1, username=f"{role}-user", role=role)
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    return _login


@pytest.fixture()
def client(app: FastAPI, login_as) -> TestClient:
    login_as("admin")
    return TestClient(app)


@pytest.fixture()
def seed_assets(app: FastAPI) -> Callable[[Iterable[dict]], None]:
    def _seed(rows: Iterable[dict]) -> None:
        with app.state.db_manager.get_connection() as db:
            insert_assets(db, list(rows))

    return _seed
