"""Asset import wizard REST router – prefix=/api/import"""
from __future__ import annotations

import logging
import sqlite3

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from core.db import get_db, insert_assets
from core.deps import require_admin
from models.import_model import ImportSessionOut, MappingUpdateIn
from services.asset_import import (
    AssetImportError,
    BatchInsertError,
    ImportValidationError,
)
from services.import_wizard import (
    ImportSessionRegistry,
    ImportWizard,
    UnknownSessionError,
    WizardStepError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/import", tags=["import"])
# catalog import is admin-only
admin_only = Depends(require_admin)

# ─────────────────────────── helpers ──────────────────────────────
def get_registry(request: Request) -> ImportSessionRegistry:
    return request.app.state.import_sessions


def _http_error(e: AssetImportError) -> HTTPException:
    if isinstance(e, ImportValidationError):
        return HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "errors": e.errors},
        )
    if isinstance(e, BatchInsertError):
        return HTTPException(
            status.HTTP_502_BAD_GATEWAY,
            detail={
                "message": str(e),
                "batch": e.batch_number,
                "committed_rows": e.committed_rows,
            },
        )
    if isinstance(e, UnknownSessionError):
        return HTTPException(status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, WizardStepError):
        return HTTPException(status.HTTP_409_CONFLICT, detail=str(e))
    # wrong extension, unreadable workbook, unknown column
    return HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(e))


def _wizard(session_id: str, registry: ImportSessionRegistry) -> ImportWizard:
    try:
        return registry.get(session_id)
    except UnknownSessionError as e:
        raise _http_error(e)

# ─────────────────────────── endpoints ──────────────────────────────

# ① open a wizard ------------------------------------------------------
@router.post(
    "/sessions",
    status_code=status.HTTP_201_CREATED,
    response_model=ImportSessionOut,
    dependencies=[admin_only],
)
def open_session(registry: ImportSessionRegistry = Depends(get_registry)):
    return registry.create().snapshot()


@router.get("/sessions/{session_id}", response_model=ImportSessionOut, dependencies=[admin_only])
def read_session(session_id: str, registry: ImportSessionRegistry = Depends(get_registry)):
    return _wizard(session_id, registry).snapshot()

# ② upload → mapping ----------------------------------------------------
@router.post("/sessions/{session_id}/file", response_model=ImportSessionOut, dependencies=[admin_only])
async def upload_file(
    session_id: str,
    file: UploadFile = File(...),
    registry: ImportSessionRegistry = Depends(get_registry),
):
    wizard = _wizard(session_id, registry)
    content = await file.read()
    try:
        await run_in_threadpool(wizard.load_file, content, file.filename or "")
    except AssetImportError as e:
        logger.warning(f"⚠️ Import {session_id}: {e}")
        raise _http_error(e)
    return wizard.snapshot()

# ③ mapping -----------------------------------------------------------
@router.put("/sessions/{session_id}/mapping", response_model=ImportSessionOut, dependencies=[admin_only])
def update_mapping(
    session_id: str,
    body: MappingUpdateIn,
    registry: ImportSessionRegistry = Depends(get_registry),
):
    wizard = _wizard(session_id, registry)
    try:
        wizard.set_mapping(body.column, body.field)
    except AssetImportError as e:
        raise _http_error(e)
    return wizard.snapshot()


@router.post("/sessions/{session_id}/preview", response_model=ImportSessionOut, dependencies=[admin_only])
def preview(session_id: str, registry: ImportSessionRegistry = Depends(get_registry)):
    wizard = _wizard(session_id, registry)
    try:
        wizard.proceed_to_preview()
    except AssetImportError as e:
        raise _http_error(e)
    return wizard.snapshot()


@router.post("/sessions/{session_id}/back", response_model=ImportSessionOut, dependencies=[admin_only])
def back(session_id: str, registry: ImportSessionRegistry = Depends(get_registry)):
    wizard = _wizard(session_id, registry)
    try:
        wizard.back()
    except AssetImportError as e:
        raise _http_error(e)
    return wizard.snapshot()

# ④ validate + batch insert -----------------------------------------------
@router.post("/sessions/{session_id}/commit", dependencies=[admin_only])
def commit(
    session_id: str,
    registry: ImportSessionRegistry = Depends(get_registry),
    db: sqlite3.Connection = Depends(get_db),
):
    wizard = _wizard(session_id, registry)
    try:
        result = wizard.commit(lambda batch: insert_assets(db, batch))
    except AssetImportError as e:
        raise _http_error(e)

    return {
        "status": "success",
        "message": f"Successfully uploaded {result.inserted} assets to database!",
        "inserted": result.inserted,
        "batches": result.batches,
        "session": wizard.snapshot(),
    }

# ⑤ reset / close --------------------------------------------------------
@router.post("/sessions/{session_id}/reset", response_model=ImportSessionOut, dependencies=[admin_only])
def reset(session_id: str, registry: ImportSessionRegistry = Depends(get_registry)):
    wizard = _wizard(session_id, registry)
    try:
        wizard.reset()
    except AssetImportError as e:
        raise _http_error(e)
    return wizard.snapshot()


@router.delete(
    "/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[admin_only],
)
def close_session(session_id: str, registry: ImportSessionRegistry = Depends(get_registry)):
    try:
        registry.discard(session_id)
    except AssetImportError as e:
        raise _http_error(e)
