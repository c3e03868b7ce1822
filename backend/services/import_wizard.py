"""
services/import_wizard.py
──────────────────────────────────────────────
State machine that walks one user through the catalog import:

    upload ──▶ mapping ──▶ preview ──▶ uploading
       ▲          │  ▲         │           │
       └──────────┘  └─────────┘           │
       ▲   (back)         ▲ (failure)      │
       └──────────────────┴────────────────┘ (success)

Wizard state lives only in memory; the registry hands out one wizard per
browser session.
"""
from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from services.asset_import import (
    AssetImportError,
    BatchInsertError,
    ColumnMapping,
    CommitResult,
    DEFAULT_BATCH_SIZE,
    ImportRow,
    ImportValidationError,
    MappedRow,
    MappingError,
    TargetField,
    assign_mapping,
    auto_map,
    commit_rows,
    parse_spreadsheet,
    project_rows,
    validate_rows,
)

logger = logging.getLogger(__name__)


class ImportStep(str, Enum):
    UPLOAD = "upload"
    MAPPING = "mapping"
    PREVIEW = "preview"
    UPLOADING = "uploading"


ALLOWED_TRANSITIONS = frozenset({
    (ImportStep.UPLOAD, ImportStep.MAPPING),
    (ImportStep.MAPPING, ImportStep.UPLOAD),
    (ImportStep.MAPPING, ImportStep.PREVIEW),
    (ImportStep.PREVIEW, ImportStep.MAPPING),
    (ImportStep.PREVIEW, ImportStep.UPLOAD),
    (ImportStep.PREVIEW, ImportStep.UPLOADING),
    (ImportStep.UPLOADING, ImportStep.UPLOAD),
    (ImportStep.UPLOADING, ImportStep.PREVIEW),
})


class WizardStepError(AssetImportError):
    """Operation not allowed in the wizard's current step."""


class InvalidTransitionError(WizardStepError):
    def __init__(self, current: ImportStep, target: ImportStep):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move from '{current.value}' to '{target.value}'")


class UnknownSessionError(AssetImportError):
    pass


def transition(current: ImportStep, target: ImportStep) -> ImportStep:
    if (current, target) not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(current, target)
    return target


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ImportWizard:
    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE, preview_rows: int = 10):
        self.id = uuid.uuid4().hex
        self.batch_size = batch_size
        self.preview_rows = preview_rows
        self.step = ImportStep.UPLOAD
        self.filename: Optional[str] = None
        self.headers: List[str] = []
        self.rows: List[ImportRow] = []
        self.row_numbers: List[int] = []
        self.mapping: ColumnMapping = {}
        self.mapped_rows: List[MappedRow] = []
        self.error: Optional[str] = None
        self.last_result: Optional[CommitResult] = None
        self.updated_at = _now()
        self._lock = threading.Lock()

    # ───────── helpers ─────────
    def _move(self, target: ImportStep) -> None:
        self.step = transition(self.step, target)
        self.updated_at = _now()

    def _require(self, step: ImportStep, action: str) -> None:
        if self.step is not step:
            raise WizardStepError(f"Cannot {action} while in '{self.step.value}' step")

    def _clear(self) -> None:
        self.filename = None
        self.headers = []
        self.rows = []
        self.row_numbers = []
        self.mapping = {}
        self.mapped_rows = []
        self.error = None

    # ───────── ① upload ─────────
    def load_file(self, content: bytes, filename: str) -> None:
        with self._lock:
            self._require(ImportStep.UPLOAD, "upload a file")
            try:
                sheet = parse_spreadsheet(content, filename)
            except AssetImportError as e:
                self.error = str(e)
                raise
            self.filename = filename
            self.headers = sheet.headers
            self.rows = sheet.rows
            self.row_numbers = sheet.row_numbers
            self.mapping = auto_map(sheet.headers)
            self.mapped_rows = []
            self.error = None
            self.last_result = None
            self._move(ImportStep.MAPPING)

    # ───────── ② mapping ─────────
    def set_mapping(self, column: str, target: Optional[TargetField]) -> ColumnMapping:
        with self._lock:
            self._require(ImportStep.MAPPING, "change the column mapping")
            self.mapping = assign_mapping(self.mapping, self.headers, column, target)
            self.updated_at = _now()
            return dict(self.mapping)

    def proceed_to_preview(self) -> List[MappedRow]:
        with self._lock:
            self._require(ImportStep.MAPPING, "preview")
            if not self.mapping:
                raise MappingError("Map at least one column before previewing")
            self.mapped_rows = project_rows(self.rows, self.mapping)
            self.error = None
            self._move(ImportStep.PREVIEW)
            return list(self.mapped_rows)

    def back(self) -> ImportStep:
        """preview → mapping; mapping → upload (which discards the file)."""
        with self._lock:
            if self.step is ImportStep.PREVIEW:
                self._move(ImportStep.MAPPING)
            elif self.step is ImportStep.MAPPING:
                self._clear()
                self._move(ImportStep.UPLOAD)
            else:
                raise WizardStepError(f"No previous step from '{self.step.value}'")
            return self.step

    def reset(self) -> None:
        with self._lock:
            if self.step is ImportStep.UPLOADING:
                raise WizardStepError("Cannot reset while an upload is in progress")
            self._clear()
            if self.step is not ImportStep.UPLOAD:
                self._move(ImportStep.UPLOAD)

    # ───────── ③ validate + ④ commit ─────────
    def _begin_commit(self) -> List[MappedRow]:
        with self._lock:
            self._move(ImportStep.UPLOADING)
            errors = validate_rows(self.mapped_rows, self.row_numbers)
            if errors:
                exc = ImportValidationError(errors)
                self.error = str(exc)
                self._move(ImportStep.PREVIEW)
                logger.warning(f"⚠️ Import {self.id}: {len(errors)} validation error(s)")
                raise exc
            return list(self.mapped_rows)

    def commit(self, insert_batch: Callable[[List[Dict[str, Any]]], Any]) -> CommitResult:
        rows = self._begin_commit()
        try:
            result = commit_rows(rows, insert_batch, self.batch_size)
        except Exception as e:
            with self._lock:
                self.error = str(e)
                self._move(ImportStep.PREVIEW)
            if isinstance(e, BatchInsertError):
                logger.error(
                    f"❌ Import {self.id} stopped at batch {e.batch_number}; "
                    f"{e.committed_rows} row(s) were already written"
                )
            raise

        with self._lock:
            self._clear()
            self.last_result = result
            self._move(ImportStep.UPLOAD)
        return result

    # ───────── view ─────────
    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "session_id": self.id,
                "step": self.step.value,
                "filename": self.filename,
                "headers": list(self.headers),
                "mapping": {col: f.value for col, f in self.mapping.items()},
                "target_fields": [f.value for f in TargetField],
                "row_count": len(self.rows),
                "preview": [dict(r) for r in self.mapped_rows[: self.preview_rows]],
                "mapped_count": len(self.mapped_rows),
                "error": self.error,
                "last_result": (
                    {"inserted": self.last_result.inserted, "batches": self.last_result.batches}
                    if self.last_result else None
                ),
            }


class ImportSessionRegistry:
    """In-memory wizards keyed by session id."""

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE, preview_rows: int = 10):
        self.batch_size = batch_size
        self.preview_rows = preview_rows
        self._sessions: Dict[str, ImportWizard] = {}
        self._lock = threading.Lock()

    def create(self) -> ImportWizard:
        wizard = ImportWizard(self.batch_size, self.preview_rows)
        with self._lock:
            self._sessions[wizard.id] = wizard
        logger.info(f"🆕 Import session {wizard.id} opened")
        return wizard

    def get(self, session_id: str) -> ImportWizard:
        with self._lock:
            wizard = self._sessions.get(session_id)
        if wizard is None:
            raise UnknownSessionError(f"Import session {session_id} not found")
        return wizard

    def discard(self, session_id: str) -> None:
        wizard = self.get(session_id)
        if wizard.step is ImportStep.UPLOADING:
            raise WizardStepError("Cannot close a session while an upload is in progress")
        with self._lock:
            self._sessions.pop(session_id, None)
        logger.info(f"🗑️ Import session {session_id} closed")

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
