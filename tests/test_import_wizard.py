from __future__ import annotations

import pytest

from conftest import build_xlsx
from services.asset_import import (
    BatchInsertError,
    FileFormatError,
    ImportValidationError,
    MappingError,
    TargetField,
)
from services.import_wizard import (
    ALLOWED_TRANSITIONS,
    ImportSessionRegistry,
    ImportStep,
    ImportWizard,
    InvalidTransitionError,
    UnknownSessionError,
    WizardStepError,
    transition,
)

LAPTOP_SHEET = [["Nama Barang", "Merk", "Tahun"], ["Laptop Dell", "Dell", "2020"]]


def _wizard_in_preview(rows=None, batch_size: int = 100) -> ImportWizard:
    wizard = ImportWizard(batch_size=batch_size, preview_rows=10)
    wizard.load_file(build_xlsx(rows or LAPTOP_SHEET), "assets.xlsx")
    wizard.proceed_to_preview()
    return wizard


# ─────────────────────────── transitions ───────────────────────────
@pytest.mark.parametrize("current, target", sorted(ALLOWED_TRANSITIONS))
def test_listed_edges_are_allowed(current, target) -> None:
    assert transition(current, target) is target


@pytest.mark.parametrize(
    "current, target",
    [
        (ImportStep.UPLOAD, ImportStep.PREVIEW),
        (ImportStep.UPLOAD, ImportStep.UPLOADING),
        (ImportStep.MAPPING, ImportStep.UPLOADING),
        (ImportStep.UPLOADING, ImportStep.MAPPING),
        (ImportStep.UPLOADING, ImportStep.UPLOADING),
        (ImportStep.UPLOAD, ImportStep.UPLOAD),
    ],
)
def test_unlisted_edges_are_rejected(current, target) -> None:
    with pytest.raises(InvalidTransitionError) as exc:
        transition(current, target)
    assert exc.value.current is current
    assert exc.value.target is target


# ─────────────────────────── flows ───────────────────────────
def test_upload_moves_to_mapping_with_suggested_mapping() -> None:
    wizard = ImportWizard()
    wizard.load_file(build_xlsx(LAPTOP_SHEET), "assets.xlsx")

    snap = wizard.snapshot()
    assert snap["step"] == "mapping"
    assert snap["filename"] == "assets.xlsx"
    assert snap["headers"] == ["Nama Barang", "Merk", "Tahun"]
    assert snap["mapping"] == {"Nama Barang": "name", "Merk": "merk", "Tahun": "tahun"}
    assert snap["row_count"] == 1
    assert snap["target_fields"] == ["name", "merk", "tahun", "no_asset", "pemakai", "site", "lokasi"]


def test_bad_file_keeps_wizard_in_upload_with_error() -> None:
    wizard = ImportWizard()
    with pytest.raises(FileFormatError):
        wizard.load_file(b"a,b\n1,2\n", "assets.csv")
    snap = wizard.snapshot()
    assert snap["step"] == "upload"
    assert snap["error"] == "Please upload a valid Excel file (.xlsx or .xls)"
    assert snap["headers"] == []


def test_successful_commit_returns_to_upload_and_clears_state() -> None:
    wizard = _wizard_in_preview()
    written = []

    result = wizard.commit(written.extend)

    assert (result.inserted, result.batches) == (1, 1)
    assert written[0]["name"] == "Laptop Dell"
    assert written[0]["tahun"] == 2020
    snap = wizard.snapshot()
    assert snap["step"] == "upload"
    assert snap["headers"] == [] and snap["mapping"] == {} and snap["preview"] == []
    assert snap["last_result"] == {"inserted": 1, "batches": 1}


def test_validation_failure_returns_to_preview_without_writes() -> None:
    rows = [["Nama", "Tahun"], ["Meja", "2019"], [None, "abc"]]
    wizard = _wizard_in_preview(rows)
    calls = []

    with pytest.raises(ImportValidationError) as exc:
        wizard.commit(calls.append)

    assert calls == []
    assert exc.value.errors == ["Row 3: Name is required", "Row 3: Year must be a valid number"]
    snap = wizard.snapshot()
    assert snap["step"] == "preview"
    assert snap["error"].startswith("Validation errors found:\n")
    assert snap["mapped_count"] == 2


def test_validation_errors_cite_sheet_rows_past_blank_lines() -> None:
    rows = [["Nama", "Merk"], ["Meja", "A"], [None, None], [None, "B"]]
    wizard = _wizard_in_preview(rows)

    with pytest.raises(ImportValidationError) as exc:
        wizard.commit(lambda batch: None)

    assert exc.value.errors == ["Row 4: Name is required"]


def test_set_mapping_rejects_unknown_field() -> None:
    wizard = ImportWizard()
    wizard.load_file(build_xlsx(LAPTOP_SHEET), "assets.xlsx")
    with pytest.raises(MappingError, match="Unknown field: price"):
        wizard.set_mapping("Merk", "price")
    assert wizard.mapping["Merk"] is TargetField.MERK


def test_batch_failure_returns_to_preview_with_rows_intact() -> None:
    rows = [["Nama"]] + [[f"Asset {i}"] for i in range(250)]
    wizard = _wizard_in_preview(rows, batch_size=100)
    before = list(wizard.mapped_rows)
    calls = []

    def insert(batch):
        calls.append(len(batch))
        if len(calls) == 2:
            raise RuntimeError("disk full")

    with pytest.raises(BatchInsertError) as exc:
        wizard.commit(insert)

    assert calls == [100, 100]
    assert exc.value.batch_number == 2
    assert exc.value.committed_rows == 100
    assert wizard.step is ImportStep.PREVIEW
    assert wizard.mapped_rows == before
    assert wizard.snapshot()["error"] == "Failed to insert batch 2: disk full"


def test_retry_after_batch_failure_is_allowed() -> None:
    wizard = _wizard_in_preview()
    attempts = []

    def flaky(batch):
        attempts.append(batch)
        if len(attempts) == 1:
            raise RuntimeError("timeout")

    with pytest.raises(BatchInsertError):
        wizard.commit(flaky)
    result = wizard.commit(flaky)
    assert result.inserted == 1
    assert wizard.step is ImportStep.UPLOAD


def test_no_reset_or_second_commit_while_uploading() -> None:
    wizard = _wizard_in_preview()
    seen = {}

    def insert(batch):
        seen["step"] = wizard.step
        with pytest.raises(WizardStepError):
            wizard.reset()
        with pytest.raises(WizardStepError):
            wizard.commit(lambda b: None)

    wizard.commit(insert)
    assert seen["step"] is ImportStep.UPLOADING
    assert wizard.step is ImportStep.UPLOAD


def test_preview_shows_first_rows_only() -> None:
    rows = [["Nama", "Merk"]] + [[f"Asset {i}", "X"] for i in range(25)]
    wizard = _wizard_in_preview(rows)
    snap = wizard.snapshot()
    assert snap["mapped_count"] == 25
    assert len(snap["preview"]) == 10
    assert snap["preview"][0] == {"name": "Asset 0", "merk": "X"}


# ─────────────────────────── step gating ───────────────────────────
def test_operations_are_gated_by_step() -> None:
    wizard = ImportWizard()
    with pytest.raises(WizardStepError):
        wizard.set_mapping("Nama", TargetField.NAME)
    with pytest.raises(WizardStepError):
        wizard.proceed_to_preview()
    with pytest.raises(WizardStepError):
        wizard.back()
    with pytest.raises(WizardStepError):
        wizard.commit(lambda b: None)
    assert wizard.step is ImportStep.UPLOAD

    wizard.load_file(build_xlsx(LAPTOP_SHEET), "assets.xlsx")
    with pytest.raises(WizardStepError):
        wizard.load_file(build_xlsx(LAPTOP_SHEET), "again.xlsx")
    with pytest.raises(WizardStepError):
        wizard.commit(lambda b: None)
    assert wizard.step is ImportStep.MAPPING


def test_preview_needs_at_least_one_mapped_column() -> None:
    wizard = ImportWizard()
    wizard.load_file(build_xlsx([["Catatan"], ["x"]]), "notes.xlsx")
    assert wizard.mapping == {}
    with pytest.raises(MappingError):
        wizard.proceed_to_preview()
    assert wizard.step is ImportStep.MAPPING


def test_back_from_preview_keeps_mapping_and_back_from_mapping_drops_file() -> None:
    wizard = _wizard_in_preview()
    assert wizard.back() is ImportStep.MAPPING
    assert wizard.mapping["Merk"] is TargetField.MERK

    wizard.set_mapping("Merk", None)
    assert "Merk" not in wizard.mapping

    assert wizard.back() is ImportStep.UPLOAD
    assert wizard.headers == [] and wizard.filename is None


def test_reset_from_any_idle_step() -> None:
    wizard = _wizard_in_preview()
    wizard.reset()
    assert wizard.step is ImportStep.UPLOAD
    assert wizard.rows == []
    wizard.reset()
    assert wizard.step is ImportStep.UPLOAD


# ─────────────────────────── registry ───────────────────────────
def test_registry_lifecycle() -> None:
    registry = ImportSessionRegistry(batch_size=50, preview_rows=5)
    wizard = registry.create()
    assert registry.get(wizard.id) is wizard
    assert wizard.batch_size == 50
    assert len(registry) == 1

    registry.discard(wizard.id)
    assert len(registry) == 0
    with pytest.raises(UnknownSessionError):
        registry.get(wizard.id)
