from __future__ import annotations

import pytest

from conftest import asset_row, build_png


@pytest.fixture()
def catalog(seed_assets, client):
    seed_assets([
        asset_row("Laptop Dell", merk="Dell", no_asset="INV-0001", site="Jakarta", lokasi="Lt 2"),
        asset_row("Meja Rapat", merk="Informa", no_asset="INV-0002", site="Bandung", lokasi="Ruang A"),
        asset_row("Printer", merk="Epson", no_asset="INV-0003", site="Jakarta", lokasi="Lt 1"),
    ])
    return {a["name"]: a["id"] for a in client.get("/api/assets").json()}


def _submit(client, asset_id, keterangan="ada", status="bagus", photo=True, **extra):
    data = {"asset_id": str(asset_id), **extra}
    if keterangan is not None:
        data["keterangan"] = keterangan
    if status is not None:
        data["status"] = status
    files = {"photo": ("meja foto.png", build_png(), "image/png")} if photo else None
    return client.post("/api/opname", data=data, files=files)


# ─────────────────────────── asset picker ───────────────────────────
def test_search_needs_four_characters(client, catalog):
    assert client.get("/api/assets/search", params={"q": "lap"}).json() == []
    names = [a["name"] for a in client.get("/api/assets/search", params={"q": "LAPT"}).json()]
    assert names == ["Laptop Dell"]


def test_search_matches_asset_number_and_brand(client, catalog):
    res = client.get("/api/assets/search", params={"q": "inv-000"})
    assert len(res.json()) == 3
    res = client.get("/api/assets/search", params={"q": "epso"})
    assert [a["name"] for a in res.json()] == ["Printer"]


def test_pending_lists_assets_without_records(client, seed_assets):
    seed_assets([asset_row(f"Asset {i:02d}") for i in range(12)])
    ids = {a["name"]: a["id"] for a in client.get("/api/assets").json()}
    assert _submit(client, ids["Asset 00"]).status_code == 201

    pending = client.get("/api/assets/pending").json()
    assert len(pending) == 10
    assert pending[0]["name"] == "Asset 01"
    assert all(not a["opnamed"] for a in pending)


# ─────────────────────────── submit ───────────────────────────
def test_submit_stores_record_and_photo(client, catalog):
    res = _submit(
        client, catalog["Printer"],
        keterangan="tidak_ada", status="rusak",
        h_perolehan="Rp 1.500.000", nilai_buku="",
    )
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["presence"] == "tidak_ada"
    assert body["condition"] == "rusak"
    assert body["keterangan_tidak_ada"] is True and body["keterangan_ada"] is False
    assert body["h_perolehan"] == 1500000.0
    assert body["nilai_buku"] is None
    assert body["asset"]["name"] == "Printer"
    assert body["image_url"].startswith("/api/opname/photos/")
    assert body["image_url"].endswith("_meja_foto.png")

    photo = client.get(body["image_url"])
    assert photo.status_code == 200
    assert photo.content == build_png()

    detail = client.get(f"/api/assets/{catalog['Printer']}").json()
    assert detail["opname_count"] == 1
    assert detail["current_opname"]["id"] == body["id"]
    assert detail["asset"]["opnamed"] is True


def test_submit_reports_every_missing_field(client, catalog, app):
    res = _submit(client, catalog["Printer"], keterangan=None, status=None, photo=False)
    assert res.status_code == 422
    errors = res.json()["detail"]["errors"]
    assert set(errors) == {"keterangan", "status", "image"}
    assert errors["image"] == "Foto asset wajib diupload"
    assert list(app.state.photo_storage.root.iterdir()) == []


def test_submit_for_unknown_asset(client, catalog):
    res = _submit(client, 9999)
    assert res.status_code == 404
    assert res.json()["detail"] == "Silakan pilih asset terlebih dahulu"


def test_submit_rejects_non_image(client, catalog):
    res = client.post(
        "/api/opname",
        data={"asset_id": str(catalog["Printer"]), "keterangan": "ada", "status": "bagus"},
        files={"photo": ("notes.png", b"plain text", "image/png")},
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "Upload gagal: File foto tidak dikenali sebagai gambar"


def test_viewer_cannot_submit(client, catalog, login_as):
    login_as("viewer")
    assert _submit(client, catalog["Printer"]).status_code == 403


# ─────────────────────────── records / delete ───────────────────────────
def test_records_search(client, catalog):
    for name in ("Laptop Dell", "Meja Rapat", "Printer"):
        assert _submit(client, catalog[name]).status_code == 201

    assert len(client.get("/api/opname").json()) == 3
    res = client.get("/api/opname", params={"q": "bandung"})
    assert [r["asset"]["name"] for r in res.json()] == ["Meja Rapat"]
    res = client.get("/api/opname", params={"q": "jakarta"})
    assert {r["asset"]["name"] for r in res.json()} == {"Laptop Dell", "Printer"}


def test_delete_removes_record_and_photo(client, catalog, app):
    record = _submit(client, catalog["Meja Rapat"]).json()
    photo_name = record["image_url"].rsplit("/", 1)[-1]
    assert (app.state.photo_storage.root / photo_name).is_file()

    res = client.delete(f"/api/opname/{record['id']}")
    assert res.status_code == 200
    assert res.json()["message"] == 'Data opname untuk "Meja Rapat" berhasil dihapus!'

    assert not (app.state.photo_storage.root / photo_name).exists()
    assert client.get(f"/api/opname/{record['id']}").status_code == 404
    pending = [a["name"] for a in client.get("/api/assets/pending").json()]
    assert "Meja Rapat" in pending


def test_auditor_cannot_delete(client, catalog, login_as):
    record = _submit(client, catalog["Printer"]).json()
    login_as("auditor")
    assert client.delete(f"/api/opname/{record['id']}").status_code == 403
    assert client.get(f"/api/opname/{record['id']}").status_code == 200


def test_delete_unknown_record(client):
    assert client.delete("/api/opname/12345").status_code == 404


def test_photo_route_refuses_unknown_files(client):
    assert client.get("/api/opname/photos/nothing.png").status_code == 404
