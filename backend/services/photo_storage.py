"""
services/photo_storage.py
──────────────────────────────────────────────
Local directory that stands in for the photo bucket. Photos are stored as
`<epoch-ms>_<original name>` and addressed by a public URL whose last path
segment is the stored file name.
"""
from __future__ import annotations

import logging
import re
import time
from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

PHOTO_URL_PREFIX = "/api/opname/photos"
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class PhotoRejectedError(Exception):
    pass


class PhotoStorage:
    def __init__(self, root: str | Path, max_bytes: int, url_prefix: str = PHOTO_URL_PREFIX):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.max_bytes = max_bytes
        self.url_prefix = url_prefix.rstrip("/")

    def _check(self, content: bytes) -> None:
        if not content:
            raise PhotoRejectedError("Foto asset wajib diupload")
        if len(content) > self.max_bytes:
            raise PhotoRejectedError(
                f"File terlalu besar. Maksimal {self.max_bytes // (1024 * 1024)}MB"
            )
        try:
            with Image.open(BytesIO(content)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise PhotoRejectedError("File foto tidak dikenali sebagai gambar") from e

    def save(self, content: bytes, filename: str) -> str:
        """Store the photo and return its public URL."""
        self._check(content)
        safe = _UNSAFE.sub("_", Path(filename or "photo").name).strip("._") or "photo"
        stamp = int(time.time() * 1000)
        name = f"{stamp}_{safe}"
        while (self.root / name).exists():
            stamp += 1
            name = f"{stamp}_{safe}"
        (self.root / name).write_bytes(content)
        logger.info(f"📷 Stored photo {name} ({len(content)} bytes)")
        return f"{self.url_prefix}/{name}"

    def path_for(self, name: str) -> Path | None:
        if not name or name != Path(name).name:
            return None
        path = self.root / name
        return path if path.is_file() else None

    def remove_by_url(self, url: str | None) -> bool:
        if not url:
            return False
        name = url.rstrip("/").split("/")[-1]
        path = self.path_for(name)
        if path is None:
            logger.warning(f"⚠️ Photo {name!r} not found in storage")
            return False
        path.unlink()
        logger.info(f"🗑️ Removed photo {name}")
        return True
