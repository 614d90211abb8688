"""
uploads/store.py -- Local-disk blob store for profile photos.

The registration flow never handles file bytes. A photo is uploaded first,
stored here, and the caller gets back a reference (a URL under
UPLOAD_URL_PREFIX) that the registration form then submits as
profile_photo.

Contract:
  store(data, mime_type) -> reference
  raises TooLarge (over max_bytes), BadType (not JPEG/PNG/GIF),
  BlobStoreError (disk failure; detail logged, never returned)

Files are written under random names so an uploaded filename never reaches
the filesystem. The extension comes from the MIME type, not the upload.

Usage:
    blobs = LocalBlobStore(Path("uploads/files"), url_prefix="/uploads")
    ref = blobs.store(raw_bytes, "image/png")   # "/uploads/3f2a...c1.png"
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from core.errors import BadType, BlobStoreError, TooLarge

logger = logging.getLogger("doregister.uploads")

ALLOWED_TYPES: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
}

DEFAULT_MAX_BYTES = 5 * 1024 * 1024

# Leading bytes each allowed type must start with. The declared MIME type is
# client-controlled, so the content has to agree with it.
_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    ".jpg": (b"\xff\xd8\xff",),
    ".png": (b"\x89PNG\r\n\x1a\n",),
    ".gif": (b"GIF87a", b"GIF89a"),
}


class LocalBlobStore:
    def __init__(self, root: Path, url_prefix: str = "/uploads", max_bytes: int = DEFAULT_MAX_BYTES) -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        self.max_bytes = max_bytes

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def store(self, data: bytes, mime_type: str | None) -> str:
        """Persist an image and return its public reference."""
        mime = (mime_type or "").split(";")[0].strip().lower()
        extension = ALLOWED_TYPES.get(mime)
        if extension is None:
            raise BadType()
        if len(data) > self.max_bytes:
            raise TooLarge(f"File size exceeds {self.max_bytes / (1024 * 1024):g}MB limit.")
        if not data:
            raise BadType("Uploaded file is empty.")
        if not data.startswith(_SIGNATURES[extension]):
            raise BadType("File content does not match its declared type.")

        name = f"{uuid.uuid4().hex}{extension}"
        try:
            self.ensure_root()
            (self.root / name).write_bytes(data)
        except OSError as exc:
            logger.exception("Could not write upload %s", name)
            raise BlobStoreError() from exc
        logger.info("Stored upload %s (%d bytes, %s)", name, len(data), mime)
        return f"{self.url_prefix}/{name}"
