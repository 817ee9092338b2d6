from __future__ import annotations

import io
import uuid
from dataclasses import dataclass

from flask import current_app
from PIL import Image, UnidentifiedImageError

from myzo.integrations.storage.factory import build_storage_provider

MIN_FILES = 3
MAX_FILES = 10
MAX_BYTES = 5 * 1024 * 1024
ALLOWED_TYPES = ("image/jpeg", "image/png", "image/webp")
MAX_SIZE = (1200, 1200)
JPEG_QUALITY = 85


@dataclass
class UploadRejected(Exception):
    code: str
    message: str

    def to_payload(self) -> dict:
        return {"ok": False, "error": self.code, "message": self.message}


def _reencode(data: bytes) -> bytes:
    try:
        im = Image.open(io.BytesIO(data))
        im = im.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise UploadRejected("INVALID_IMAGE", "File is not a readable image") from e
    im.thumbnail(MAX_SIZE, Image.LANCZOS)
    out = io.BytesIO()
    im.save(out, format="JPEG", quality=JPEG_QUALITY, optimize=True)
    return out.getvalue()


def validate_files(files) -> None:
    if len(files) < MIN_FILES:
        raise UploadRejected("TOO_FEW_IMAGES", f"At least {MIN_FILES} images required")
    if len(files) > MAX_FILES:
        raise UploadRejected("TOO_MANY_IMAGES", f"At most {MAX_FILES} images allowed")
    for f in files:
        if (f.mimetype or "").lower() not in ALLOWED_TYPES:
            raise UploadRejected("UNSUPPORTED_TYPE", "Invalid file type. Only JPEG, PNG, and WebP are allowed.")


def store_product_images(files) -> list[str]:
    """Resize to fit 1200x1200, re-encode as JPEG q85 and store under products/. Returns public URLs."""
    validate_files(files)
    payloads = []
    for f in files:
        data = f.read()
        if len(data) > MAX_BYTES:
            raise UploadRejected("FILE_TOO_LARGE", "Each image must be 5MB or smaller")
        payloads.append(_reencode(data))

    storage = build_storage_provider()
    urls = []
    for body in payloads:
        key = f"products/{uuid.uuid4()}.jpg"
        urls.append(storage.put_object(key=key, data=body, content_type="image/jpeg"))
    current_app.logger.info("product_images_stored count=%s provider=%s", len(urls), storage.name)
    return urls
