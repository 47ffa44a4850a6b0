from __future__ import annotations

import base64
import io
import mimetypes
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from PIL import Image, ImageOps

from ..logging import get_logger
from .constants import (
    JPEG_QUALITY_STEPS,
    MAX_COMPRESSED_BYTES,
    MAX_IMAGE_DIMENSION,
    MAX_UPLOAD_BYTES,
    MESSAGES,
    MIME_EXTENSIONS,
)


LOG = get_logger("catalog-imaging")


class ImageSource(str, Enum):
    FILE = "file"
    CAMERA = "camera"
    DROP = "drop"
    PASTE = "paste"


class ImageRejectedError(ValueError):
    """Raised when an upload is refused; the message is safe to show users."""


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    mime_type: str
    source: ImageSource = ImageSource.FILE
    filename: Optional[str] = None

    @property
    def byte_size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return MIME_EXTENSIONS.get(self.mime_type, "bin")

    def preview_data_uri(self) -> str:
        b64 = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{b64}"


def sniff_mime(data: bytes) -> Optional[str]:
    """Guess an image MIME type from magic bytes."""
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:2] == b"BM":
        return "image/bmp"
    if data[:4] in (b"MM\x00\x2a", b"II\x2a\x00"):
        return "image/tiff"
    if data[4:12] in (b"ftypheic", b"ftypheix", b"ftypmif1"):
        return "image/heic"
    return None


def acquire_image(
    data: Optional[bytes],
    mime_type: Optional[str] = None,
    *,
    source: ImageSource = ImageSource.FILE,
    filename: Optional[str] = None,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> ImageUpload:
    """Accept raw image bytes from any capture path or raise ImageRejectedError."""
    if not data:
        raise ImageRejectedError(MESSAGES["no_image"])
    if len(data) > max_bytes:
        LOG.info("Rejected %s upload of %d bytes (limit %d)", source.value, len(data), max_bytes)
        raise ImageRejectedError(MESSAGES["too_large"].format(mb=max_bytes // (1024 * 1024)))

    mime = (mime_type or "").split(";")[0].strip().lower()
    if not mime or mime == "application/octet-stream":
        mime = sniff_mime(data) or ""
    if not mime.startswith("image/"):
        LOG.info("Rejected %s upload with MIME type %r", source.value, mime or None)
        raise ImageRejectedError(MESSAGES["not_image"])

    LOG.debug("Accepted %s upload: %s, %d bytes", source.value, mime, len(data))
    return ImageUpload(data=data, mime_type=mime, source=source, filename=filename)


def load_image_file(path: str, *, source: ImageSource = ImageSource.FILE, max_bytes: int = MAX_UPLOAD_BYTES) -> ImageUpload:
    with open(path, "rb") as f:
        data = f.read()
    mime, _ = mimetypes.guess_type(path)
    return acquire_image(data, mime, source=source, filename=os.path.basename(path), max_bytes=max_bytes)


def _jpeg_name(filename: Optional[str]) -> Optional[str]:
    if not filename:
        return None
    return os.path.splitext(filename)[0] + ".jpg"


def compress_image(
    upload: ImageUpload,
    *,
    max_dimension: int = MAX_IMAGE_DIMENSION,
    max_bytes: int = MAX_COMPRESSED_BYTES,
) -> ImageUpload:
    """Downscale and re-encode as JPEG so the upload fits both bounds.

    Images already inside the bounds come back untouched. On any decoder
    failure the original upload is returned.
    """
    try:
        with Image.open(io.BytesIO(upload.data)) as img:
            width, height = img.size
            if max(width, height) <= max_dimension and upload.byte_size <= max_bytes:
                LOG.debug("Image %dx%d (%d bytes) already within bounds", width, height, upload.byte_size)
                return upload

            out = ImageOps.exif_transpose(img)
            if out.mode not in ("RGB", "L"):
                out = out.convert("RGB")
            # thumbnail() only ever shrinks
            out.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

            data = b""
            for quality in JPEG_QUALITY_STEPS:
                buf = io.BytesIO()
                out.save(buf, format="JPEG", quality=quality, optimize=True)
                data = buf.getvalue()
                if len(data) <= max_bytes:
                    break
            LOG.debug(
                "Compressed %dx%d -> %dx%d, %d KB -> %d KB (quality=%d)",
                width, height, out.size[0], out.size[1],
                upload.byte_size // 1024, len(data) // 1024, quality,
            )
    except Exception as exc:
        LOG.warning("Image compression failed (%s); sending original", exc)
        return upload

    if len(data) >= upload.byte_size:
        LOG.debug("Re-encoded image is not smaller than the source; keeping original")
        return upload
    return ImageUpload(data=data, mime_type="image/jpeg", source=upload.source, filename=_jpeg_name(upload.filename))
