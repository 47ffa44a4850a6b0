import io
import os
import sys
from pathlib import Path
from typing import List, Optional, Tuple, Union

import pytest
from PIL import Image

# Ensure src/ is importable when tests run from repo root
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from price_tracker.catalog.db import ProductDatabase  # noqa: E402
from price_tracker.catalog.extraction import VisionExtractionError  # noqa: E402
from price_tracker.catalog.imaging import ImageUpload  # noqa: E402
from price_tracker.catalog.service import CatalogService  # noqa: E402
from price_tracker.catalog.storage import LocalImageStore  # noqa: E402


def make_image_bytes(size: Tuple[int, int] = (64, 48), fmt: str = "JPEG", color=(200, 30, 30), **save_kwargs) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


def make_noise_bytes(size: Tuple[int, int], fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3)).save(buf, format=fmt)
    return buf.getvalue()


class FakeVision:
    """Stands in for VisionClient; replays canned replies."""

    def __init__(self, replies: Optional[List[Union[str, Exception]]] = None) -> None:
        self.replies = list(replies or [])
        self.calls: List[ImageUpload] = []
        self.closed = False

    def extract_text(self, upload: ImageUpload) -> str:
        self.calls.append(upload)
        reply = self.replies.pop(0) if self.replies else VisionExtractionError("no reply queued")
        if isinstance(reply, Exception):
            raise reply
        return reply

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def jpeg_upload() -> ImageUpload:
    return ImageUpload(data=make_image_bytes(), mime_type="image/jpeg", filename="shelf.jpg")


@pytest.fixture
def fake_vision() -> FakeVision:
    return FakeVision()


@pytest.fixture
def catalog_db(tmp_path: Path) -> ProductDatabase:
    return ProductDatabase(db_path=str(tmp_path / "catalog" / "products.sqlite3"))


@pytest.fixture
def image_store(tmp_path: Path) -> LocalImageStore:
    return LocalImageStore(str(tmp_path / "media"), base_url="http://testserver")


@pytest.fixture
def service(catalog_db: ProductDatabase, image_store: LocalImageStore, fake_vision: FakeVision) -> CatalogService:
    return CatalogService(catalog_db, image_store, fake_vision, location_extractor=lambda data: None)
