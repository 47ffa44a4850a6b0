import pytest
import requests

from price_tracker.catalog.storage import (
    LocalImageStore,
    StorageError,
    SupabaseImageStore,
    build_image_path,
    create_image_store,
)
from price_tracker.config import Settings


def test_build_image_path_uses_timestamp_and_extension():
    assert build_image_path("jpg", now_ms=1700000000123) == "product-images/1700000000123.jpg"
    assert build_image_path(".png", now_ms=1) == "product-images/1.png"


def test_local_store_writes_once(tmp_path):
    store = LocalImageStore(str(tmp_path), base_url="http://localhost:8000/")
    path = store.upload("product-images/1.jpg", b"abc", "image/jpeg")
    assert (tmp_path / "product-images" / "1.jpg").read_bytes() == b"abc"
    assert store.public_url(path) == "http://localhost:8000/media/product-images/1.jpg"
    with pytest.raises(StorageError):
        store.upload("product-images/1.jpg", b"def", "image/jpeg")


def test_local_store_refuses_paths_outside_root(tmp_path):
    store = LocalImageStore(str(tmp_path / "media"))
    with pytest.raises(StorageError):
        store.upload("../escape.jpg", b"x", "image/jpeg")


class _Response:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        self.text = "{}"

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


def test_supabase_store_posts_to_bucket(monkeypatch):
    store = SupabaseImageStore("https://abc.supabase.co/", "secret", "product-images")
    calls = []

    def fake_post(url, data=None, headers=None, timeout=None):
        calls.append((url, data, headers))
        return _Response(200)

    monkeypatch.setattr(store.s, "post", fake_post)
    path = store.upload("product-images/5.jpg", b"img", "image/jpeg")
    url, data, headers = calls[0]
    assert url == "https://abc.supabase.co/storage/v1/object/product-images/product-images/5.jpg"
    assert data == b"img"
    assert headers["Content-Type"] == "image/jpeg"
    assert store.s.headers["Authorization"] == "Bearer secret"
    assert store.public_url(path) == (
        "https://abc.supabase.co/storage/v1/object/public/product-images/product-images/5.jpg"
    )


def test_supabase_store_wraps_http_errors(monkeypatch):
    store = SupabaseImageStore("https://abc.supabase.co", "secret", "bucket")
    monkeypatch.setattr(store.s, "post", lambda *a, **k: _Response(403))
    with pytest.raises(StorageError):
        store.upload("product-images/5.jpg", b"img", "image/jpeg")


def test_create_image_store_picks_backend(tmp_path):
    local = create_image_store(Settings(vision_api_key=None), str(tmp_path))
    assert isinstance(local, LocalImageStore)
    assert local.root_dir == str(tmp_path / "var" / "media")

    remote = create_image_store(
        Settings(vision_api_key=None, storage_backend="supabase", supabase_url="https://x.supabase.co", supabase_key="k"),
        str(tmp_path),
    )
    assert isinstance(remote, SupabaseImageStore)

    with pytest.raises(ValueError):
        create_image_store(Settings(vision_api_key=None, storage_backend="supabase"), str(tmp_path))
