from __future__ import annotations

import os
import time
from typing import Optional, Protocol
from urllib.parse import quote

import requests

from ..config import Settings
from ..logging import get_logger
from ..paths import media_dir
from .constants import IMAGE_PATH_PREFIX


LOG = get_logger("catalog-storage")


class StorageError(RuntimeError):
    pass


class ImageStore(Protocol):
    def upload(self, path: str, data: bytes, content_type: str) -> str:
        ...

    def public_url(self, path: str) -> str:
        ...


def build_image_path(extension: str, *, now_ms: Optional[int] = None) -> str:
    """Return "product-images/<unix-ms>.<ext>"."""
    ts = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{IMAGE_PATH_PREFIX}/{ts}.{extension.lstrip('.') or 'bin'}"


class LocalImageStore:
    """Stores images on disk and serves them below `url_prefix`."""

    def __init__(self, root_dir: str, *, base_url: str = "", url_prefix: str = "/media") -> None:
        self.root_dir = os.path.abspath(root_dir)
        self.base_url = base_url.rstrip("/")
        self.url_prefix = "/" + url_prefix.strip("/")
        os.makedirs(self.root_dir, exist_ok=True)

    def _abs(self, path: str) -> str:
        target = os.path.abspath(os.path.join(self.root_dir, path))
        if os.path.commonpath([target, self.root_dir]) != self.root_dir:
            raise StorageError(f"Refusing to write outside media root: {path}")
        return target

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        target = self._abs(path)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            # "x" mode keeps an existing object from being overwritten
            with open(target, "xb") as fh:
                fh.write(data)
        except OSError as e:
            LOG.error(f"Local image write failed for {target}: {e}")
            raise StorageError(str(e)) from e
        LOG.info(f"Stored {len(data)} bytes ({content_type}) at {target}")
        return path

    def public_url(self, path: str) -> str:
        return f"{self.base_url}{self.url_prefix}/{quote(path)}"


class SupabaseImageStore:
    """Thin client for the Supabase Storage REST API (one public bucket)."""

    def __init__(self, base_url: str, api_key: str, bucket: str, *, timeout: int = 30) -> None:
        self.base = base_url.rstrip("/")
        self.bucket = bucket
        self.timeout = int(timeout)
        self.s = requests.Session()
        self.s.headers.update({
            "Authorization": f"Bearer {api_key}",
            "apikey": api_key,
        })

    def _url(self, path: str) -> str:
        return f"{self.base}/storage/v1/object/{self.bucket}/{quote(path)}"

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        LOG.info(f"POST object: bucket={self.bucket} path={path} bytes={len(data)}")
        try:
            r = self.s.post(
                self._url(path),
                data=data,
                headers={"Content-Type": content_type, "x-upsert": "false"},
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            body = getattr(getattr(e, "response", None), "text", None)
            LOG.error(f"Supabase upload failed: {e} body={body[:300] if body else None!r}")
            raise StorageError(str(e)) from e
        return path

    def public_url(self, path: str) -> str:
        return f"{self.base}/storage/v1/object/public/{self.bucket}/{quote(path)}"


def create_image_store(settings: Settings, root_dir: str) -> ImageStore:
    if settings.storage_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("STORAGE_BACKEND=supabase requires SUPABASE_URL and SUPABASE_KEY")
        LOG.info(f"Using Supabase storage bucket '{settings.supabase_bucket}'")
        return SupabaseImageStore(settings.supabase_url, settings.supabase_key, settings.supabase_bucket)
    return LocalImageStore(media_dir(root_dir), base_url=settings.app_base_url)
