import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import dotenv_values

from .logging import get_logger

log = get_logger("config")


DEFAULT_VISION_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_VISION_MODEL = "llama-3.2-11b-vision-preview"
DEFAULT_APP_BASE_URL = "http://localhost:8000"
DEFAULT_BUCKET = "product-images"
DEFAULT_MAX_UPLOAD_MB = 10


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running tools from subdirectories (e.g., `src/`) still find
    repository-level config files like `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Read key=value pairs from the nearest .env without touching os.environ."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    try:
        values = dotenv_values(path)
    except OSError as e:
        log.warning(f"Failed reading .env: {e}")
        return {}
    env = {k: v.strip() for k, v in values.items() if v is not None}
    log.debug(f"Loaded {len(env)} key(s) from .env at {path}")
    return env


def _lookup(env: Dict[str, str], *names: str) -> Optional[str]:
    """First non-empty value among names, process environment winning over .env."""
    for name in names:
        v = os.environ.get(name)
        if v and v.strip():
            return v.strip()
    for name in names:
        v = env.get(name) or env.get(name.lower())
        if v and v.strip():
            return v.strip()
    return None


def _int_or(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        log.warning(f"Ignoring non-integer setting value {value!r}; using {default}")
        return default


def _float_or_none(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        log.warning(f"Ignoring non-numeric timeout {value!r}")
        return None


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the vision provider, storage and web app."""

    vision_api_key: Optional[str]
    vision_base_url: str = DEFAULT_VISION_BASE_URL
    vision_model: str = DEFAULT_VISION_MODEL
    vision_timeout_seconds: Optional[float] = None
    storage_backend: str = "local"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    supabase_bucket: str = DEFAULT_BUCKET
    app_base_url: str = DEFAULT_APP_BASE_URL
    max_upload_mb: int = DEFAULT_MAX_UPLOAD_MB

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


def load_settings(dotenv_dir: Optional[str] = None) -> Settings:
    env = _read_dotenv(dotenv_dir or os.getcwd())
    backend = (_lookup(env, "STORAGE_BACKEND") or "local").lower()
    if backend not in {"local", "supabase"}:
        log.warning(f"Unknown STORAGE_BACKEND={backend!r}; falling back to 'local'")
        backend = "local"
    settings = Settings(
        vision_api_key=_lookup(env, "VISION_API_KEY", "GROQ_API_KEY", "OPENAI_API_KEY"),
        vision_base_url=_lookup(env, "VISION_BASE_URL") or DEFAULT_VISION_BASE_URL,
        vision_model=_lookup(env, "VISION_MODEL") or DEFAULT_VISION_MODEL,
        vision_timeout_seconds=_float_or_none(_lookup(env, "VISION_TIMEOUT_SECONDS")),
        storage_backend=backend,
        supabase_url=_lookup(env, "SUPABASE_URL"),
        supabase_key=_lookup(env, "SUPABASE_KEY", "SUPABASE_SERVICE_ROLE_KEY"),
        supabase_bucket=_lookup(env, "SUPABASE_BUCKET") or DEFAULT_BUCKET,
        app_base_url=(_lookup(env, "APP_BASE_URL") or DEFAULT_APP_BASE_URL).rstrip("/"),
        max_upload_mb=_int_or(_lookup(env, "MAX_UPLOAD_MB"), DEFAULT_MAX_UPLOAD_MB),
    )
    log.debug(
        f"Settings: model={settings.vision_model} base_url={settings.vision_base_url} "
        f"storage={settings.storage_backend} max_upload_mb={settings.max_upload_mb}"
    )
    return settings
