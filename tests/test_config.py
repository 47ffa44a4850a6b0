import pytest

from price_tracker.config import DEFAULT_VISION_BASE_URL, DEFAULT_VISION_MODEL, load_settings

_KEYS = (
    "VISION_API_KEY",
    "GROQ_API_KEY",
    "OPENAI_API_KEY",
    "VISION_BASE_URL",
    "VISION_MODEL",
    "VISION_TIMEOUT_SECONDS",
    "STORAGE_BACKEND",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_BUCKET",
    "APP_BASE_URL",
    "MAX_UPLOAD_MB",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_env(tmp_path):
    settings = load_settings(str(tmp_path))
    assert settings.vision_api_key is None
    assert settings.vision_base_url == DEFAULT_VISION_BASE_URL
    assert settings.vision_model == DEFAULT_VISION_MODEL
    assert settings.storage_backend == "local"
    assert settings.max_upload_bytes == 10 * 1024 * 1024


def test_dotenv_is_found_from_subdirectory(tmp_path):
    (tmp_path / ".env").write_text(
        "GROQ_API_KEY=gsk_test\nMAX_UPLOAD_MB=5\nAPP_BASE_URL=https://prices.example/\nstorage_backend=supabase\n",
        encoding="utf-8",
    )
    sub = tmp_path / "src" / "pkg"
    sub.mkdir(parents=True)
    settings = load_settings(str(sub))
    assert settings.vision_api_key == "gsk_test"
    assert settings.max_upload_mb == 5
    assert settings.app_base_url == "https://prices.example"
    assert settings.storage_backend == "supabase"


def test_process_env_wins_over_dotenv(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("VISION_API_KEY=from-file\nVISION_MODEL=file-model\n", encoding="utf-8")
    monkeypatch.setenv("VISION_API_KEY", "from-env")
    settings = load_settings(str(tmp_path))
    assert settings.vision_api_key == "from-env"
    assert settings.vision_model == "file-model"


def test_bad_values_fall_back(tmp_path, monkeypatch):
    monkeypatch.setenv("MAX_UPLOAD_MB", "lots")
    monkeypatch.setenv("VISION_TIMEOUT_SECONDS", "soon")
    monkeypatch.setenv("STORAGE_BACKEND", "s3")
    settings = load_settings(str(tmp_path))
    assert settings.max_upload_mb == 10
    assert settings.vision_timeout_seconds is None
    assert settings.storage_backend == "local"
