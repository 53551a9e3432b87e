"""Tests for environment-driven configuration."""

from pathlib import Path

from asset_studio.config import StudioConfig, get_config, reset_config


def test_defaults(monkeypatch):
    for key in (
        "STUDIO_STORAGE_DIR",
        "STUDIO_PREFERENCES_PATH",
        "STUDIO_ACTIVITY_LOG",
        "OUTPAINT_ENDPOINT",
        "OUTPAINT_TIMEOUT",
        "FAL_KEY",
        "BACKGROUND_REMOVER",
        "REMBG_MODEL",
        "RATE_LIMIT_MAX_REQUESTS",
        "RATE_LIMIT_WINDOW_SECONDS",
    ):
        monkeypatch.delenv(key, raising=False)

    config = StudioConfig.from_env()

    assert config.storage_dir == Path("storage")
    assert config.preferences_path == Path("storage") / "preferences.json"
    assert config.activity_log_path == Path("output.txt")
    assert config.outpaint_endpoint == "http://127.0.0.1:8000/api/v1/outpaint"
    assert config.outpaint_timeout == 120.0
    assert config.fal_key is None
    assert config.background_remover == "local"
    assert config.rembg_model == "isnet-general-use"
    assert config.rate_limit_max_requests == 10
    assert config.rate_limit_window_seconds == 60.0


def test_overrides_and_bad_numbers(monkeypatch, tmp_path):
    monkeypatch.setenv("STUDIO_STORAGE_DIR", str(tmp_path))
    monkeypatch.setenv("OUTPAINT_TIMEOUT", "30")
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "not-a-number")
    monkeypatch.setenv("BACKGROUND_REMOVER", "REMOTE")
    monkeypatch.setenv("FAL_KEY", "")

    config = StudioConfig.from_env()

    assert config.preferences_path == tmp_path / "preferences.json"
    assert config.outpaint_timeout == 30.0
    assert config.rate_limit_max_requests == 10
    assert config.background_remover == "remote"
    assert config.fal_key is None


def test_get_config_is_cached_until_reset(monkeypatch):
    monkeypatch.setenv("REMBG_MODEL", "u2net")
    reset_config()
    first = get_config()
    monkeypatch.setenv("REMBG_MODEL", "silueta")

    assert get_config() is first
    reset_config()
    assert get_config().rembg_model == "silueta"
    reset_config()
