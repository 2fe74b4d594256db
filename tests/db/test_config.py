"""Tests for application settings."""

from pathlib import Path

from tagstash.db.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.max_image_bytes == 262144
    assert settings.random_max_attempts == 50
    assert settings.public_base_url is None


def test_paths_follow_data_dir(tmp_path: Path):
    settings = Settings(data_dir=str(tmp_path), _env_file=None)
    assert settings.uploads_dir == tmp_path / "uploads"
    assert settings.database_url == f"sqlite:///{tmp_path / 'db.sqlite'}"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MAX_IMAGE_BYTES", "1024")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://img.example.com")
    settings = Settings(_env_file=None)
    assert settings.max_image_bytes == 1024
    assert settings.public_base_url == "https://img.example.com"
