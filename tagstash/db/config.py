"""Application configuration."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Storage locations
    data_dir: str = "data"
    sql_echo: bool = False

    # Ingestion limits
    max_image_bytes: int = 256 * 1024
    fetch_timeout_seconds: float = 30.0
    fetch_max_bytes: int = 20 * 1024 * 1024

    # Retrieval
    random_max_attempts: int = 50
    public_base_url: Optional[str] = None

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="",
        extra="ignore",
    )

    @property
    def uploads_dir(self) -> Path:
        """Get directory holding stored image blobs."""
        return Path(self.data_dir) / "uploads"

    @property
    def db_file(self) -> Path:
        """Get path of the SQLite catalog file."""
        return Path(self.data_dir) / "db.sqlite"

    @property
    def database_url(self) -> str:
        """Construct SQLite database URL."""
        return f"sqlite:///{self.db_file}"


# Global settings instance
settings = Settings()
