"""Application configuration management using Pydantic Settings.

This module provides centralized configuration for the PACSView server,
supporting environment variables and .env files for different deployment environments.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root (parent of the pacsview/ package directory)
PROJECT_DIR = Path(__file__).parent.parent.parent
ENV_FILE = PROJECT_DIR / ".env"

# Load environment variables from .env file
load_dotenv(ENV_FILE)


class StorageSettings(BaseSettings):
    """Configuration for the DICOM storage tree, indexing and thumbnails."""

    model_config = SettingsConfigDict(env_prefix="DICOM_")

    # Storage paths
    root_path: Path = Field(
        default=Path("./storage/dicom"), description="Root directory scanned for DICOM files"
    )
    thumbnail_cache_path: Path = Field(
        default=Path("./cache/thumbnails"), description="Directory for cached thumbnails"
    )

    # Thumbnail settings
    thumbnail_size: int = Field(
        default=128, ge=16, le=1024, description="Default thumbnail longest side in pixels"
    )
    max_thumbnail_size: int = Field(
        default=1024, ge=16, description="Largest thumbnail size a caller may request"
    )
    thumbnail_quality: int = Field(default=80, ge=0, le=100, description="Thumbnail JPEG quality")

    # Rendering settings
    default_jpeg_quality: int = Field(
        default=85, ge=0, le=100, description="JPEG quality for rendered images"
    )

    # Indexing settings
    excluded_extensions: list[str] = Field(
        default=[".png", ".jpg", ".jpeg", ".txt", ".json"],
        description="File extensions skipped while scanning (cached artifacts, dumps)",
    )
    index_on_startup: bool = Field(default=True, description="Rebuild the index after startup")
    startup_delay_seconds: float = Field(
        default=1.0, ge=0.0, description="Delay before the startup rebuild begins"
    )
    progress_log_interval: int = Field(
        default=100, ge=1, description="Log scan progress every N files"
    )

    @field_validator("excluded_extensions")
    @classmethod
    def normalize_extensions(cls, value: list[str]) -> list[str]:
        """Lower-case extensions and make sure each starts with a dot."""
        normalized = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        return normalized


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="PACSView Server", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    json_logs: bool = Field(default=False, description="Emit JSON logs outside production")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=5180, ge=1, le=65535, description="Server port")
    workers: int = Field(default=1, ge=1, le=32, description="Number of workers")

    # CORS settings
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")
    cors_allow_credentials: bool = Field(default=False, description="Allow CORS credentials")

    # Nested settings
    dicom: StorageSettings = Field(default_factory=StorageSettings)

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Validate settings after initialization."""
        if self.environment == "production" and self.debug:
            raise ValueError("Debug mode must be disabled in production (DEBUG=false)")
        if self.dicom.max_thumbnail_size < self.dicom.thumbnail_size:
            raise ValueError("DICOM_MAX_THUMBNAIL_SIZE must not be below DICOM_THUMBNAIL_SIZE")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
