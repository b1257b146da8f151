"""Tests for configuration module."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from pacsview.core.config import Settings, StorageSettings, get_settings


class TestSettings:
    """Test Settings configuration."""

    def test_default_settings(self, monkeypatch):
        """Test default settings values."""
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        monkeypatch.delenv("PORT", raising=False)
        settings = Settings()
        assert settings.app_name == "PACSView Server"
        assert settings.app_version == "1.0.0"
        assert settings.environment == "development"
        assert settings.port == 5180
        assert settings.cors_origins == ["*"]

    def test_storage_settings(self, monkeypatch):
        """Test DICOM storage defaults."""
        for name in ("DICOM_ROOT_PATH", "DICOM_THUMBNAIL_SIZE", "DICOM_INDEX_ON_STARTUP"):
            monkeypatch.delenv(name, raising=False)
        storage = StorageSettings()
        assert storage.root_path == Path("./storage/dicom")
        assert storage.thumbnail_size == 128
        assert storage.thumbnail_quality == 80
        assert storage.default_jpeg_quality == 85
        assert storage.index_on_startup is True
        assert ".json" in storage.excluded_extensions

    def test_storage_settings_from_environment(self, monkeypatch, tmp_path):
        """Test DICOM_ prefixed environment variables."""
        monkeypatch.setenv("DICOM_ROOT_PATH", str(tmp_path))
        monkeypatch.setenv("DICOM_THUMBNAIL_SIZE", "256")
        monkeypatch.setenv("DICOM_INDEX_ON_STARTUP", "false")
        storage = StorageSettings()
        assert storage.root_path == tmp_path
        assert storage.thumbnail_size == 256
        assert storage.index_on_startup is False

    def test_excluded_extensions_are_normalized(self):
        storage = StorageSettings(excluded_extensions=["PNG", ".Txt", " ", "dcm.bak"])
        assert storage.excluded_extensions == [".png", ".txt", ".dcm.bak"]

    def test_production_rejects_debug(self):
        with pytest.raises(ValidationError):
            Settings(environment="production", debug=True)

    def test_thumbnail_size_above_maximum_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(dicom=StorageSettings(thumbnail_size=512, max_thumbnail_size=256))

    def test_get_settings_cached(self):
        """Test settings are cached."""
        settings1 = get_settings()
        settings2 = get_settings()
        assert settings1 is settings2
