"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from src.config.settings import Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("VECTOR_EXTENSION", raising=False)
        monkeypatch.delenv("CLIP_MODEL_NAME", raising=False)
        settings = Settings(_env_file=None)

        assert settings.vector_extension == "vectors"
        assert settings.clip_model_name == "ViT-B-32__openai"
        assert settings.is_production is False

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("VECTOR_EXTENSION", "vector")
        monkeypatch.setenv("CLIP_MODEL_NAME", "ViT-L-14__openai")
        monkeypatch.setenv("ENVIRONMENT", "production")

        settings = Settings(_env_file=None)

        assert settings.vector_extension == "vector"
        assert settings.clip_model_name == "ViT-L-14__openai"
        assert settings.is_production is True

    def test_unknown_extension_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, vector_extension="cube")

    def test_database_url_must_be_postgres(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, database_url="mysql://localhost/db")
