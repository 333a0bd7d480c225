"""Tests for settings loading."""

import pytest
from chatweave.config import Settings
from pydantic import ValidationError

ENV_VARS = [
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "CHATWEAVE_USE_STREAMING",
    "CHATWEAVE_INCLUDE_THOUGHTS_IN_HISTORY",
    "CHATWEAVE_EXPORT_FORMAT",
    "CHATWEAVE_AVAILABLE_MODELS",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    def test_defaults(self, clean_env):
        settings = Settings(_env_file=None)
        assert settings.api_key == ""
        assert settings.model == "gemini-2.5-flash"
        assert settings.use_streaming is True
        assert settings.include_thoughts_in_history is False
        assert settings.export_format == "plaintext"
        assert "gemini-2.5-pro" in settings.available_models

    def test_reads_environment(self, clean_env):
        clean_env.setenv("GEMINI_API_KEY", "from-env")
        clean_env.setenv("CHATWEAVE_USE_STREAMING", "false")
        settings = Settings(_env_file=None)
        assert settings.api_key == "from-env"
        assert settings.use_streaming is False

    def test_model_list_from_environment(self, clean_env):
        clean_env.setenv("CHATWEAVE_AVAILABLE_MODELS", '["gemini-a", "gemini-b"]')
        assert Settings(_env_file=None).available_models == ["gemini-a", "gemini-b"]

    def test_reads_env_file(self, clean_env, temp_dir):
        env_file = temp_dir / ".env"
        env_file.write_text("GEMINI_MODEL=gemini-from-file\n")
        assert Settings(_env_file=env_file).model == "gemini-from-file"

    def test_field_names_are_accepted(self, clean_env):
        settings = Settings(_env_file=None, api_key="direct", cancel_poll_interval=0.5)
        assert settings.api_key == "direct"
        assert settings.cancel_poll_interval == 0.5

    def test_poll_interval_must_be_positive(self, clean_env):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, cancel_poll_interval=0)

    def test_unknown_export_format_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, export_format="xml")
