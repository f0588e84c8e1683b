"""Tests for credential loading with pydantic-settings."""

import pytest

from docai.config.secure_config import CredentialSettings, load_api_key


class TestCredentialSettings:
    """Test API key discovery."""

    def test_no_key(self):
        """Test None when nothing is configured."""
        assert load_api_key() is None

    @pytest.mark.parametrize("variable", ["DOCAI_API_KEY", "OPENAI_API_KEY", "AI_API_KEY"])
    def test_each_variable_is_accepted(self, monkeypatch, variable):
        """Test all supported variable names."""
        monkeypatch.setenv(variable, "sk-abc")

        assert load_api_key() == "sk-abc"

    def test_docai_variable_wins(self, monkeypatch):
        """Test lookup order prefers DOCAI_API_KEY."""
        monkeypatch.setenv("AI_API_KEY", "sk-generic")
        monkeypatch.setenv("DOCAI_API_KEY", "sk-docai")

        assert load_api_key() == "sk-docai"

    def test_blank_key_is_missing(self, monkeypatch):
        """Test whitespace-only keys are treated as unset."""
        monkeypatch.setenv("DOCAI_API_KEY", "   ")

        assert load_api_key() is None

    def test_key_is_masked(self, monkeypatch):
        """Test the secret does not appear in the settings repr."""
        monkeypatch.setenv("DOCAI_API_KEY", "sk-very-secret")

        settings = CredentialSettings()
        assert "sk-very-secret" not in repr(settings)
        assert settings.api_key.get_secret_value() == "sk-very-secret"

    def test_explicit_env_file(self, tmp_path):
        """Test reading an explicit .env file."""
        env_file = tmp_path / "creds.env"
        env_file.write_text("OPENAI_API_KEY=sk-from-file\n")

        assert load_api_key(env_file) == "sk-from-file"
