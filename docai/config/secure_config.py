"""Secure credential loading.

API keys are read with Pydantic Settings and wrapped in SecretStr so they are
masked in reprs, tracebacks and log lines. Access the raw key via
``.get_secret_value()`` only at the point where it is sent upstream.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import ConfigurationError


class CredentialSettings(BaseSettings):
    """Bearer token for the chat-completion provider.

    The key is looked up, in order, as ``DOCAI_API_KEY``, ``OPENAI_API_KEY``
    and ``AI_API_KEY``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: Optional[SecretStr] = Field(
        None,
        validation_alias=AliasChoices("DOCAI_API_KEY", "OPENAI_API_KEY", "AI_API_KEY"),
    )

    @field_validator("api_key", mode="before")
    @classmethod
    def blank_is_missing(cls, v):
        """Treat an empty or whitespace-only key as not configured."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


def load_api_key(env_file: Optional[Path] = None) -> Optional[str]:
    """Return the configured API key, or None when none is set.

    Args:
        env_file: Optional .env file to read in addition to the environment

    Raises:
        ConfigurationError: If the settings source cannot be parsed
    """
    try:
        if env_file is not None and env_file.exists():
            settings = CredentialSettings(_env_file=str(env_file))
        else:
            settings = CredentialSettings()
    except ValueError as e:
        raise ConfigurationError(f"Credential configuration is invalid: {e}") from e

    return settings.api_key.get_secret_value() if settings.api_key else None
