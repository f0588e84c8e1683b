"""Global pytest fixtures and configuration.

This module provides shared fixtures for all tests including:
- A clean environment (no API keys or DOCAI_* settings leak in)
- Config factories pointing the cache at a temporary directory
- A controllable clock for cache expiry tests
- Telemetry recorders and scripted transports
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable

import pytest

from docai.config import Config, reset_config
from docai.telemetry import InMemoryTelemetry
from mocks.api_mocks import ScriptedTransport

TEST_API_KEY = "sk-test-0123456789abcdef"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Remove provider keys and DOCAI_* variables, and run from an empty directory.

    Running from ``tmp_path`` keeps a developer's .env file out of the tests.
    """
    for name in list(os.environ):
        if name.startswith("DOCAI_"):
            monkeypatch.delenv(name, raising=False)
    for name in ("OPENAI_API_KEY", "AI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def make_config(cache_dir: Path) -> Callable[..., Config]:
    """Factory for a fast, isolated Config.

    Retry delays are zero and the mock transport does not sleep unless a
    test asks otherwise.
    """

    def _make(**overrides: Any) -> Config:
        values = dict(
            api_key=TEST_API_KEY,
            base_url="https://llm.test/v1",
            cache_dir=cache_dir,
            retry_delay=0.0,
            max_delay=0.0,
            mock_delay_min=0.0,
            mock_delay_max=0.0,
            batch_delay=0.0,
            flush_delay=0.0,
        )
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def telemetry() -> InMemoryTelemetry:
    return InMemoryTelemetry()


@pytest.fixture
def scripted_transport() -> Callable[..., ScriptedTransport]:
    """Factory for ScriptedTransport instances."""
    return ScriptedTransport


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
