"""Shared fixtures for the skill-get test suite."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path
from typing import Callable, Dict
from unittest.mock import MagicMock

import pytest

from skill_get.config.schema import Settings
from skill_get.registry.client import RegistryClient
from skill_get.state.manifest import ManifestStore
from skill_get.state.store import StateStore

_AGENT_ENV = (
    "CLAUDE_CODE",
    "CURSOR_SESSION",
    "WINDSURF_SESSION",
    "CODEX_SESSION",
    "SKILL_GET_API_URL",
    "SKILL_GET_AGENT",
    "SKILL_GET_TOKEN",
    "SKILL_GET_TIMEOUT",
    "SKILL_GET_LOG_LEVEL",
    "SKILL_GET_CONFIG",
    "SKILL_GET_HOME",
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path: Path, home: Path) -> Settings:
    return Settings(
        api_url="https://registry.test",
        agent="claude-code",
        skills_path=home / ".claude" / "skills",
        state_path=tmp_path / "config" / "state.json",
        cache_dir=tmp_path / "cache",
    )


@pytest.fixture
def state(settings: Settings) -> StateStore:
    return StateStore(settings.state_path)


@pytest.fixture
def manifest(state: StateStore) -> ManifestStore:
    return ManifestStore(state)


@pytest.fixture
def registry() -> MagicMock:
    """Registry double; ``spec=`` turns its async methods into ``AsyncMock``."""
    double = MagicMock(spec=RegistryClient)
    double.tarball_reference.side_effect = lambda name, version: (
        f"skills/{name}/versions/{version}/tarball"
    )
    return double


@pytest.fixture
def make_tarball() -> Callable[..., bytes]:
    """Build gzip tarball bytes from ``{archive path: text}``."""

    def _make(files: Dict[str, str]) -> bytes:
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w:gz") as tar:
            for name, text in files.items():
                data = text.encode("utf-8")
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(data))
        return buf.getvalue()

    return _make


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, home: Path) -> Dict[str, str]:
    """Isolate the process environment: fresh HOME, config and cache dirs."""
    for var in _AGENT_ENV:
        monkeypatch.delenv(var, raising=False)
    env = {
        "HOME": str(home),
        "SKILL_GET_HOME": str(tmp_path / "config"),
        "XDG_CACHE_HOME": str(tmp_path / "cache"),
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
