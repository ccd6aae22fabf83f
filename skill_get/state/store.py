"""Per-user key-value state file.

Holds the registry credentials, the configured agent and API URL, and
the installed-skills manifest in a single JSON document::

    {
        "token": "...",
        "username": "alice",
        "apiUrl": "https://api.mcpskills.dev",
        "agent": "claude-code",
        "skillsPath": "/home/alice/.claude/skills",
        "installedSkills": {"my-skill": {...}}
    }

The file is read lazily on first access and written synchronously on
every mutation.  It is created on the first write, never before.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from skill_get.errors import StateFileError

logger = logging.getLogger(__name__)


class StateStore:
    """JSON-file backed key-value store.

    One instance is created per process by the CLI entry point and
    handed to everything that needs persisted state.

    Parameters
    ----------
    path:
        Location of the state file.  Parent directories are created
        on first write.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: Optional[Dict[str, Any]] = None

    @property
    def path(self) -> Path:
        return self._path

    # ── public interface ────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under *key* or *default*."""
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store *value* under *key* and persist."""
        data = dict(self._load())
        data[key] = value
        self._write(data)

    def delete(self, *keys: str) -> None:
        """Remove *keys* (missing keys are ignored) and persist."""
        data = dict(self._load())
        removed = False
        for key in keys:
            if key in data:
                del data[key]
                removed = True
        if removed:
            self._write(data)

    # ── internals ───────────────────────────────────────────────────

    def _load(self) -> Dict[str, Any]:
        if self._data is None:
            self._data = self._read()
        return self._data

    def _read(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Corrupt state file %s, starting empty: %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("State file %s is not a JSON object, starting empty", self._path)
            return {}
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".state-", suffix=".json", dir=str(self._path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2)
                    fh.write("\n")
                # The file holds the bearer token
                os.chmod(tmp_path, 0o600)
                os.replace(tmp_path, self._path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise StateFileError(f"Failed to write state file {self._path}: {exc}") from exc
        self._data = data
        logger.debug("State file written: %s", self._path)
