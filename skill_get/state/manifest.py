"""Installed-skills manifest.

A thin typed view over the ``installedSkills`` key of the state file.
Only :class:`~skill_get.skills.manager.SkillManager` writes to it.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from skill_get.state.models import InstalledSkillRecord
from skill_get.state.store import StateStore

logger = logging.getLogger(__name__)

MANIFEST_KEY = "installedSkills"


class ManifestStore:
    """Mapping of skill name → :class:`InstalledSkillRecord`."""

    def __init__(self, store: StateStore) -> None:
        self._store = store

    def get(self, name: str) -> Optional[InstalledSkillRecord]:
        """Return the record for *name*, or ``None`` when absent."""
        raw = self._raw().get(name)
        if raw is None:
            return None
        return self._parse(name, raw)

    def put(self, record: InstalledSkillRecord) -> None:
        """Insert or overwrite the record keyed by ``record.name``."""
        entries = self._raw()
        entries[record.name] = record.to_json_dict()
        self._store.set(MANIFEST_KEY, entries)
        logger.debug("Manifest: recorded %s@%s", record.name, record.version)

    def delete(self, name: str) -> None:
        """Remove the record for *name*; absent names are a no-op."""
        entries = self._raw()
        if name not in entries:
            return
        del entries[name]
        self._store.set(MANIFEST_KEY, entries)
        logger.debug("Manifest: removed %s", name)

    def list(self) -> List[InstalledSkillRecord]:
        """Return all well-formed records (order is not significant)."""
        records: List[InstalledSkillRecord] = []
        for name, raw in self._raw().items():
            record = self._parse(name, raw)
            if record is not None:
                records.append(record)
        return records

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._raw()

    # ── internals ───────────────────────────────────────────────────

    def _raw(self) -> Dict[str, Any]:
        entries = self._store.get(MANIFEST_KEY)
        if not isinstance(entries, dict):
            return {}
        return dict(entries)

    @staticmethod
    def _parse(name: str, raw: Any) -> Optional[InstalledSkillRecord]:
        try:
            return InstalledSkillRecord.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Skipping malformed manifest entry '%s': %s", name, exc)
            return None
