"""Local persisted state: the state file and the installed-skills manifest."""

from skill_get.state.manifest import ManifestStore
from skill_get.state.models import InstalledSkillRecord, SkillSource
from skill_get.state.store import StateStore

__all__ = [
    "InstalledSkillRecord",
    "ManifestStore",
    "SkillSource",
    "StateStore",
]
