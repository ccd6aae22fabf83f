"""Pydantic models for locally persisted skill state."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SkillSource(str, Enum):
    """Where an installed skill came from.

    Only ``REGISTRY`` skills are checked for updates.
    """

    REGISTRY = "registry"
    LOCAL = "local"
    EXTERNAL = "external"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InstalledSkillRecord(BaseModel):
    """One entry of the installed-skills manifest.

    Persisted with camelCase keys (``installPath``, ``installedAt``) so
    the state file stays readable by other clients of the same format.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    version: str
    install_path: str = Field(alias="installPath")
    installed_at: str = Field(default_factory=_utc_now, alias="installedAt")
    source: SkillSource = SkillSource.REGISTRY

    def to_json_dict(self) -> dict:
        """Serialize for the state file."""
        return self.model_dump(mode="json", by_alias=True)
