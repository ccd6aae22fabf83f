"""Tagged outcomes of lifecycle operations.

Every :class:`~skill_get.skills.manager.SkillManager` operation returns
either :class:`Success` or :class:`Failure`; nothing raises past the
manager.  The CLI maps ``Failure`` to a non-zero exit status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


class Outcome(str, Enum):
    INSTALLED = "installed"
    UPDATED = "updated"
    ALREADY_CURRENT = "already_current"
    REMOVED = "removed"


class FailureKind(str, Enum):
    """Why an operation did not complete."""

    NETWORK_ERROR = "network_error"
    SKILL_NOT_FOUND = "skill_not_found"
    ALREADY_INSTALLED = "already_installed"
    NOT_INSTALLED = "not_installed"
    NO_VERSIONS_AVAILABLE = "no_versions_available"
    INVALID_BUNDLE = "invalid_bundle"
    IO_ERROR = "io_error"
    NOT_UPDATABLE = "not_updatable"


@dataclass(frozen=True)
class Success:
    name: str
    version: str
    path: str
    outcome: Outcome
    previous_version: Optional[str] = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    name: str
    kind: FailureKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Success, Failure]


@dataclass
class UpdateSummary:
    """Per-skill results of an update-all run, in processing order."""

    results: List[Result] = field(default_factory=list)

    @property
    def updated(self) -> List[Success]:
        return [
            r for r in self.results if isinstance(r, Success) and r.outcome is Outcome.UPDATED
        ]

    @property
    def current(self) -> List[Success]:
        return [
            r
            for r in self.results
            if isinstance(r, Success) and r.outcome is Outcome.ALREADY_CURRENT
        ]

    @property
    def failed(self) -> List[Failure]:
        return [r for r in self.results if isinstance(r, Failure)]

    @property
    def updated_count(self) -> int:
        return len(self.updated)

    @property
    def current_count(self) -> int:
        return len(self.current)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


@dataclass(frozen=True)
class UpdateCheck:
    """Installed vs. latest version of one registry skill (no changes made)."""

    name: str
    installed: str
    latest: Optional[str] = None
    error: Optional[str] = None

    @property
    def has_update(self) -> bool:
        return self.error is None and bool(self.latest) and self.latest != self.installed
