"""Skill lifecycle: install, update, remove, local bundles and publishing helpers."""

from skill_get.skills.manager import SkillManager
from skill_get.skills.results import (
    Failure,
    FailureKind,
    Outcome,
    Result,
    Success,
    UpdateCheck,
    UpdateSummary,
)

__all__ = [
    "Failure",
    "FailureKind",
    "Outcome",
    "Result",
    "SkillManager",
    "Success",
    "UpdateCheck",
    "UpdateSummary",
]
