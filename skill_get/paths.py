"""Agent detection and install-path resolution.

Every coding agent reads skills from a well-known directory under the
user's home.  This module maps an agent identifier to that directory and
a skill name to its install location.  Nothing here touches the
filesystem except for the existence probes in :func:`detect_agent`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from skill_get.constants import APP_NAME
from skill_get.errors import InvalidSkillNameError

DEFAULT_AGENT = "default"

# Agent identifier → skills directory relative to the home directory
_SKILL_DIRS: Dict[str, str] = {
    "claude-code": ".claude/skills",
    "claude-desktop": ".claude/skills",
    "codex": ".codex/skills",
    "cursor": ".cursor/skills",
    "windsurf": ".windsurf/skills",
    "continue": ".continue/skills",
    "aider": ".aider/skills",
    DEFAULT_AGENT: ".ai-skills",
}

_DISPLAY_NAMES: Dict[str, str] = {
    "claude-code": "Claude Code",
    "claude-desktop": "Claude Desktop",
    "codex": "Codex",
    "cursor": "Cursor",
    "windsurf": "Windsurf",
    "continue": "Continue",
    "aider": "Aider",
    DEFAULT_AGENT: "Default",
}

KNOWN_AGENTS: Tuple[str, ...] = tuple(_SKILL_DIRS)

# Environment variables set by a running agent session (checked in order)
_ENV_SIGNALS: Tuple[Tuple[str, str], ...] = (
    ("CLAUDE_CODE", "claude-code"),
    ("CURSOR_SESSION", "cursor"),
    ("WINDSURF_SESSION", "windsurf"),
    ("CODEX_SESSION", "codex"),
)

# Configuration directories probed when no env signal is present.
# Claude comes first so a machine with several agents prefers it.
_DIR_SIGNALS: Tuple[Tuple[str, str], ...] = (
    (".claude", "claude-code"),
    (".cursor", "cursor"),
    (".windsurf", "windsurf"),
    (".codex", "codex"),
    (".continue", "continue"),
    (".aider", "aider"),
)


def _home(home: Optional[Path]) -> Path:
    return Path(home) if home is not None else Path.home()


def detect_agent(
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> str:
    """Return the agent identifier for the current environment.

    Environment signals win over configuration directories; with
    neither present the ``default`` agent is returned.  The result only
    depends on *environ* and the contents of *home*.
    """
    env = os.environ if environ is None else environ
    for var, agent in _ENV_SIGNALS:
        if env.get(var):
            return agent

    base = _home(home)
    for dirname, agent in _DIR_SIGNALS:
        if (base / dirname).exists():
            return agent

    return DEFAULT_AGENT


def skills_dir(agent: str, home: Optional[Path] = None) -> Path:
    """Return the skills directory for *agent* (unknown agents use the default)."""
    relative = _SKILL_DIRS.get(agent, _SKILL_DIRS[DEFAULT_AGENT])
    return _home(home) / relative


def check_skill_name(name: str) -> str:
    """Return *name* unchanged when it is a plain directory name.

    Separators, a leading dot (which also covers ``..``) and the empty
    string raise :class:`InvalidSkillNameError`.
    """
    if not name or name.startswith(".") or "/" in name or "\\" in name or "\0" in name:
        raise InvalidSkillNameError(name)
    return name


def resolve_install_path(agent: str, skill_name: str, home: Optional[Path] = None) -> Path:
    """Return the install directory for *skill_name* under *agent*."""
    return skills_dir(agent, home) / check_skill_name(skill_name)


def agent_display_name(agent: str) -> str:
    """Human-readable agent name, e.g. ``Claude Code``."""
    return _DISPLAY_NAMES.get(agent, agent)


# ── Per-user application directories ────────────────────────────────────


def config_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Directory holding ``state.json`` and the optional ``config.yaml``."""
    env = os.environ if environ is None else environ
    override = env.get("SKILL_GET_HOME")
    if override:
        return Path(override).expanduser()
    base = env.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")
    return Path(base) / APP_NAME


def cache_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Directory for downloads in flight and log files."""
    env = os.environ if environ is None else environ
    base = env.get("XDG_CACHE_HOME") or os.path.expanduser("~/.cache")
    return Path(base) / APP_NAME
