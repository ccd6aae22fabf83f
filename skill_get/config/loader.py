"""Settings resolution.

Builds the single :class:`~skill_get.config.schema.Settings` object for
a process.  Each field is resolved in priority order:

    CLI flag → environment variable → state file → config.yaml → default

The state file holds values written by ``skill-get config`` and
``skill-get login``; ``config.yaml`` is an optional, read-only file of
defaults (handy for CI images and shared machines).
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from skill_get import paths
from skill_get.config.schema import FileConfig, Settings
from skill_get.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_API_URL,
    DEFAULT_LOG_LEVEL,
    DEFAULT_TIMEOUT,
    STATE_FILE_NAME,
)
from skill_get.errors import ConfigurationError
from skill_get.state.store import StateStore

logger = logging.getLogger(__name__)

# Recognised config file extensions.
_YAML_EXTS = frozenset({".yaml", ".yml"})

# ${VAR} or ${VAR:-fallback}
_PLACEHOLDER_RE = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")

# Environment variables consulted during resolution
ENV_API_URL = "SKILL_GET_API_URL"
ENV_AGENT = "SKILL_GET_AGENT"
ENV_TOKEN = "SKILL_GET_TOKEN"
ENV_TIMEOUT = "SKILL_GET_TIMEOUT"
ENV_LOG_LEVEL = "SKILL_GET_LOG_LEVEL"
ENV_CONFIG = "SKILL_GET_CONFIG"

# State file keys
KEY_TOKEN = "token"
KEY_USERNAME = "username"
KEY_API_URL = "apiUrl"
KEY_AGENT = "agent"
KEY_SKILLS_PATH = "skillsPath"


def find_config_file(
    explicit: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Locate the YAML config file.

    Order: explicit path → ``$SKILL_GET_CONFIG`` → ``<config dir>/config.yaml``.
    Returns ``None`` when no file applies; an explicit or env-provided
    path is returned even if it does not exist (the loader reports it).
    """
    env = os.environ if environ is None else environ
    if explicit:
        return explicit
    from_env = env.get(ENV_CONFIG)
    if from_env:
        return from_env
    candidate = paths.config_dir(env) / CONFIG_FILE_NAME
    if candidate.is_file():
        return str(candidate)
    return None


def _read_config_file(cfg_fpath: str) -> Dict[str, Any]:
    """Read and parse a YAML config file from *cfg_fpath*.

    Raises :class:`ConfigurationError` on I/O or parse errors.
    """
    ext = os.path.splitext(cfg_fpath)[1].lower()
    if ext not in _YAML_EXTS:
        raise ConfigurationError(
            f"Unsupported config file extension '{ext}'. "
            "Only YAML files (.yaml, .yml) are supported."
        )

    try:
        with open(cfg_fpath, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)
    except Exception as exc:
        raise ConfigurationError(f"Error reading configuration file: {cfg_fpath}\n  {exc}") from exc

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ConfigurationError(
            "Top-level configuration content must be a YAML mapping (dictionary)."
        )
    return raw_data


def _format_validation_errors(exc: ValidationError) -> str:
    """Format Pydantic validation errors into a readable multi-line string."""
    lines: List[str] = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"]) or "(root)"
        lines.append(f"  • {loc}: {err['msg']}")
    return "\n".join(lines)


def expand_env_vars(value: Any, environ: Mapping[str, str]) -> Any:
    """Substitute ``${VAR}`` placeholders in the string leaves of *value*.

    ``${VAR:-fallback}`` yields *fallback* when ``VAR`` is unset or
    empty; a bare ``${VAR}`` that is unset stays as written so the
    validation error names it.
    """

    def _sub(match: re.Match) -> str:
        current = environ.get(match.group(1))
        fallback = match.group(2)
        if fallback is not None and not current:
            return fallback
        return match.group(0) if current is None else current

    if isinstance(value, str):
        return _PLACEHOLDER_RE.sub(_sub, value)
    if isinstance(value, dict):
        return {key: expand_env_vars(item, environ) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item, environ) for item in value]
    return value


def load_file_config(
    cfg_fpath: str,
    environ: Optional[Mapping[str, str]] = None,
) -> FileConfig:
    """Load, expand and validate the YAML config file.

    Raises:
        ConfigurationError: On missing file, I/O or parse errors, or
            validation failures (all errors reported at once).
    """
    logger.debug("Loading configuration file: %s", cfg_fpath)

    if not os.path.exists(cfg_fpath):
        raise ConfigurationError(f"Configuration file does not exist: {cfg_fpath}")

    env = os.environ if environ is None else environ
    raw_data = expand_env_vars(_read_config_file(cfg_fpath), env)

    try:
        return FileConfig.model_validate(raw_data)
    except ValidationError as exc:
        error_summary = _format_validation_errors(exc)
        raise ConfigurationError(
            f"Configuration validation failed ({len(exc.errors())} error(s)):\n" f"{error_summary}"
        ) from exc


def _first(*candidates: Any) -> Any:
    for value in candidates:
        if value is not None and value != "":
            return value
    return None


def load_settings(
    state: StateStore,
    *,
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Settings:
    """Resolve the process settings.

    Parameters
    ----------
    state:
        The process state store (credentials, stored API URL and agent).
    config_path:
        Explicit ``--config`` path; see :func:`find_config_file`.
    overrides:
        CLI-flag values keyed by :class:`Settings` field name.
        ``None`` values are ignored.
    environ:
        Environment mapping (defaults to ``os.environ``).
    home:
        Home directory used for agent detection and skills paths.
    """
    env = os.environ if environ is None else environ
    cli = {k: v for k, v in (overrides or {}).items() if v is not None}

    cfg_fpath = find_config_file(config_path, env)
    file_cfg = load_file_config(cfg_fpath, env) if cfg_fpath else FileConfig()

    agent = _first(
        cli.get("agent"),
        env.get(ENV_AGENT),
        state.get(KEY_AGENT),
        file_cfg.agent,
    ) or paths.detect_agent(env, home)

    raw: Dict[str, Any] = {
        "api_url": _first(
            cli.get("api_url"),
            env.get(ENV_API_URL),
            state.get(KEY_API_URL),
            file_cfg.api_url,
            DEFAULT_API_URL,
        ),
        "agent": agent,
        "skills_path": paths.skills_dir(agent, home),
        "token": _first(cli.get("token"), env.get(ENV_TOKEN), state.get(KEY_TOKEN)),
        "username": state.get(KEY_USERNAME),
        "timeout": _first(
            cli.get("timeout"),
            env.get(ENV_TIMEOUT),
            file_cfg.timeout,
            DEFAULT_TIMEOUT,
        ),
        "log_level": _first(
            cli.get("log_level"),
            env.get(ENV_LOG_LEVEL),
            file_cfg.log_level,
            DEFAULT_LOG_LEVEL,
        ),
        "state_path": state.path,
        "cache_dir": paths.cache_dir(env),
    }

    try:
        settings = Settings.model_validate(raw)
    except ValidationError as exc:
        error_summary = _format_validation_errors(exc)
        raise ConfigurationError(
            f"Settings validation failed ({len(exc.errors())} error(s)):\n" f"{error_summary}"
        ) from exc

    logger.debug(
        "Settings resolved: api_url=%s agent=%s config=%s",
        settings.api_url,
        settings.agent,
        cfg_fpath or "-",
    )
    return settings


def default_state_store(environ: Optional[Mapping[str, str]] = None) -> StateStore:
    """Return a :class:`StateStore` at the per-user default location."""
    return StateStore(paths.config_dir(environ) / STATE_FILE_NAME)


# ── Persisted setters (``skill-get config`` / ``login`` / ``logout``) ──


def set_api_url(state: StateStore, url: str) -> str:
    """Validate and persist the registry URL.  Returns the normalised URL."""
    try:
        normalised = FileConfig(api_url=url).api_url
    except ValidationError as exc:
        raise ConfigurationError(_format_validation_errors(exc)) from exc
    state.set(KEY_API_URL, normalised)
    logger.info("API URL set to %s", normalised)
    return normalised or url


def set_agent(state: StateStore, agent: str, home: Optional[Path] = None) -> Path:
    """Persist the target agent and its derived skills directory."""
    skills_path = paths.skills_dir(agent, home)
    state.set(KEY_AGENT, agent)
    state.set(KEY_SKILLS_PATH, str(skills_path))
    logger.info("Agent set to %s (%s)", agent, skills_path)
    return skills_path


def set_credentials(state: StateStore, token: str, username: str) -> None:
    """Persist the bearer token and username after a successful login."""
    state.set(KEY_TOKEN, token)
    state.set(KEY_USERNAME, username)
    logger.info("Credentials stored for '%s'", username)


def clear_credentials(state: StateStore) -> None:
    """Forget the stored token and username."""
    state.delete(KEY_TOKEN, KEY_USERNAME)
    logger.info("Credentials cleared")
