"""Configuration: YAML defaults, environment, persisted state and CLI flags."""

from skill_get.config.loader import (
    clear_credentials,
    default_state_store,
    find_config_file,
    load_settings,
    set_agent,
    set_api_url,
    set_credentials,
)
from skill_get.config.schema import FileConfig, Settings

__all__ = [
    "FileConfig",
    "Settings",
    "clear_credentials",
    "default_state_store",
    "find_config_file",
    "load_settings",
    "set_agent",
    "set_api_url",
    "set_credentials",
]
