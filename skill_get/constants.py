"""Shared constants for skill-get."""

APP_NAME = "skill-get"
APP_VERSION = "0.1.0"
AUTHOR = "mcpskills"

# Registry defaults
DEFAULT_API_URL = "https://api.mcpskills.dev"
API_PREFIX = "/api/v1"
CLIENT_HEADER = "skill-get"
DEFAULT_TIMEOUT = 30.0  # seconds per registry request
WEB_URL = "https://mcpskills.com"

# Bundle layout
MARKER_FILE = "SKILL.md"
README_FILE = "README.md"
CONFIG_SCHEMA_FILE = "config.schema.json"
PACKAGE_JSON_FILE = "package.json"
MIN_MARKER_LENGTH = 50  # characters
LOCAL_VERSION = "local"
LATEST = "latest"
DEFAULT_PUBLISH_VERSION = "1.0.0"
DEFAULT_LICENSE = "MIT"

# Per-user locations
STATE_FILE_NAME = "state.json"
CONFIG_FILE_NAME = "config.yaml"
LOG_FILE_NAME = "skill-get.log"
DEFAULT_LOG_LEVEL = "WARNING"

# Device auth polling
DEFAULT_POLL_INTERVAL = 5  # seconds
SLOW_DOWN_INCREMENT = 5  # seconds
