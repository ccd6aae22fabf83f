"""
skill-get - package manager for AI agent skills.

Resolves skills against a remote registry, unpacks them into the
directory the local coding agent reads from, and tracks what is
installed in a per-user state file.
"""

from skill_get.constants import APP_NAME, APP_VERSION

__version__ = APP_VERSION
__app_name__ = APP_NAME

__all__ = [
    "APP_NAME",
    "APP_VERSION",
    "__version__",
    "__app_name__",
]
