"""Skills registry: async HTTP client and response models.

Talks to the ``/api/v1`` API of an MCPSkills-compatible registry to
resolve versions, download bundles, search, authenticate and publish.
"""

from skill_get.registry.client import RegistryClient
from skill_get.registry.models import (
    AuthResult,
    DeviceCode,
    PackageInfo,
    SearchPage,
    VersionDownload,
)

__all__ = [
    "AuthResult",
    "DeviceCode",
    "PackageInfo",
    "RegistryClient",
    "SearchPage",
    "VersionDownload",
]
