"""Data models for the skills registry API v1.

Client-side types for the registry contract (``PackageInfo``,
``VersionDownload``, ``SearchPage``, ``DeviceCode``, ``AuthResult``).
All parsers are tolerant of missing keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Author:
    """Publisher of a package."""

    username: str
    avatar_url: Optional[str] = None
    trust_tier: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional[Author]:
        if not isinstance(data, dict) or not data.get("username"):
            return None
        return cls(
            username=data["username"],
            avatar_url=data.get("avatar_url"),
            trust_tier=data.get("trust_tier") or "",
        )


@dataclass(frozen=True)
class PackageInfo:
    """Registry metadata for a single skill.

    Only what the CLI displays is modelled.  Extra keys from the API
    response are captured in *extra*.
    """

    name: str
    type: str = "skill"
    description: Optional[str] = None
    author: Optional[Author] = None
    repository: Optional[str] = None
    homepage: Optional[str] = None
    license: str = ""
    keywords: List[str] = field(default_factory=list)
    category: Optional[str] = None
    featured: bool = False
    verified: bool = False
    downloads: int = 0
    rating: Optional[float] = None
    rating_count: int = 0
    latest_version: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PackageInfo:
        """Construct from an API JSON payload (tolerant of missing keys)."""
        known_keys = {
            "name",
            "type",
            "description",
            "author",
            "repository",
            "homepage",
            "license",
            "keywords",
            "category",
            "featured",
            "verified",
            "downloads",
            "rating",
            "rating_count",
            "latest_version",
            "created_at",
            "updated_at",
        }
        extra = {k: v for k, v in data.items() if k not in known_keys}

        rating = data.get("rating")
        return cls(
            name=data.get("name", ""),
            type=data.get("type") or "skill",
            description=data.get("description"),
            author=Author.from_dict(data.get("author")),
            repository=data.get("repository"),
            homepage=data.get("homepage"),
            license=data.get("license") or "",
            keywords=[k for k in (data.get("keywords") or []) if isinstance(k, str)],
            category=data.get("category"),
            featured=bool(data.get("featured")),
            verified=bool(data.get("verified")),
            downloads=_int(data.get("downloads")),
            rating=float(rating) if isinstance(rating, (int, float)) else None,
            rating_count=_int(data.get("rating_count")),
            latest_version=data.get("latest_version") or None,
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
            extra=extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view used by ``info --json``."""
        out: Dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "author": (
                {
                    "username": self.author.username,
                    "avatar_url": self.author.avatar_url,
                    "trust_tier": self.author.trust_tier,
                }
                if self.author
                else None
            ),
            "repository": self.repository,
            "homepage": self.homepage,
            "license": self.license,
            "keywords": list(self.keywords),
            "category": self.category,
            "featured": self.featured,
            "verified": self.verified,
            "downloads": self.downloads,
            "rating": self.rating,
            "rating_count": self.rating_count,
            "latest_version": self.latest_version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        out.update(self.extra)
        return out


@dataclass(frozen=True)
class VersionDownload:
    """Download descriptor for one resolved version.

    Either *tarball_url* or one of the inline documents (or both) is
    expected; the registry resolves ``latest`` to a concrete *version*.
    """

    version: str
    tarball_url: Optional[str] = None
    tarball_sha256: Optional[str] = None
    skill_md: Optional[str] = None
    readme: Optional[str] = None
    config_schema: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> VersionDownload:
        schema = data.get("config_schema")
        return cls(
            version=str(data.get("version") or ""),
            tarball_url=data.get("tarball_url") or None,
            tarball_sha256=data.get("tarball_sha256") or None,
            skill_md=data.get("skill_md"),
            readme=data.get("readme"),
            config_schema=schema if isinstance(schema, dict) else None,
        )


@dataclass(frozen=True)
class VersionInfo:
    """One entry of ``GET /skills/{name}/versions``."""

    version: str
    tarball_url: Optional[str] = None
    size_bytes: Optional[int] = None
    dependencies: List[str] = field(default_factory=list)
    created_at: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> VersionInfo:
        size = data.get("size_bytes")
        return cls(
            version=str(data.get("version") or ""),
            tarball_url=data.get("tarball_url") or None,
            size_bytes=size if isinstance(size, int) else None,
            dependencies=list(data.get("dependencies") or []),
            created_at=data.get("created_at") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "tarball_url": self.tarball_url,
            "size_bytes": self.size_bytes,
            "dependencies": list(self.dependencies),
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Pagination:
    total: int = 0
    page: int = 1
    limit: int = 20
    has_more: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Pagination:
        if not isinstance(data, dict):
            return cls()
        return cls(
            total=_int(data.get("total")),
            page=_int(data.get("page"), 1),
            limit=_int(data.get("limit"), 20),
            has_more=bool(data.get("has_more")),
        )


@dataclass(frozen=True)
class SearchPage:
    """A page of packages from ``GET /skills`` or ``GET /search``."""

    packages: List[PackageInfo]
    pagination: Pagination = field(default_factory=Pagination)
    query: str = ""

    @classmethod
    def from_dict(cls, data: Any, query: str = "") -> SearchPage:
        """Parse from API JSON (a ``{"data": [...]}`` envelope or a bare list)."""
        if isinstance(data, list):
            raw, pagination = data, None
        elif isinstance(data, dict):
            raw = data.get("data") or data.get("items") or []
            pagination = data.get("pagination")
        else:
            raw, pagination = [], None
        packages = [PackageInfo.from_dict(p) for p in raw if isinstance(p, dict)]
        page = Pagination.from_dict(pagination)
        if pagination is None:
            page = Pagination(total=len(packages), limit=max(len(packages), 20))
        return cls(packages=packages, pagination=page, query=query)


@dataclass(frozen=True)
class DeviceCode:
    """Response of ``POST /auth/device``."""

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: str = ""
    expires_in: int = 900
    interval: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DeviceCode:
        return cls(
            device_code=data.get("device_code", ""),
            user_code=data.get("user_code", ""),
            verification_uri=data.get("verification_uri", ""),
            verification_uri_complete=data.get("verification_uri_complete") or "",
            expires_in=_int(data.get("expires_in"), 900),
            interval=_int(data.get("interval")),
        )


@dataclass(frozen=True)
class RegistryUser:
    id: int
    username: str
    email: Optional[str] = None
    trust_tier: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RegistryUser:
        return cls(
            id=_int(data.get("id")),
            username=data.get("username", ""),
            email=data.get("email"),
            trust_tier=data.get("trust_tier") or "",
        )


@dataclass(frozen=True)
class AuthResult:
    """Response of a successful ``POST /auth/device/token``."""

    token: str
    user: RegistryUser

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AuthResult:
        return cls(
            token=data.get("token", ""),
            user=RegistryUser.from_dict(data.get("user") or {}),
        )
