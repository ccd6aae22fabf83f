"""Async client for the skills registry API v1.

Wraps the ``<api_url>/api/v1/`` endpoints used by the CLI: package
metadata, version download descriptors, artifact bytes, search, device
authentication and publishing.

Every failure surfaces as a :class:`~skill_get.errors.RegistryError`
subclass; callers never see ``httpx`` exceptions.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from skill_get.constants import API_PREFIX, APP_NAME, APP_VERSION, CLIENT_HEADER, DEFAULT_TIMEOUT
from skill_get.errors import (
    ArtifactUnavailableError,
    RegistryError,
    RegistryNetworkError,
    SkillNotFoundError,
)
from skill_get.registry.models import (
    AuthResult,
    DeviceCode,
    PackageInfo,
    RegistryUser,
    SearchPage,
    VersionDownload,
    VersionInfo,
)

logger = logging.getLogger(__name__)


def _seg(value: str) -> str:
    """Percent-encode a single path segment."""
    return quote(value, safe="")


def _unwrap(body: Any) -> Any:
    """Strip the optional ``{"data": ...}`` envelope."""
    if isinstance(body, dict) and isinstance(body.get("data"), (dict, list)):
        return body["data"]
    return body


class RegistryClient:
    """Async HTTP client for the skills registry.

    Parameters
    ----------
    base_url:
        Root URL of the registry (e.g. ``https://api.mcpskills.dev``).
        The ``/api/v1`` prefix is appended.
    token:
        Optional bearer token for authenticated endpoints.
    timeout:
        HTTP request timeout in seconds.
    transport:
        Optional ``httpx`` transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_url = f"{self._base_url}{API_PREFIX}/"
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None  # lazy

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> RegistryClient:
        """Build a client from a :class:`~skill_get.config.schema.Settings`."""
        return cls(
            settings.api_url,
            token=settings.token,
            timeout=settings.timeout,
            **kwargs,
        )

    @property
    def api_url(self) -> str:
        return self._api_url

    # ── lifecycle ───────────────────────────────────────────────────

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "X-Client": CLIENT_HEADER,
            "User-Agent": f"{APP_NAME}/{APP_VERSION}",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._api_url,
                headers=self._headers(),
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    def set_token(self, token: Optional[str]) -> None:
        """Use *token* for subsequent requests (``None`` drops it)."""
        self._token = token
        if self._client is not None:
            if token:
                self._client.headers["Authorization"] = f"Bearer {token}"
            else:
                self._client.headers.pop("Authorization", None)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ── request plumbing ────────────────────────────────────────────

    async def _send(self, request: httpx.Request) -> httpx.Response:
        client = self._ensure_client()
        try:
            return await client.send(request)
        except httpx.HTTPError as exc:
            logger.debug("Registry transport failure for %s: %s", request.url, exc)
            raise RegistryNetworkError(
                str(exc) or f"Network request to {request.url} failed", orig_exc=exc
            ) from exc

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Send one API request and return the decoded JSON body."""
        client = self._ensure_client()
        request = client.build_request(
            method,
            path,
            params={k: v for k, v in (params or {}).items() if v is not None} or None,
            json=json,
            content=content,
            headers=headers,
        )
        resp = await self._send(request)
        logger.debug("%s %s -> %d", method, request.url, resp.status_code)

        if not resp.is_success:
            self._raise_for_error(resp)

        try:
            return resp.json()
        except ValueError as exc:
            raise RegistryError(
                f"Registry returned a non-JSON response (status {resp.status_code})",
                code="invalid_response",
                status=resp.status_code,
            ) from exc

    @staticmethod
    def _raise_for_error(resp: httpx.Response) -> None:
        try:
            body = resp.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}

        code = body.get("error") or "request_failed"
        message = body.get("message") or f"Request failed with status {resp.status_code}"
        if resp.status_code == 404 or code == "not_found":
            raise SkillNotFoundError(message, status=resp.status_code)
        raise RegistryError(message, code=code, status=resp.status_code)

    # ── skills ──────────────────────────────────────────────────────

    async def get_skill(self, name: str) -> PackageInfo:
        """Fetch package metadata from ``GET /skills/{name}``."""
        body = _unwrap(await self._request("GET", f"skills/{_seg(name)}"))
        if not isinstance(body, dict):
            raise RegistryError("Unexpected package payload", code="invalid_response")
        return PackageInfo.from_dict(body)

    async def get_versions(self, name: str) -> List[VersionInfo]:
        """List published versions from ``GET /skills/{name}/versions``."""
        body = _unwrap(await self._request("GET", f"skills/{_seg(name)}/versions"))
        if not isinstance(body, list):
            return []
        return [VersionInfo.from_dict(v) for v in body if isinstance(v, dict)]

    async def download_info(self, name: str, version: str = "latest") -> VersionDownload:
        """Resolve *version* via ``GET /skills/{name}/versions/{version}/download``."""
        body = _unwrap(
            await self._request(
                "GET", f"skills/{_seg(name)}/versions/{_seg(version)}/download"
            )
        )
        if not isinstance(body, dict):
            raise RegistryError("Unexpected download payload", code="invalid_response")
        info = VersionDownload.from_dict(body)
        if not info.version:
            # Some registries omit the resolved version for explicit requests
            info = VersionDownload.from_dict({**body, "version": version})
        return info

    def tarball_reference(self, name: str, version: str) -> str:
        """Relative reference of the registry-hosted tarball for a version."""
        return f"skills/{_seg(name)}/versions/{_seg(version)}/tarball"

    async def fetch_artifact(self, reference: str) -> bytes:
        """Download artifact bytes.

        Absolute URLs are fetched as-is (without the bearer token when
        they point at another host); relative references resolve
        against the API base.
        """
        client = self._ensure_client()
        absolute = reference.startswith(("http://", "https://"))
        target = reference if absolute else reference.lstrip("/")
        request = client.build_request("GET", target, headers={"Accept": "*/*"})
        if absolute and request.url.host != httpx.URL(self._api_url).host:
            request.headers.pop("Authorization", None)

        resp = await self._send(request)
        if not resp.is_success:
            logger.warning("Artifact %s returned status %d", reference, resp.status_code)
            raise ArtifactUnavailableError(reference, status=resp.status_code)
        logger.debug("Fetched artifact %s (%d bytes)", reference, len(resp.content))
        return resp.content

    async def list_skills(
        self,
        *,
        search: Optional[str] = None,
        category: Optional[str] = None,
        sort: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> SearchPage:
        """Browse packages via ``GET /skills``."""
        body = await self._request(
            "GET",
            "skills",
            params={
                "search": search or None,
                "category": category or None,
                "sort": sort or None,
                "page": page,
                "limit": limit,
            },
        )
        return SearchPage.from_dict(body, query=search or "")

    async def search(
        self,
        query: str,
        *,
        type: str = "skill",
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> SearchPage:
        """Full-text search via ``GET /search``."""
        body = await self._request(
            "GET",
            "search",
            params={"q": query, "type": type, "page": page, "limit": limit},
        )
        return SearchPage.from_dict(body, query=query)

    # ── auth ────────────────────────────────────────────────────────

    async def start_device_auth(self) -> DeviceCode:
        """Begin the device flow with ``POST /auth/device``."""
        body = _unwrap(await self._request("POST", "auth/device"))
        if not isinstance(body, dict) or not body.get("device_code"):
            raise RegistryError("Unexpected device code payload", code="invalid_response")
        return DeviceCode.from_dict(body)

    async def poll_device_auth(self, device_code: str) -> AuthResult:
        """Poll ``POST /auth/device/token`` once.

        Pending, expired and denied states surface as
        :class:`RegistryError` with the server's error code.
        """
        body = _unwrap(
            await self._request("POST", "auth/device/token", json={"device_code": device_code})
        )
        if not isinstance(body, dict) or not body.get("token"):
            raise RegistryError("Unexpected token payload", code="invalid_response")
        return AuthResult.from_dict(body)

    async def get_user(self) -> RegistryUser:
        """Return the account behind the current token (``GET /auth/user``)."""
        body = _unwrap(await self._request("GET", "auth/user"))
        if not isinstance(body, dict):
            raise RegistryError("Unexpected user payload", code="invalid_response")
        return RegistryUser.from_dict(body)

    # ── publishing ──────────────────────────────────────────────────

    async def publish_skill(self, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Register a new version with ``POST /publish/skills``."""
        body = _unwrap(await self._request("POST", "publish/skills", json=metadata))
        return body if isinstance(body, dict) else {}

    async def upload_tarball(self, name: str, version: str, data: bytes) -> Dict[str, Any]:
        """Upload the bundle archive for a registered version."""
        body = _unwrap(
            await self._request(
                "POST",
                f"publish/skills/{_seg(name)}/versions/{_seg(version)}/tarball",
                content=data,
                headers={"Content-Type": "application/gzip"},
            )
        )
        return body if isinstance(body, dict) else {}
