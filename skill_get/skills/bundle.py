"""Local skill bundles.

A bundle is a directory holding at least a ``SKILL.md`` marker, plus
optional ``README.md``, ``package.json`` and arbitrary support files.
This module reads bundles for local installs and publishing; it never
modifies them.
"""

from __future__ import annotations

import io
import json
import logging
import os
import re
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from skill_get.constants import (
    DEFAULT_LICENSE,
    DEFAULT_PUBLISH_VERSION,
    MARKER_FILE,
    MIN_MARKER_LENGTH,
    PACKAGE_JSON_FILE,
    README_FILE,
)
from skill_get.errors import BundleError

logger = logging.getLogger(__name__)

# First level-1 markdown heading ("# Title", not "## Section")
_HEADING_RE = re.compile(r"^#(?!#)\s*(.+?)\s*$", re.MULTILINE)
_CATEGORY_RE = re.compile(r"Category:\s*(.+)", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")

_SKIP_DIRS = frozenset({".git", ".svn", ".hg", "node_modules", "__pycache__", ".venv", "venv"})


def read_marker(path: Path) -> Optional[str]:
    """Return the text of ``<path>/SKILL.md`` or ``None`` when absent."""
    marker = Path(path) / MARKER_FILE
    if not marker.is_file():
        return None
    try:
        return marker.read_text(encoding="utf-8")
    except OSError as exc:
        raise BundleError(f"Cannot read {marker}: {exc}") from exc


def derive_skill_name(markdown: str, fallback: str) -> str:
    """Name a skill from its marker heading.

    ``# My Great Skill`` becomes ``my-great-skill``; without a level-1
    heading *fallback* is returned unchanged.
    """
    match = _HEADING_RE.search(markdown)
    if match:
        name = _WHITESPACE_RE.sub("-", match.group(1).strip().lower())
        if name:
            return name
    return fallback


def verify_bundle(path: Path) -> List[str]:
    """Return validation problems for the bundle at *path* (empty when valid)."""
    errors: List[str] = []
    content = read_marker(path)
    if content is None:
        errors.append("Missing SKILL.md file")
    elif len(content) < MIN_MARKER_LENGTH:
        errors.append(f"SKILL.md is too short (minimum {MIN_MARKER_LENGTH} characters)")
    return errors


# ── Publishing ───────────────────────────────────────────────────────────


@dataclass
class PublishMetadata:
    """Everything sent to ``POST /publish/skills`` for one version."""

    name: str
    version: str
    skill_md: str
    description: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    category: Optional[str] = None
    license: str = DEFAULT_LICENSE
    repository: Optional[str] = None
    homepage: Optional[str] = None
    readme: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Request body; unset optional fields are omitted."""
        payload: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "keywords": list(self.keywords),
            "license": self.license,
            "skill_md": self.skill_md,
        }
        for key in ("description", "category", "repository", "homepage", "readme"):
            value = getattr(self, key)
            if value:
                payload[key] = value
        return payload


def _read_package_json(path: Path) -> Dict[str, Any]:
    pkg_path = path / PACKAGE_JSON_FILE
    if not pkg_path.is_file():
        return {}
    try:
        data = json.loads(pkg_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise BundleError(f"Invalid {PACKAGE_JSON_FILE}: {exc}") from exc
    if not isinstance(data, dict):
        raise BundleError(f"{PACKAGE_JSON_FILE} must contain a JSON object")
    return data


def _repository_url(raw: Any) -> Optional[str]:
    if isinstance(raw, str):
        return raw or None
    if isinstance(raw, dict) and isinstance(raw.get("url"), str):
        url = raw["url"]
        if url.startswith("git+"):
            url = url[len("git+") :]
        if url.endswith(".git"):
            url = url[: -len(".git")]
        return url or None
    return None


def _first_paragraph_line(markdown: str) -> Optional[str]:
    for line in markdown.splitlines():
        if line.strip() and not line.startswith("#"):
            return line.strip()
    return None


def collect_publish_metadata(path: Path) -> PublishMetadata:
    """Gather publish metadata from the bundle at *path*.

    ``package.json`` values take precedence over what can be inferred
    from ``SKILL.md``.

    Raises
    ------
    BundleError
        When the marker is missing or ``package.json`` is unreadable.
    """
    path = Path(path).resolve()
    skill_md = read_marker(path)
    if skill_md is None:
        raise BundleError(f"No {MARKER_FILE} found in {path}")

    pkg = _read_package_json(path)
    readme_path = path / README_FILE
    readme = readme_path.read_text(encoding="utf-8") if readme_path.is_file() else None

    category_match = _CATEGORY_RE.search(skill_md)
    keywords = pkg.get("keywords") or []

    return PublishMetadata(
        name=pkg.get("name") or derive_skill_name(skill_md, path.name),
        version=pkg.get("version") or DEFAULT_PUBLISH_VERSION,
        skill_md=skill_md,
        description=pkg.get("description") or _first_paragraph_line(skill_md),
        keywords=[k for k in keywords if isinstance(k, str)],
        category=category_match.group(1).strip() if category_match else None,
        license=pkg.get("license") or DEFAULT_LICENSE,
        repository=_repository_url(pkg.get("repository")),
        homepage=pkg.get("homepage") or None,
        readme=readme,
    )


def pack_bundle(path: Path, name: str) -> bytes:
    """Create a gzip tarball of the bundle under a ``<name>/`` wrapper.

    VCS and cache directories and dotfiles are skipped.  Entries are
    sorted and ownership is zeroed.
    """
    path = Path(path).resolve()
    buf = io.BytesIO()

    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for dirpath, dirnames, filenames in os.walk(path):
            dirnames[:] = sorted(
                d for d in dirnames if d not in _SKIP_DIRS and not d.startswith(".")
            )
            for fname in sorted(filenames):
                if fname.startswith("."):
                    continue
                fpath = Path(dirpath) / fname
                source = fpath
                if fpath.is_symlink():
                    source = fpath.resolve()
                    if path not in source.parents:
                        logger.warning("Skipping symlink that escapes the bundle: %s", fpath)
                        continue
                # symlinks are stored as the file they point to
                arcname = f"{name}/{fpath.relative_to(path).as_posix()}"
                info = tar.gettarinfo(name=str(source), arcname=arcname)
                info.uid = info.gid = 0
                info.uname = info.gname = ""
                if info.isreg():
                    with open(source, "rb") as fh:
                        tar.addfile(info, fh)
                else:
                    tar.addfile(info)

    data = buf.getvalue()
    logger.debug("Packed %s into %d bytes", path, len(data))
    return data
