"""Artifact materializer.

Turns a resolved version (archive bytes and/or inline documents) into
files under an install directory.  Archives are gzip tarballs with a
single wrapper directory that is stripped on extraction::

    my-skill/SKILL.md        →  <target>/SKILL.md
    my-skill/scripts/run.sh  →  <target>/scripts/run.sh

Extraction uses tarfile's ``data`` filter, so members escaping the
target (``..`` traversal, links pointing outside) are rejected.
"""

from __future__ import annotations

import json
import logging
import tarfile
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional

from skill_get.constants import CONFIG_SCHEMA_FILE, MARKER_FILE, README_FILE
from skill_get.errors import MaterializeError

logger = logging.getLogger(__name__)


def inline_files_for(
    skill_md: Optional[str] = None,
    readme: Optional[str] = None,
    config_schema: Optional[Dict[str, Any]] = None,
) -> Dict[str, str]:
    """Map inline documents of a version to their on-disk filenames."""
    files: Dict[str, str] = {}
    if skill_md:
        files[MARKER_FILE] = skill_md
    if readme:
        files[README_FILE] = readme
    if config_schema:
        files[CONFIG_SCHEMA_FILE] = json.dumps(config_schema, indent=2)
    return files


def _strip_one(members: List[tarfile.TarInfo]) -> List[tarfile.TarInfo]:
    """Drop the leading path component of every member.

    Members that are only the wrapper directory itself are skipped.
    """
    kept: List[tarfile.TarInfo] = []
    for member in members:
        if member.name.startswith("/"):
            raise MaterializeError(f"Archive member has an absolute path: {member.name}")
        parts = PurePosixPath(member.name).parts
        if len(parts) <= 1:
            continue
        member.name = "/".join(parts[1:])
        if member.islnk():
            # hard link targets are archive paths and share the wrapper
            link_parts = PurePosixPath(member.linkname).parts
            member.linkname = "/".join(link_parts[1:])
        kept.append(member)
    return kept


def extract_archive(archive_path: Path, target_dir: Path) -> int:
    """Extract *archive_path* into *target_dir*, stripping one component.

    Returns the number of members written.
    """
    if not hasattr(tarfile, "data_filter"):
        # extraction filters arrived in 3.10.12 / 3.11.4
        raise MaterializeError(
            "This Python has no tarfile extraction filters; upgrade to 3.10.12 or newer",
            str(target_dir),
        )
    with tarfile.open(archive_path, "r:*") as tar:
        members = _strip_one(tar.getmembers())
        tar.extractall(path=target_dir, members=members, filter="data")
    return len(members)


def materialize(
    target_dir: Path,
    *,
    archive: Optional[bytes] = None,
    inline_files: Optional[Dict[str, str]] = None,
    scratch_dir: Path,
    scratch_name: str,
) -> Path:
    """Write a skill version into *target_dir*.

    Parameters
    ----------
    target_dir:
        Install directory; created if missing.  Existing files are
        overwritten, other files are left alone.
    archive:
        Gzip tarball bytes.  Written to ``scratch_dir/scratch_name``
        for extraction; the scratch file is removed on every exit path.
    inline_files:
        Filename → text content, written after the archive so inline
        documents win over archived copies.
    scratch_dir, scratch_name:
        Location of the temporary archive file.

    Raises
    ------
    MaterializeError
        On any filesystem or archive failure.  Files already written
        are not rolled back.
    """
    target_dir = Path(target_dir)
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise MaterializeError("Cannot create install directory", str(target_dir), exc) from exc

    if archive is not None:
        scratch_path = Path(scratch_dir) / scratch_name
        try:
            scratch_path.parent.mkdir(parents=True, exist_ok=True)
            scratch_path.write_bytes(archive)
            count = extract_archive(scratch_path, target_dir)
            logger.debug("Extracted %d member(s) into %s", count, target_dir)
        except (OSError, tarfile.TarError) as exc:
            raise MaterializeError("Failed to extract archive", str(target_dir), exc) from exc
        finally:
            try:
                scratch_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove scratch file %s: %s", scratch_path, exc)

    for filename, content in (inline_files or {}).items():
        dest = target_dir / filename
        try:
            dest.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise MaterializeError(f"Failed to write {filename}", str(target_dir), exc) from exc

    return target_dir
