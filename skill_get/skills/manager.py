"""Skill manager: lifecycle management for installed skills.

Reconciles a requested ``(name, version)`` against the registry and the
installed-skills manifest and performs the transitions between them:
install, update, update-all, remove and local install.

Skills are installed into the agent's skills directory with the layout::

    <skills dir>/
      my-skill/
        SKILL.md
        README.md
        ...

A manifest record is written only after the files are in place, so a
record always points at a populated directory.  Filesystem failures
leave partially written directories behind and no record.

No operation raises; each returns a :class:`~skill_get.skills.results.Success`
or :class:`~skill_get.skills.results.Failure`.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable, List, Optional

from skill_get import paths
from skill_get.config.schema import Settings
from skill_get.constants import LATEST, LOCAL_VERSION
from skill_get.errors import (
    BundleError,
    InvalidSkillNameError,
    MaterializeError,
    RegistryError,
    SkillNotFoundError,
    StateFileError,
)
from skill_get.registry.client import RegistryClient
from skill_get.skills import bundle
from skill_get.skills.materializer import inline_files_for, materialize
from skill_get.skills.results import (
    Failure,
    FailureKind,
    Outcome,
    Result,
    Success,
    UpdateCheck,
    UpdateSummary,
)
from skill_get.state.manifest import ManifestStore
from skill_get.state.models import InstalledSkillRecord, SkillSource

logger = logging.getLogger(__name__)


class SkillManager:
    """Manages the lifecycle of installed skills.

    Parameters
    ----------
    settings:
        Resolved settings; ``agent`` selects the install directory.
    registry:
        Registry client used for metadata and artifact downloads.
    manifest:
        Installed-skills manifest.  This class is its only writer.
    home:
        Home directory for install paths (defaults to the user's home).
    scratch_dir:
        Where downloaded archives are staged (defaults to
        ``settings.scratch_dir``).
    """

    def __init__(
        self,
        settings: Settings,
        registry: RegistryClient,
        manifest: ManifestStore,
        *,
        home: Optional[Path] = None,
        scratch_dir: Optional[Path] = None,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._manifest = manifest
        self._home = home
        self._scratch_dir = Path(scratch_dir) if scratch_dir else settings.scratch_dir

    def install_path(self, name: str) -> Path:
        """Install directory for *name* under the configured agent."""
        return paths.resolve_install_path(self._settings.agent, name, self._home)

    # ── queries ─────────────────────────────────────────────────────

    def get(self, name: str) -> Optional[InstalledSkillRecord]:
        """Return the manifest record for *name*, if installed."""
        return self._manifest.get(name)

    def list_installed(self) -> List[InstalledSkillRecord]:
        """All installed skills, sorted by name."""
        return sorted(self._manifest.list(), key=lambda r: r.name)

    def updatable(self) -> List[InstalledSkillRecord]:
        """Installed skills that came from the registry."""
        return [r for r in self.list_installed() if r.source is SkillSource.REGISTRY]

    # ── install ─────────────────────────────────────────────────────

    async def install(self, name: str, version: str = LATEST, force: bool = False) -> Result:
        """Install *name* at *version* from the registry.

        An installed skill is only reinstalled with *force*, except
        when an explicit version different from the recorded one is
        requested; that always proceeds.
        """
        return await self._install(name, version, force, Outcome.INSTALLED)

    async def _install(
        self,
        name: str,
        version: str,
        force: bool,
        outcome: Outcome,
        previous_version: Optional[str] = None,
    ) -> Result:
        try:
            target = self.install_path(name)
        except InvalidSkillNameError as exc:
            return Failure(name, FailureKind.INVALID_BUNDLE, str(exc))

        existing = self._manifest.get(name)
        if existing is not None and not force:
            if version == LATEST or version == existing.version:
                return Failure(
                    name,
                    FailureKind.ALREADY_INSTALLED,
                    f"{name}@{existing.version} is already installed. "
                    "Use --force to reinstall.",
                )

        try:
            info = await self._registry.download_info(name, version)
        except SkillNotFoundError as exc:
            return Failure(name, FailureKind.SKILL_NOT_FOUND, exc.message)
        except RegistryError as exc:
            return Failure(name, FailureKind.NETWORK_ERROR, exc.message)

        resolved = info.version or version

        # The registry serves the tarball of the resolved version
        archive: Optional[bytes] = None
        if info.tarball_url:
            try:
                archive = await self._registry.fetch_artifact(
                    self._registry.tarball_reference(name, resolved)
                )
            except RegistryError as exc:
                return Failure(name, FailureKind.NETWORK_ERROR, exc.message)

        try:
            materialize(
                target,
                archive=archive,
                inline_files=inline_files_for(info.skill_md, info.readme, info.config_schema),
                scratch_dir=self._scratch_dir,
                scratch_name=f"{name}-{resolved}.tar.gz",
            )
        except MaterializeError as exc:
            logger.error("Install of %s@%s failed: %s", name, resolved, exc)
            return Failure(name, FailureKind.IO_ERROR, str(exc))

        record = InstalledSkillRecord(
            name=name,
            version=resolved,
            install_path=str(target),
            source=SkillSource.REGISTRY,
        )
        try:
            self._manifest.put(record)
        except StateFileError as exc:
            return Failure(name, FailureKind.IO_ERROR, str(exc))

        logger.info("Skill '%s' %s installed at %s", name, resolved, target)
        return Success(name, resolved, str(target), outcome, previous_version)

    # ── update ──────────────────────────────────────────────────────

    async def update(self, name: str) -> Result:
        """Bring *name* to the registry's latest version."""
        existing = self._manifest.get(name)
        if existing is None:
            return Failure(name, FailureKind.NOT_INSTALLED, f"Skill '{name}' is not installed")
        if existing.source is not SkillSource.REGISTRY:
            return Failure(
                name,
                FailureKind.NOT_UPDATABLE,
                f"Skill '{name}' was installed from a {existing.source.value} source "
                "and cannot be updated from the registry",
            )

        try:
            pkg = await self._registry.get_skill(name)
        except SkillNotFoundError as exc:
            return Failure(name, FailureKind.SKILL_NOT_FOUND, exc.message)
        except RegistryError as exc:
            return Failure(name, FailureKind.NETWORK_ERROR, exc.message)

        latest = pkg.latest_version
        if not latest:
            return Failure(name, FailureKind.NO_VERSIONS_AVAILABLE, "No versions available")

        if existing.version == latest:
            logger.debug("Skill '%s' already at %s", name, latest)
            return Success(
                name, existing.version, existing.install_path, Outcome.ALREADY_CURRENT
            )

        return await self._install(
            name, LATEST, True, Outcome.UPDATED, previous_version=existing.version
        )

    async def update_all(
        self,
        on_result: Optional[Callable[[Result], None]] = None,
    ) -> UpdateSummary:
        """Update every registry-sourced skill, one at a time.

        A failing skill never stops the batch; every outcome is
        collected in the returned :class:`UpdateSummary`.
        """
        summary = UpdateSummary()
        for record in self.updatable():
            try:
                result = await self.update(record.name)
            except RegistryError as exc:
                logger.exception("Unexpected registry failure updating '%s'", record.name)
                result = Failure(record.name, FailureKind.NETWORK_ERROR, exc.message)
            except Exception as exc:
                logger.exception("Unexpected failure updating '%s'", record.name)
                result = Failure(record.name, FailureKind.IO_ERROR, str(exc))
            summary.results.append(result)
            if on_result is not None:
                on_result(result)

        logger.info(
            "Update run: %d updated, %d current, %d failed",
            summary.updated_count,
            summary.current_count,
            summary.failed_count,
        )
        return summary

    async def check_updates(self) -> List[UpdateCheck]:
        """Report installed vs. latest versions without changing anything."""
        checks: List[UpdateCheck] = []
        for record in self.updatable():
            try:
                pkg = await self._registry.get_skill(record.name)
            except RegistryError as exc:
                checks.append(UpdateCheck(record.name, record.version, error=exc.message))
                continue
            checks.append(UpdateCheck(record.name, record.version, pkg.latest_version))
        return checks

    # ── remove ──────────────────────────────────────────────────────

    async def remove(self, name: str) -> Result:
        """Delete the install directory of *name* and forget it.

        A directory that is already gone is not an error.
        """
        existing = self._manifest.get(name)
        if existing is None:
            return Failure(name, FailureKind.NOT_INSTALLED, f"Skill '{name}' is not installed")

        target = Path(existing.install_path)
        try:
            if target.is_symlink() or target.is_file():
                target.unlink()
            elif target.is_dir():
                shutil.rmtree(target)
            self._manifest.delete(name)
        except (OSError, StateFileError) as exc:
            logger.error("Failed to remove '%s': %s", name, exc)
            return Failure(name, FailureKind.IO_ERROR, str(exc))

        logger.info("Skill '%s' removed", name)
        return Success(name, existing.version, existing.install_path, Outcome.REMOVED)

    # ── local bundles ───────────────────────────────────────────────

    async def install_from_local(self, source_path: Path, name: Optional[str] = None) -> Result:
        """Copy the bundle at *source_path* into the skills directory.

        The skill is named *name*, else after the marker's level-1
        heading, else after the source directory.  Local installs are
        recorded with version ``local`` and never updated.
        """
        source = Path(source_path).expanduser().resolve()
        try:
            marker = bundle.read_marker(source)
        except BundleError as exc:
            return Failure(name or source.name, FailureKind.IO_ERROR, str(exc))
        if marker is None:
            return Failure(
                name or source.name,
                FailureKind.INVALID_BUNDLE,
                f"No SKILL.md found in {source}",
            )

        skill_name = name or bundle.derive_skill_name(marker, source.name)
        try:
            target = self.install_path(skill_name)
        except InvalidSkillNameError as exc:
            return Failure(skill_name, FailureKind.INVALID_BUNDLE, str(exc))
        try:
            target.mkdir(parents=True, exist_ok=True)
            if target.resolve() != source:
                shutil.copytree(source, target, dirs_exist_ok=True)
        except OSError as exc:
            logger.error("Local install of '%s' failed: %s", skill_name, exc)
            return Failure(skill_name, FailureKind.IO_ERROR, str(exc))

        record = InstalledSkillRecord(
            name=skill_name,
            version=LOCAL_VERSION,
            install_path=str(target),
            source=SkillSource.LOCAL,
        )
        try:
            self._manifest.put(record)
        except StateFileError as exc:
            return Failure(skill_name, FailureKind.IO_ERROR, str(exc))

        logger.info("Skill '%s' installed from %s", skill_name, source)
        return Success(skill_name, LOCAL_VERSION, str(target), Outcome.INSTALLED)

    @staticmethod
    def verify_bundle(path: Path) -> List[str]:
        """Validation problems of a local bundle (read only)."""
        return bundle.verify_bundle(Path(path))
