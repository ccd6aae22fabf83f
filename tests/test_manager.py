"""Tests for the skill lifecycle manager (install / update / remove / local)."""

from pathlib import Path

import pytest

from skill_get.errors import RegistryError, RegistryNetworkError, SkillNotFoundError
from skill_get.registry.models import PackageInfo, VersionDownload
from skill_get.skills.manager import SkillManager
from skill_get.skills.results import Failure, FailureKind, Outcome, Success
from skill_get.state.models import InstalledSkillRecord, SkillSource

SKILL_MD = "# Foo\n\nA skill that does foo things for the agent, reliably.\n"


@pytest.fixture
def manager(settings, registry, manifest, home):
    return SkillManager(settings, registry, manifest, home=home)


def _record(manager, name, version, source=SkillSource.REGISTRY):
    path = manager.install_path(name)
    path.mkdir(parents=True, exist_ok=True)
    (path / "SKILL.md").write_text(f"# {name}\n")
    record = InstalledSkillRecord(
        name=name, version=version, install_path=str(path), source=source
    )
    manager._manifest.put(record)
    return record


# ── install ───────────────────────────────────────────────────────────


class TestInstall:
    @pytest.mark.anyio
    async def test_fresh_install_with_inline_documents(self, manager, registry, manifest, home):
        registry.download_info.return_value = VersionDownload(
            version="1.2.0", skill_md=SKILL_MD, readme="readme", config_schema={"type": "object"}
        )

        result = await manager.install("foo")

        assert isinstance(result, Success)
        assert result.outcome is Outcome.INSTALLED
        assert result.version == "1.2.0"
        target = home / ".claude" / "skills" / "foo"
        assert result.path == str(target)
        assert (target / "SKILL.md").read_text() == SKILL_MD
        assert (target / "README.md").read_text() == "readme"
        assert '"type": "object"' in (target / "config.schema.json").read_text()
        record = manifest.get("foo")
        assert record.version == "1.2.0"
        assert record.source is SkillSource.REGISTRY
        registry.download_info.assert_awaited_once_with("foo", "latest")
        registry.fetch_artifact.assert_not_awaited()

    @pytest.mark.anyio
    async def test_archive_is_extracted_without_wrapper(
        self, manager, registry, settings, make_tarball
    ):
        registry.download_info.return_value = VersionDownload(
            version="2.0.0", tarball_url="https://cdn.test/foo-2.0.0.tgz"
        )
        registry.fetch_artifact.return_value = make_tarball(
            {"package/SKILL.md": SKILL_MD, "package/scripts/run.sh": "echo hi\n"}
        )

        result = await manager.install("foo")

        assert result.ok
        target = Path(result.path)
        assert (target / "SKILL.md").read_text() == SKILL_MD
        assert (target / "scripts" / "run.sh").read_text() == "echo hi\n"
        assert not (target / "package").exists()
        registry.fetch_artifact.assert_awaited_once_with("skills/foo/versions/2.0.0/tarball")
        # scratch archive is gone
        assert list(settings.scratch_dir.glob("*")) == []

    @pytest.mark.anyio
    async def test_inline_marker_overrides_archived_copy(self, manager, registry, make_tarball):
        registry.download_info.return_value = VersionDownload(
            version="1.0.0", tarball_url="skills/foo/tarball", skill_md="inline"
        )
        registry.fetch_artifact.return_value = make_tarball({"foo/SKILL.md": "archived"})

        result = await manager.install("foo")

        assert (Path(result.path) / "SKILL.md").read_text() == "inline"

    @pytest.mark.anyio
    async def test_already_installed_latest_without_force(self, manager, registry):
        _record(manager, "foo", "1.0.0")

        result = await manager.install("foo")

        assert isinstance(result, Failure)
        assert result.kind is FailureKind.ALREADY_INSTALLED
        assert "foo@1.0.0 is already installed" in result.message
        registry.download_info.assert_not_awaited()

    @pytest.mark.anyio
    async def test_already_installed_same_explicit_version(self, manager, registry):
        _record(manager, "foo", "1.0.0")

        result = await manager.install("foo", "1.0.0")

        assert result.kind is FailureKind.ALREADY_INSTALLED

    @pytest.mark.anyio
    async def test_different_explicit_version_proceeds_without_force(
        self, manager, registry, manifest
    ):
        _record(manager, "foo", "1.0.0")
        registry.download_info.return_value = VersionDownload(version="2.0.0", skill_md=SKILL_MD)

        result = await manager.install("foo", "2.0.0")

        assert isinstance(result, Success)
        assert result.version == "2.0.0"
        assert manifest.get("foo").version == "2.0.0"

    @pytest.mark.anyio
    async def test_force_reinstalls(self, manager, registry, manifest):
        _record(manager, "foo", "1.0.0")
        stale = manifest.get("foo")
        manifest.put(stale.model_copy(update={"installed_at": "2024-01-01T00:00:00+00:00"}))
        registry.download_info.return_value = VersionDownload(version="1.1.0", skill_md=SKILL_MD)

        result = await manager.install("foo", force=True)

        assert isinstance(result, Success)
        assert (Path(result.path) / "SKILL.md").read_text() == SKILL_MD
        record = manifest.get("foo")
        assert record.version == "1.1.0"
        assert record.installed_at != "2024-01-01T00:00:00+00:00"

    @pytest.mark.anyio
    async def test_unknown_skill(self, manager, registry, manifest):
        registry.download_info.side_effect = SkillNotFoundError("Skill not found")

        result = await manager.install("ghost")

        assert result.kind is FailureKind.SKILL_NOT_FOUND
        assert result.message == "Skill not found"
        assert manifest.get("ghost") is None
        assert not manager.install_path("ghost").exists()

    @pytest.mark.anyio
    async def test_registry_unreachable(self, manager, registry):
        registry.download_info.side_effect = RegistryNetworkError("connection refused")

        result = await manager.install("foo")

        assert result.kind is FailureKind.NETWORK_ERROR

    @pytest.mark.anyio
    async def test_artifact_failure_records_nothing(self, manager, registry, manifest):
        registry.download_info.return_value = VersionDownload(
            version="1.0.0", tarball_url="https://cdn.test/x.tgz"
        )
        registry.fetch_artifact.side_effect = RegistryError("gone", code="artifact_unavailable")

        result = await manager.install("foo")

        assert result.kind is FailureKind.NETWORK_ERROR
        assert manifest.get("foo") is None

    @pytest.mark.anyio
    async def test_filesystem_failure_is_io_error(self, manager, registry, manifest, home):
        # a regular file where the agent directory should be
        (home / ".claude").write_text("not a directory")
        registry.download_info.return_value = VersionDownload(version="1.0.0", skill_md=SKILL_MD)

        result = await manager.install("foo")

        assert result.kind is FailureKind.IO_ERROR
        assert manifest.get("foo") is None

    @pytest.mark.anyio
    async def test_corrupt_archive_is_io_error(self, manager, registry, manifest, settings):
        registry.download_info.return_value = VersionDownload(
            version="1.0.0", tarball_url="https://cdn.test/x.tgz"
        )
        registry.fetch_artifact.return_value = b"definitely not gzip"

        result = await manager.install("foo")

        assert result.kind is FailureKind.IO_ERROR
        assert manifest.get("foo") is None
        assert list(settings.scratch_dir.glob("*")) == []

    @pytest.mark.anyio
    async def test_registry_tarball_fetched_for_resolved_version(
        self, manager, registry, make_tarball
    ):
        registry.download_info.return_value = VersionDownload(
            version="3.1.0", tarball_url="https://cdn.test/whatever.tgz", skill_md=SKILL_MD
        )
        registry.fetch_artifact.return_value = make_tarball({"foo/run.sh": "echo hi\n"})

        result = await manager.install("foo")

        assert result.ok
        registry.tarball_reference.assert_called_once_with("foo", "3.1.0")
        registry.fetch_artifact.assert_awaited_once_with("skills/foo/versions/3.1.0/tarball")

    @pytest.mark.anyio
    async def test_state_write_failure_leaves_no_record(
        self, manager, registry, manifest, monkeypatch
    ):
        registry.download_info.return_value = VersionDownload(version="1.0.0", skill_md=SKILL_MD)

        def _replace(src, dst):
            raise OSError("disk full")

        with monkeypatch.context() as patch:
            patch.setattr("skill_get.state.store.os.replace", _replace)
            result = await manager.install("foo")

        assert result.kind is FailureKind.IO_ERROR
        assert "disk full" in result.message
        assert manifest.get("foo") is None

        # a later successful write must not carry the failed record along
        manifest.put(InstalledSkillRecord(name="bar", version="1.0.0", install_path="/x/bar"))
        assert manifest.get("foo") is None
        assert [r.name for r in manifest.list()] == ["bar"]

    @pytest.mark.anyio
    @pytest.mark.parametrize("name", ["../escaped", "a/b", "a\\b", ".hidden", ".."])
    async def test_name_outside_skills_dir_rejected(self, manager, registry, manifest, name):
        result = await manager.install(name)

        assert result.kind is FailureKind.INVALID_BUNDLE
        assert manifest.list() == []
        registry.download_info.assert_not_awaited()


# ── update ────────────────────────────────────────────────────────────


class TestUpdate:
    @pytest.mark.anyio
    async def test_not_installed(self, manager, registry):
        result = await manager.update("foo")

        assert result.kind is FailureKind.NOT_INSTALLED
        assert result.message == "Skill 'foo' is not installed"
        registry.get_skill.assert_not_awaited()

    @pytest.mark.anyio
    async def test_local_skill_is_not_updatable(self, manager, registry):
        _record(manager, "mine", "local", source=SkillSource.LOCAL)

        result = await manager.update("mine")

        assert result.kind is FailureKind.NOT_UPDATABLE
        registry.get_skill.assert_not_awaited()

    @pytest.mark.anyio
    async def test_no_versions_available(self, manager, registry):
        _record(manager, "foo", "1.0.0")
        registry.get_skill.return_value = PackageInfo(name="foo", latest_version=None)

        result = await manager.update("foo")

        assert result.kind is FailureKind.NO_VERSIONS_AVAILABLE

    @pytest.mark.anyio
    async def test_already_current_does_not_download(self, manager, registry):
        record = _record(manager, "foo", "1.0.0")
        registry.get_skill.return_value = PackageInfo(name="foo", latest_version="1.0.0")

        result = await manager.update("foo")

        assert isinstance(result, Success)
        assert result.outcome is Outcome.ALREADY_CURRENT
        assert result.path == record.install_path
        registry.download_info.assert_not_awaited()

    @pytest.mark.anyio
    async def test_newer_version_is_installed(self, manager, registry, manifest):
        _record(manager, "foo", "1.0.0")
        registry.get_skill.return_value = PackageInfo(name="foo", latest_version="1.1.0")
        registry.download_info.return_value = VersionDownload(version="1.1.0", skill_md=SKILL_MD)

        result = await manager.update("foo")

        assert result.outcome is Outcome.UPDATED
        assert result.previous_version == "1.0.0"
        assert result.version == "1.1.0"
        assert manifest.get("foo").version == "1.1.0"
        registry.download_info.assert_awaited_once_with("foo", "latest")

    @pytest.mark.anyio
    async def test_lookup_failure(self, manager, registry):
        _record(manager, "foo", "1.0.0")
        registry.get_skill.side_effect = SkillNotFoundError("Skill not found")

        result = await manager.update("foo")

        assert result.kind is FailureKind.SKILL_NOT_FOUND


class TestUpdateAll:
    @pytest.mark.anyio
    async def test_one_failure_does_not_stop_the_batch(self, manager, registry, manifest):
        _record(manager, "alpha", "1.0.0")
        _record(manager, "beta", "1.0.0")
        _record(manager, "gamma", "3.0.0")
        _record(manager, "mine", "local", source=SkillSource.LOCAL)

        latest = {"alpha": "2.0.0", "gamma": "3.0.0"}

        async def get_skill(name):
            if name == "beta":
                raise RegistryNetworkError("timed out")
            return PackageInfo(name=name, latest_version=latest[name])

        registry.get_skill.side_effect = get_skill
        registry.download_info.return_value = VersionDownload(version="2.0.0", skill_md=SKILL_MD)
        seen = []

        summary = await manager.update_all(seen.append)

        assert [r.name for r in summary.results] == ["alpha", "beta", "gamma"]
        assert [r.name for r in seen] == ["alpha", "beta", "gamma"]
        assert summary.updated_count == 1
        assert summary.current_count == 1
        assert summary.failed_count == 1
        assert summary.failed[0].kind is FailureKind.NETWORK_ERROR
        assert manifest.get("alpha").version == "2.0.0"
        assert manifest.get("beta").version == "1.0.0"

    @pytest.mark.anyio
    async def test_unexpected_exception_becomes_failure(self, manager, registry):
        _record(manager, "alpha", "1.0.0")
        registry.get_skill.side_effect = RuntimeError("boom")

        summary = await manager.update_all()

        assert summary.failed_count == 1
        assert summary.failed[0].kind is FailureKind.IO_ERROR
        assert summary.failed[0].message == "boom"

    @pytest.mark.anyio
    async def test_nothing_installed(self, manager, registry):
        summary = await manager.update_all()

        assert summary.results == []
        registry.get_skill.assert_not_awaited()

    @pytest.mark.skip(reason="concurrent runs against one state file are not coordinated")
    @pytest.mark.anyio
    async def test_concurrent_update_runs(self, manager):
        """Two processes updating at once may lose one manifest write."""


class TestCheckUpdates:
    @pytest.mark.anyio
    async def test_reports_versions_and_errors(self, manager, registry):
        _record(manager, "alpha", "1.0.0")
        _record(manager, "beta", "1.0.0")

        async def get_skill(name):
            if name == "beta":
                raise SkillNotFoundError("Skill not found")
            return PackageInfo(name=name, latest_version="1.5.0")

        registry.get_skill.side_effect = get_skill

        checks = await manager.check_updates()

        assert [c.name for c in checks] == ["alpha", "beta"]
        assert checks[0].has_update
        assert checks[0].latest == "1.5.0"
        assert checks[1].error == "Skill not found"
        assert not checks[1].has_update
        registry.download_info.assert_not_awaited()


# ── remove ────────────────────────────────────────────────────────────


class TestRemove:
    @pytest.mark.anyio
    async def test_removes_directory_and_record(self, manager, manifest):
        record = _record(manager, "foo", "1.0.0")

        result = await manager.remove("foo")

        assert result.outcome is Outcome.REMOVED
        assert not Path(record.install_path).exists()
        assert manifest.get("foo") is None

    @pytest.mark.anyio
    async def test_missing_directory_is_tolerated(self, manager, manifest):
        record = _record(manager, "foo", "1.0.0")
        for child in Path(record.install_path).iterdir():
            child.unlink()
        Path(record.install_path).rmdir()

        result = await manager.remove("foo")

        assert isinstance(result, Success)
        assert manifest.get("foo") is None

    @pytest.mark.anyio
    async def test_second_remove_reports_not_installed(self, manager):
        _record(manager, "foo", "1.0.0")

        await manager.remove("foo")
        result = await manager.remove("foo")

        assert result.kind is FailureKind.NOT_INSTALLED


# ── local bundles ─────────────────────────────────────────────────────


class TestInstallFromLocal:
    @pytest.fixture
    def bundle_dir(self, tmp_path):
        path = tmp_path / "src" / "great"
        (path / "scripts").mkdir(parents=True)
        (path / "SKILL.md").write_text("# My Great Skill\n\nDoes great things.\n")
        (path / "scripts" / "run.sh").write_text("echo great\n")
        return path

    @pytest.mark.anyio
    async def test_name_from_heading(self, manager, manifest, bundle_dir, home):
        result = await manager.install_from_local(bundle_dir)

        assert isinstance(result, Success)
        assert result.name == "my-great-skill"
        assert result.version == "local"
        target = home / ".claude" / "skills" / "my-great-skill"
        assert (target / "scripts" / "run.sh").read_text() == "echo great\n"
        record = manifest.get("my-great-skill")
        assert record.source is SkillSource.LOCAL
        assert record.version == "local"

    @pytest.mark.anyio
    async def test_explicit_name(self, manager, bundle_dir):
        result = await manager.install_from_local(bundle_dir, name="custom")

        assert result.name == "custom"
        assert Path(result.path).name == "custom"

    @pytest.mark.anyio
    async def test_directory_name_without_heading(self, manager, bundle_dir):
        (bundle_dir / "SKILL.md").write_text("no heading here\n## Only a section\n")

        result = await manager.install_from_local(bundle_dir)

        assert result.name == "great"

    @pytest.mark.anyio
    async def test_heading_that_escapes_skills_dir(
        self, manager, manifest, bundle_dir, tmp_path
    ):
        (bundle_dir / "SKILL.md").write_text("# ../../../escaped\n\nBody.\n")

        result = await manager.install_from_local(bundle_dir)

        assert result.kind is FailureKind.INVALID_BUNDLE
        assert "../../../escaped" in result.message
        assert not (tmp_path / "escaped").exists()
        assert manifest.list() == []

    @pytest.mark.anyio
    async def test_explicit_name_with_separator(self, manager, manifest, bundle_dir):
        result = await manager.install_from_local(bundle_dir, name="nested/custom")

        assert result.kind is FailureKind.INVALID_BUNDLE
        assert manifest.list() == []

    @pytest.mark.anyio
    async def test_missing_marker(self, manager, manifest, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()

        result = await manager.install_from_local(empty)

        assert result.kind is FailureKind.INVALID_BUNDLE
        assert "No SKILL.md found" in result.message
        assert manifest.list() == []

    @pytest.mark.anyio
    async def test_source_already_in_place(self, manager, manifest):
        target = manager.install_path("in-place")
        target.mkdir(parents=True)
        (target / "SKILL.md").write_text("# In Place\n")

        result = await manager.install_from_local(target)

        assert isinstance(result, Success)
        assert result.path == str(target)
        assert manifest.get("in-place") is not None

    @pytest.mark.anyio
    async def test_local_install_then_update(self, manager, bundle_dir):
        await manager.install_from_local(bundle_dir)

        result = await manager.update("my-great-skill")

        assert result.kind is FailureKind.NOT_UPDATABLE


class TestVerifyBundle:
    def test_missing_marker(self, tmp_path):
        assert SkillManager.verify_bundle(tmp_path) == ["Missing SKILL.md file"]

    def test_short_marker(self, tmp_path):
        (tmp_path / "SKILL.md").write_text("# Tiny\n")
        assert SkillManager.verify_bundle(tmp_path) == [
            "SKILL.md is too short (minimum 50 characters)"
        ]

    def test_valid_bundle(self, tmp_path):
        (tmp_path / "SKILL.md").write_text(SKILL_MD * 2)
        assert SkillManager.verify_bundle(tmp_path) == []


class TestQueries:
    def test_list_installed_sorted(self, manager):
        _record(manager, "zeta", "1.0.0")
        _record(manager, "alpha", "1.0.0")
        _record(manager, "mine", "local", source=SkillSource.LOCAL)

        assert [r.name for r in manager.list_installed()] == ["alpha", "mine", "zeta"]
        assert [r.name for r in manager.updatable()] == ["alpha", "zeta"]
