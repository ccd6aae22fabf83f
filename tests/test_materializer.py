"""Tests for archive extraction and inline document materialization."""

import io
import tarfile

import pytest

from skill_get.errors import MaterializeError
from skill_get.skills.materializer import _strip_one, inline_files_for, materialize


def _tar_with(members):
    """Gzip tarball from ``(TarInfo, bytes | None)`` pairs."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for info, data in members:
            if data is None:
                tar.addfile(info)
            else:
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


# ── inline documents ──────────────────────────────────────────────────


class TestInlineFiles:
    def test_all_documents(self):
        files = inline_files_for("# Skill", "readme", {"type": "object"})
        assert files["SKILL.md"] == "# Skill"
        assert files["README.md"] == "readme"
        assert files["config.schema.json"] == '{\n  "type": "object"\n}'

    def test_missing_documents_are_skipped(self):
        assert inline_files_for(None, "", None) == {}


# ── strip one component ───────────────────────────────────────────────


class TestStripOne:
    def test_wrapper_is_removed(self):
        members = [tarfile.TarInfo("pkg"), tarfile.TarInfo("pkg/a.md"), tarfile.TarInfo("pkg/b/c")]
        for m in members:
            m.type = tarfile.REGTYPE
        members[0].type = tarfile.DIRTYPE

        kept = _strip_one(members)

        assert [m.name for m in kept] == ["a.md", "b/c"]

    def test_absolute_member_rejected(self):
        with pytest.raises(MaterializeError, match="absolute path"):
            _strip_one([tarfile.TarInfo("/etc/passwd")])

    def test_hardlink_target_stripped(self):
        link = tarfile.TarInfo("pkg/alias.md")
        link.type = tarfile.LNKTYPE
        link.linkname = "pkg/a.md"

        (kept,) = _strip_one([link])

        assert kept.linkname == "a.md"


# ── materialize ───────────────────────────────────────────────────────


class TestMaterialize:
    def test_archive_and_inline(self, tmp_path, make_tarball):
        target = tmp_path / "skills" / "foo"
        scratch = tmp_path / "scratch"
        archive = make_tarball({"foo/SKILL.md": "archived", "foo/docs/usage.md": "usage"})

        out = materialize(
            target,
            archive=archive,
            inline_files={"README.md": "inline readme"},
            scratch_dir=scratch,
            scratch_name="foo-1.0.0.tar.gz",
        )

        assert out == target
        assert (target / "SKILL.md").read_text() == "archived"
        assert (target / "docs" / "usage.md").read_text() == "usage"
        assert (target / "README.md").read_text() == "inline readme"
        assert not (scratch / "foo-1.0.0.tar.gz").exists()

    def test_existing_files_are_kept(self, tmp_path):
        target = tmp_path / "foo"
        target.mkdir()
        (target / "notes.txt").write_text("mine")

        materialize(
            target,
            inline_files={"SKILL.md": "new"},
            scratch_dir=tmp_path,
            scratch_name="unused",
        )

        assert (target / "notes.txt").read_text() == "mine"
        assert (target / "SKILL.md").read_text() == "new"

    def test_scratch_removed_when_extraction_fails(self, tmp_path):
        scratch = tmp_path / "scratch"

        with pytest.raises(MaterializeError, match="Failed to extract archive"):
            materialize(
                tmp_path / "foo",
                archive=b"not a tarball",
                scratch_dir=scratch,
                scratch_name="foo.tar.gz",
            )

        assert not (scratch / "foo.tar.gz").exists()

    def test_traversal_member_rejected(self, tmp_path):
        data = b"pwned"
        archive = _tar_with([(tarfile.TarInfo("pkg/../../evil.txt"), data)])
        scratch = tmp_path / "scratch"

        with pytest.raises(MaterializeError):
            materialize(
                tmp_path / "skills" / "foo",
                archive=archive,
                scratch_dir=scratch,
                scratch_name="foo.tar.gz",
            )

        assert not (tmp_path / "evil.txt").exists()
        assert not (scratch / "foo.tar.gz").exists()

    def test_absolute_member_rejected(self, tmp_path):
        archive = _tar_with([(tarfile.TarInfo("/abs/evil.txt"), b"x")])
        scratch = tmp_path / "scratch"

        with pytest.raises(MaterializeError, match="absolute path"):
            materialize(
                tmp_path / "foo",
                archive=archive,
                scratch_dir=scratch,
                scratch_name="foo.tar.gz",
            )

        assert not (scratch / "foo.tar.gz").exists()

    def test_escaping_symlink_rejected(self, tmp_path):
        link = tarfile.TarInfo("pkg/escape")
        link.type = tarfile.SYMTYPE
        link.linkname = "../../../outside"
        archive = _tar_with([(link, None)])

        with pytest.raises(MaterializeError):
            materialize(
                tmp_path / "foo",
                archive=archive,
                scratch_dir=tmp_path / "scratch",
                scratch_name="foo.tar.gz",
            )

    def test_target_creation_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file")

        with pytest.raises(MaterializeError, match="Cannot create install directory"):
            materialize(
                blocker / "foo",
                inline_files={"SKILL.md": "x"},
                scratch_dir=tmp_path,
                scratch_name="unused",
            )

    def test_interpreter_without_extraction_filters(self, tmp_path, make_tarball, monkeypatch):
        monkeypatch.delattr(tarfile, "data_filter")
        scratch = tmp_path / "scratch"

        with pytest.raises(MaterializeError, match="no tarfile extraction filters"):
            materialize(
                tmp_path / "foo",
                archive=make_tarball({"foo/SKILL.md": "x"}),
                scratch_dir=scratch,
                scratch_name="foo.tar.gz",
            )

        assert not (scratch / "foo.tar.gz").exists()
        assert not (tmp_path / "foo" / "SKILL.md").exists()
