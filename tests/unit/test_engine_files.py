"""Tests for repo_fleet.engine.files."""

import stat

import pytest

from repo_fleet.engine.files import append_missing_lines, apply_file_edit, resolve_replace_targets
from repo_fleet.engine.tasks import FileEdit


class TestAppendMissingLines:
    """Tests for append-if-missing content merging."""

    def test_appends_missing_line(self):
        """Test a missing line is appended after existing content."""
        assert append_missing_lines("node_modules\n", ".env\n") == "node_modules\n.env\n"

    def test_idempotent(self):
        """Test applying the same template twice changes nothing the second time."""
        once = append_missing_lines("node_modules\n", ".env\n")

        assert append_missing_lines(once, ".env\n") == once

    def test_substring_is_not_a_match(self):
        """Test .envrc does not satisfy .env."""
        assert append_missing_lines(".envrc\n", ".env\n") == ".envrc\n.env\n"

    def test_adds_newline_before_appending(self):
        """Test a file without trailing newline is terminated first."""
        assert append_missing_lines("dist", ".env") == "dist\n.env\n"

    def test_blank_and_repeated_template_lines(self):
        """Test blank lines are ignored and repeats appended once."""
        assert append_missing_lines("", ".env\n\n.env\n*.log\n") == ".env\n*.log\n"

    def test_existing_content_untouched(self):
        """Test existing lines keep their order and whitespace."""
        existing = "  indented\n# comment\n"

        assert append_missing_lines(existing, "# comment\nnew\n") == existing + "new\n"


class TestApplyFileEdit:
    """Tests for applying single edits."""

    @pytest.mark.asyncio
    async def test_overwrite_creates_file_with_permissions(self, tmp_path):
        """Test overwrite creates parents and applies permissions."""
        edit = FileEdit(path="scripts/run.sh", content="#!/bin/sh\n", permissions="0755")

        changed = await apply_file_edit(tmp_path, edit, edit.content)

        target = tmp_path / "scripts" / "run.sh"
        assert changed == ["scripts/run.sh"]
        assert target.read_text() == "#!/bin/sh\n"
        assert stat.S_IMODE(target.stat().st_mode) == 0o755

    @pytest.mark.asyncio
    async def test_overwrite_unchanged_is_noop(self, tmp_path):
        """Test identical content reports no change."""
        (tmp_path / "LICENSE").write_text("MIT\n")
        edit = FileEdit(path="LICENSE", content="MIT\n")

        assert await apply_file_edit(tmp_path, edit, edit.content) == []

    @pytest.mark.asyncio
    async def test_overwrite_replaces_content(self, tmp_path):
        """Test differing content is written."""
        (tmp_path / "LICENSE").write_text("GPL\n")
        edit = FileEdit(path="LICENSE", content="MIT\n")

        assert await apply_file_edit(tmp_path, edit, edit.content) == ["LICENSE"]
        assert (tmp_path / "LICENSE").read_text() == "MIT\n"

    @pytest.mark.asyncio
    async def test_skip_if_exists(self, tmp_path):
        """Test existing files are left alone."""
        (tmp_path / "README.md").write_text("# keep\n")
        edit = FileEdit(path="README.md", content="# new\n", mode="skip-if-exists")

        assert await apply_file_edit(tmp_path, edit, edit.content) == []
        assert (tmp_path / "README.md").read_text() == "# keep\n"

    @pytest.mark.asyncio
    async def test_append_if_missing_twice(self, tmp_path):
        """Test the second application of append-if-missing is a no-op."""
        (tmp_path / ".gitignore").write_text(".envrc\n")
        edit = FileEdit(path=".gitignore", content=".env\n", mode="append-if-missing")

        first = await apply_file_edit(tmp_path, edit, edit.content)
        second = await apply_file_edit(tmp_path, edit, edit.content)

        assert first == [".gitignore"]
        assert second == []
        assert (tmp_path / ".gitignore").read_text() == ".envrc\n.env\n"

    @pytest.mark.asyncio
    async def test_line_edit_legacy_mode(self, tmp_path):
        """Test the legacy line-edit mode behaves as append-if-missing."""
        edit = FileEdit(path=".gitignore", content=".env\n", mode="line-edit")

        assert await apply_file_edit(tmp_path, edit, edit.content) == [".gitignore"]
        assert (tmp_path / ".gitignore").read_text() == ".env\n"

    @pytest.mark.asyncio
    async def test_replace_across_globs(self, tmp_path):
        """Test replace edits every matching file except inside .git."""
        (tmp_path / "docs").mkdir()
        (tmp_path / "docs" / "a.md").write_text("see old-name\n")
        (tmp_path / "docs" / "b.md").write_text("nothing here\n")
        (tmp_path / "README.md").write_text("old-name rocks\n")
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "config.md").write_text("old-name\n")
        edit = FileEdit(paths=["**/*.md"], find="old-name", replace="new-name", mode="replace")

        changed = await apply_file_edit(tmp_path, edit, "")

        assert sorted(changed) == ["README.md", "docs/a.md"]
        assert (tmp_path / "docs" / "a.md").read_text() == "see new-name\n"
        assert (tmp_path / ".git" / "config.md").read_text() == "old-name\n"

    @pytest.mark.asyncio
    async def test_replace_skips_binary(self, tmp_path):
        """Test undecodable files are skipped."""
        (tmp_path / "logo.bin").write_bytes(b"\xff\xfe\x00old")
        edit = FileEdit(paths=["*.bin"], find="old", replace="new", mode="replace")

        assert await apply_file_edit(tmp_path, edit, "") == []


class TestFileEditValidation:
    """Tests for file edit definitions."""

    @pytest.mark.parametrize("path", ["/etc/passwd", "../outside", "a/../../b", " "])
    def test_paths_must_stay_inside(self, path):
        """Test absolute and escaping paths are rejected."""
        with pytest.raises(ValueError):
            FileEdit(path=path, content="x")

    def test_replace_requires_find(self):
        """Test replace mode needs a find string."""
        with pytest.raises(ValueError):
            FileEdit(path="a.txt", mode="replace")

    def test_paths_only_for_replace(self):
        """Test globs are rejected outside replace mode."""
        with pytest.raises(ValueError):
            FileEdit(path="a.txt", paths=["*.md"], content="x")

    def test_unknown_mode(self):
        """Test unknown modes are rejected."""
        with pytest.raises(ValueError):
            FileEdit(path="a.txt", mode="prepend")


class TestResolveReplaceTargets:
    """Tests for replace target globbing."""

    def test_sorted_unique(self, tmp_path):
        """Test overlapping patterns select each file once."""
        (tmp_path / "a.txt").write_text("")
        (tmp_path / "b.txt").write_text("")

        targets = resolve_replace_targets(tmp_path, ["*.txt", "a.txt"])

        assert [t.name for t in targets] == ["a.txt", "b.txt"]
