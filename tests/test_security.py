"""Tests for the working-directory sandbox."""

import os

import pytest

from patchwright.errors import PathSecurityError
from patchwright.tools.security import (
    IGNORE_FILENAME,
    is_suspicious_path,
    is_within_root,
    load_ignore_spec,
    parse_path_range,
    split_path_expressions,
    validate_path,
)


class TestIsWithinRoot:

    def test_relative_child_is_inside(self, tmp_dir):
        assert is_within_root("src/app.py", tmp_dir)

    def test_root_itself_is_inside(self, tmp_dir):
        assert is_within_root(".", tmp_dir)

    def test_parent_escape_is_outside(self, tmp_dir):
        assert not is_within_root("../outside.txt", tmp_dir)
        assert not is_within_root("src/../../outside.txt", tmp_dir)

    def test_absolute_path_outside(self, tmp_dir):
        assert not is_within_root("/etc/passwd", tmp_dir)

    def test_absolute_path_inside(self, tmp_dir):
        assert is_within_root(str(tmp_dir / "a.txt"), tmp_dir)

    def test_sibling_with_common_prefix_is_outside(self, tmp_path):
        root = tmp_path / "proj"
        root.mkdir()
        (tmp_path / "proj-evil").mkdir()
        assert not is_within_root("../proj-evil/x.txt", root)

    def test_symlink_escape_is_outside(self, tmp_dir, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        (outside / "secret.txt").write_text("s")
        os.symlink(outside, tmp_dir / "link")
        assert not is_within_root("link/secret.txt", tmp_dir)

    @pytest.mark.skipif(os.name == "nt", reason="backslash is a separator on Windows")
    def test_backslash_is_plain_character(self, tmp_dir):
        assert is_within_root("a\\b.txt", tmp_dir)


class TestValidatePath:

    def test_returns_canonical_path(self, tmp_dir):
        resolved = validate_path("sub/file.txt", tmp_dir)
        assert resolved == tmp_dir.resolve() / "sub" / "file.txt"

    def test_outside_raises(self, tmp_dir):
        with pytest.raises(PathSecurityError, match="outside the project"):
            validate_path("../x.txt", tmp_dir)

    def test_empty_raises(self, tmp_dir):
        with pytest.raises(PathSecurityError):
            validate_path("  ", tmp_dir)

    def test_restricted_name_raises(self, tmp_dir):
        with pytest.raises(PathSecurityError, match="restricted"):
            validate_path(".env", tmp_dir, restricted=[".env"])
        with pytest.raises(PathSecurityError, match="restricted"):
            validate_path("config/.env", tmp_dir, restricted=[".env"])

    def test_unrestricted_name_passes(self, tmp_dir):
        validate_path(".env.example", tmp_dir, restricted=[".env"])


class TestSuspiciousPath:

    @pytest.mark.parametrize("path", [
        "../a.txt", "a/../../b", "a/..", "/etc/passwd", "~/x", "C:/win.ini", "c:x", "a\\b.txt", "",
    ])
    def test_flagged(self, path):
        assert is_suspicious_path(path)

    @pytest.mark.parametrize("path", ["a.txt", "src/app.py", "..hidden", "dir/.config", "a..b"])
    def test_allowed(self, path):
        assert not is_suspicious_path(path)


class TestPathExpressions:

    def test_split_respects_quotes(self):
        assert split_path_expressions('a.py "my notes.md" \'b c.txt[1,2]\'') == [
            "a.py", "my notes.md", "b c.txt[1,2]",
        ]

    def test_split_unbalanced_quote_raises(self):
        with pytest.raises(ValueError):
            split_path_expressions('"a.py')

    def test_range_full(self):
        assert parse_path_range("f.py[10,20]") == ("f.py", (10, 20))

    def test_range_open_end(self):
        assert parse_path_range("f.py[5]") == ("f.py", (5, None))
        assert parse_path_range("f.py[5,$]") == ("f.py", (5, None))

    def test_no_range(self):
        assert parse_path_range("f.py") == ("f.py", None)


class TestIgnoreFile:

    def test_no_file_means_no_patterns(self, tmp_dir, tmp_path_factory):
        assert load_ignore_spec(tmp_dir, tmp_path_factory.mktemp("home")) is None

    def test_project_file_patterns(self, tmp_dir):
        (tmp_dir / IGNORE_FILENAME).write_text("# generated\ndist/\n*.secret\n!keep.secret\n")
        spec = load_ignore_spec(tmp_dir)
        assert spec.match_file("dist/bundle.js")
        assert spec.match_file("config/api.secret")
        assert not spec.match_file("keep.secret")
        assert not spec.match_file("src/app.py")

    def test_project_file_beats_home_file(self, tmp_dir, tmp_path_factory):
        home = tmp_path_factory.mktemp("home")
        (home / IGNORE_FILENAME).write_text("*.py\n")
        (tmp_dir / IGNORE_FILENAME).write_text("*.txt\n")
        spec = load_ignore_spec(tmp_dir, home)
        assert spec.match_file("notes.txt")
        assert not spec.match_file("app.py")

    def test_home_file_used_without_project_file(self, tmp_dir, tmp_path_factory):
        home = tmp_path_factory.mktemp("home")
        (home / IGNORE_FILENAME).write_text("vendor/\n")
        assert load_ignore_spec(tmp_dir, home).match_file("vendor/lib.js")
