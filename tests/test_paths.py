"""Tests for RepoPath normalization helpers."""

import sys
from pathlib import Path

import pytest

from repomap.paths import (
    base_name,
    extended_path,
    is_path_inside,
    join_repo_path,
    normalize_repo_path,
    parent_dir,
    relative_to_base,
    to_absolute,
)


class TestNormalizeRepoPath:

    @pytest.mark.parametrize("value,expected", [
        ("src\\main.py", "src/main.py"),
        ("./pkg/", "pkg"),
        ("././a/b", "a/b"),
        ("  a/b/ ", "a/b"),
        ("", "."),
        (".", "."),
        ("/", "."),
        ("a//", "a"),
    ])
    def test_normalization(self, value, expected):
        assert normalize_repo_path(value) == expected

    def test_path_objects(self):
        assert normalize_repo_path(Path("a") / "b" / "c.txt") == "a/b/c.txt"

    def test_idempotent(self):
        once = normalize_repo_path(".\\x\\y\\")
        assert normalize_repo_path(once) == once


class TestSegments:

    def test_parent_dir(self):
        assert parent_dir("a/b/c.txt") == "a/b"
        assert parent_dir("c.txt") == "."
        assert parent_dir(".") == "."

    def test_base_name(self):
        assert base_name("a/b/c.txt") == "c.txt"
        assert base_name("c.txt") == "c.txt"

    def test_join(self):
        assert join_repo_path(".", "x") == "x"
        assert join_repo_path("", "x") == "x"
        assert join_repo_path("a", "x") == "a/x"

    def test_relative_to_base(self):
        assert relative_to_base("a/b", "a") == "b"
        assert relative_to_base("a", "a") == ""
        assert relative_to_base("ab/c", "a") is None
        assert relative_to_base("x/y", "") == "x/y"
        assert relative_to_base("x/y", ".") == "x/y"


class TestFilesystem:

    def test_to_absolute(self, tmp_path):
        assert to_absolute(tmp_path, "a/b.txt") == tmp_path / "a" / "b.txt"
        assert to_absolute(tmp_path, ".") == tmp_path

    def test_is_path_inside(self, tmp_path):
        assert is_path_inside(tmp_path, tmp_path)
        assert is_path_inside(tmp_path, tmp_path / "a" / "b")
        assert not is_path_inside(tmp_path / "a", tmp_path)
        assert not is_path_inside(tmp_path / "a", tmp_path / "ab")

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX paths are never prefixed")
    def test_extended_path_unchanged_on_posix(self, tmp_path):
        long_path = tmp_path / ("x" * 300)
        assert extended_path(long_path) == str(long_path)
