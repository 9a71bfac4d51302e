"""Shared test fixtures and utilities."""

import os
from pathlib import Path

import pytest

from repomap.core import FileIndex, FileIndexEntry, ModuleInfo


@pytest.fixture
def write_file(tmp_path):
    """Factory fixture to write files relative to tmp_path."""
    def _write(path: str, content: str = "test content"):
        file_path = tmp_path / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content)
        return file_path
    return _write


@pytest.fixture
def scenario_repo(tmp_path, write_file):
    """Small monorepo: one workspace package and a root-level source file."""
    write_file("packages/x/index.ts", "export const x = 1;\n")
    write_file("packages/x/package.json", '{"name": "@demo/x"}\n')
    write_file("src/a.ts", "export const a = 1;\n")
    return tmp_path


def make_index(*entries, algorithm: str = "sha256") -> FileIndex:
    """Build a FileIndex from (path, size, mtime, hash) tuples."""
    files = [FileIndexEntry(path=p, size=s, mtime=m, hash=h) for p, s, m, h in entries]
    return FileIndex(repo_root="/repo", hash_algorithm=algorithm, files=sorted(files, key=lambda e: e.path))


def make_modules(*paths: str):
    """ModuleInfo list for the given roots."""
    return [
        ModuleInfo(name=Path(p).name or "repo", path=p, language="unknown", file_count=1)
        for p in paths
    ]


symlinks_supported = pytest.mark.skipif(
    not hasattr(os, "symlink") or os.name == "nt",
    reason="symlinks not available"
)


unreadable_supported = pytest.mark.skipif(
    os.name == "nt" or (hasattr(os, "geteuid") and os.geteuid() == 0),
    reason="permission bits are not enforced"
)
