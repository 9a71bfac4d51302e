"""RepoPath normalization.

A RepoPath is a repository-relative, slash-separated string without a
trailing slash. The repository root itself is ``"."``. Every component passes
paths around in this form and sorts them by plain string comparison, which is
ordinal over code points.
"""

import os
import sys
from pathlib import Path
from typing import Union

from .constants import ROOT_PATH

_IS_WINDOWS = sys.platform == "win32"
_EXTENDED_PATH_PREFIX = "\\\\?\\"
_MAX_PATH = 260


def normalize_repo_path(value: Union[str, Path]) -> str:
    """Return the canonical RepoPath for ``value``.

    Backslashes become slashes, leading ``./`` and trailing slashes are
    stripped, and empty input maps to ``"."``.

    Examples:
        >>> normalize_repo_path("src\\\\main.py")
        'src/main.py'
        >>> normalize_repo_path("./pkg/")
        'pkg'
        >>> normalize_repo_path("")
        '.'
    """
    if isinstance(value, Path):
        value = value.as_posix()
    normalized = value.replace("\\", "/").strip()
    while normalized.startswith("./"):
        normalized = normalized[2:]
    while len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized[:-1]
    if not normalized or normalized == "/":
        return ROOT_PATH
    return normalized


def parent_dir(repo_path: str) -> str:
    """Return the RepoPath of the directory containing ``repo_path``."""
    if repo_path == ROOT_PATH:
        return ROOT_PATH
    head, sep, _ = repo_path.rpartition("/")
    return head if sep and head else ROOT_PATH


def base_name(repo_path: str) -> str:
    """Return the last segment of ``repo_path``."""
    return repo_path.rsplit("/", 1)[-1]


def join_repo_path(directory: str, name: str) -> str:
    """Join a directory RepoPath and a child name."""
    if directory == ROOT_PATH or not directory:
        return name
    return f"{directory}/{name}"


def relative_to_base(repo_path: str, base: str):
    """Return ``repo_path`` relative to directory ``base``, or None outside it.

    The empty string is returned when the two are the same directory.
    """
    if base in ("", ROOT_PATH):
        return repo_path
    if repo_path == base:
        return ""
    prefix = f"{base}/"
    if not repo_path.startswith(prefix):
        return None
    return repo_path[len(prefix):]


def to_absolute(repo_root: Path, repo_path: str) -> Path:
    """Resolve a RepoPath against the repository root."""
    if repo_path == ROOT_PATH:
        return repo_root
    return repo_root.joinpath(*repo_path.split("/"))


def extended_path(path: Union[str, Path]) -> str:
    """Return an OS path string usable for paths longer than MAX_PATH.

    Only Windows needs the ``\\\\?\\`` prefix; elsewhere the path is returned
    unchanged.
    """
    value = str(path)
    if not _IS_WINDOWS or not os.path.isabs(value):
        return value
    if value.startswith(_EXTENDED_PATH_PREFIX) or len(value) < _MAX_PATH:
        return value
    if value.startswith("\\\\"):
        return f"{_EXTENDED_PATH_PREFIX}UNC\\{value[2:]}"
    return f"{_EXTENDED_PATH_PREFIX}{value}"


def is_path_inside(base: Union[str, Path], target: Union[str, Path]) -> bool:
    """Check whether ``target`` is ``base`` or lives underneath it."""
    base_str = os.path.normcase(os.path.abspath(str(base)))
    target_str = os.path.normcase(os.path.abspath(str(target)))
    if base_str == target_str:
        return True
    try:
        common = os.path.commonpath([base_str, target_str])
    except ValueError:
        # Different drives on Windows
        return False
    return common == base_str
