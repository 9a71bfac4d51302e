"""Layered gitignore-style pattern matching for repomap.

An ignore decision is made by an ordered stack of layers. Each layer is a
compiled pattern set anchored at a base directory: the built-in defaults at
the root first, then every ``.gitignore`` met on the way down, and finally the
caller's override patterns, which are always evaluated last. Within that order
the last matching pattern wins, so a negated pattern (``!foo``) un-ignores what
an earlier layer ignored.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern

from .errors import ErrorSink, report_error
from .paths import extended_path, relative_to_base

logger = logging.getLogger(__name__)


GITIGNORE_FILE = ".gitignore"

# Default patterns to always ignore
DEFAULTS = [
    # Version control
    ".git/",
    ".hg/",
    ".svn/",

    # repomap output
    ".repomap/",

    # Dependencies and build output
    "node_modules/",
    "dist/",
    "build/",
    "out/",
    ".next/",
    ".nuxt/",
    ".cache/",
    ".turbo/",
    ".yarn/",
    ".pnpm/",
    "coverage/",
]

_GLOB_CHARS = set("*?[")


def _clean_lines(lines: Iterable[str]) -> List[str]:
    """Drop blank lines and comments."""
    patterns = []
    for line in lines:
        line = line.strip()
        if line and not line.startswith("#"):
            patterns.append(line)
    return patterns


def _reinclude_prefix(pattern: str) -> str:
    """Literal leading directory of a negated pattern ('' = any directory)."""
    body = pattern[1:].lstrip("/")
    if "/" not in body.rstrip("/"):
        # Unanchored, can match at any depth
        return ""
    literal = []
    for segment in body.split("/"):
        if not segment or any(char in _GLOB_CHARS for char in segment):
            break
        literal.append(segment)
    return "/".join(literal)


class IgnoreLayer:
    """A compiled pattern set anchored at one base directory."""

    def __init__(self, patterns: Sequence[str], base: str = ""):
        """Compile a layer.

        Args:
            patterns: Gitignore-style patterns, negation allowed
            base: RepoPath of the directory the patterns are relative to
                (``""`` for the repository root)
        """
        self.base = "" if base == "." else base
        self.patterns = list(patterns)
        self.spec = PathSpec.from_lines(GitWildMatchPattern, self.patterns)

    @classmethod
    def from_patterns(cls, patterns: Iterable[str], base: str = "") -> Optional["IgnoreLayer"]:
        """Build a layer, or None when there are no usable patterns."""
        cleaned = _clean_lines(patterns)
        if not cleaned:
            return None
        return cls(cleaned, base)

    def __repr__(self) -> str:
        return f"IgnoreLayer(base={self.base!r}, patterns={len(self.patterns)})"

    def verdict(self, relpath: str, is_dir: bool) -> Optional[bool]:
        """Evaluate this layer for a repository-relative path.

        Returns:
            True if the last matching pattern ignores the path, False if it
            un-ignores it, None if no pattern applies (or the path lies outside
            the layer's base directory)
        """
        rel = relative_to_base(relpath, self.base)
        if not rel:
            return None
        if is_dir and not rel.endswith("/"):
            rel = rel + "/"

        result = None
        for pattern in self.spec.patterns:
            if pattern.include is None:
                continue
            if pattern.match_file(rel) is not None:
                result = bool(pattern.include)
        return result

    def reinclude_prefixes(self) -> List[str]:
        """Literal directory prefixes of this layer's negated patterns."""
        return [_reinclude_prefix(p) for p in self.patterns if p.startswith("!")]

    def may_reinclude_under(self, dirpath: str) -> bool:
        """Check whether a negated pattern could match something inside ``dirpath``.

        Used to keep descending into an ignored directory when the override
        layer force-includes paths beneath it.
        """
        rel = relative_to_base(dirpath, self.base)
        if rel is None:
            return False
        for prefix in self.reinclude_prefixes():
            if (
                not prefix
                or prefix == rel
                or prefix.startswith(rel + "/")
                or rel.startswith(prefix + "/")
            ):
                return True
        return False


def is_ignored(
    relpath: str,
    is_dir: bool,
    stack: Sequence[IgnoreLayer],
    override: Optional[IgnoreLayer] = None,
) -> bool:
    """Check whether a repository-relative POSIX path is excluded.

    Args:
        relpath: RepoPath of the candidate
        is_dir: Whether the candidate is a directory; directories are matched
            with an implicit trailing slash so ``foo/`` patterns apply
        stack: Layers inherited along the candidate's ancestor directories,
            in discovery order
        override: Caller-supplied layer, evaluated after the whole stack

    Returns:
        True if the last applicable match ignores the path
    """
    if relpath in ("", "."):
        return False
    ignored = False
    for layer in stack:
        verdict = layer.verdict(relpath, is_dir)
        if verdict is not None:
            ignored = verdict
    if override is not None:
        verdict = override.verdict(relpath, is_dir)
        if verdict is not None:
            ignored = verdict
    return ignored


def should_traverse(
    dirpath: str,
    stack: Sequence[IgnoreLayer],
    override: Optional[IgnoreLayer] = None,
) -> bool:
    """Check if a directory should be entered during a walk.

    An ignored directory is skipped entirely unless the override layer carries
    a negated pattern that may re-include something beneath it.
    """
    if not is_ignored(dirpath, True, stack, override):
        return True
    return override is not None and override.may_reinclude_under(dirpath)


def load_gitignore(
    dir_path: Path,
    dir_rel: str,
    on_error: Optional[ErrorSink] = None,
) -> Optional[IgnoreLayer]:
    """Load the ``.gitignore`` of one directory as a layer.

    A missing file is not an error. An unreadable one is reported through
    ``on_error`` and treated as absent.

    Args:
        dir_path: Absolute directory path
        dir_rel: RepoPath of the directory (the layer's base)
        on_error: Error sink for read failures

    Returns:
        The layer, or None if there is no usable ``.gitignore``
    """
    gitignore_path = dir_path / GITIGNORE_FILE
    try:
        with open(extended_path(gitignore_path), "r", encoding="utf-8") as f:
            content = f.read()
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        report_error(e, str(gitignore_path), on_error, logger)
        return None

    if content.startswith("\ufeff"):
        content = content[1:]
    return IgnoreLayer.from_patterns(content.splitlines(), dir_rel)


def default_layer(patterns: Optional[Iterable[str]] = None) -> Optional[IgnoreLayer]:
    """Root layer holding the built-in (or replacement) default patterns."""
    lines = DEFAULTS if patterns is None else patterns
    return IgnoreLayer.from_patterns((p.replace("\\", "/") for p in lines), "")


def override_layer(patterns: Optional[Iterable[str]]) -> Optional[IgnoreLayer]:
    """Root layer holding caller-supplied override patterns."""
    return IgnoreLayer.from_patterns((p.replace("\\", "/") for p in patterns or ()), "")
