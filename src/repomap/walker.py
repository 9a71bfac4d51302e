"""Deterministic, ignore-aware file walker.

The walk is a depth-first traversal driven by an explicit stack of frames
rather than recursion, so tree depth never touches the interpreter's call
stack. Each directory is listed exactly once and its entries are sorted before
they are visited. Directories sort as ``name + "/"``, which makes depth-first
emission coincide with ordinal order of the full RepoPaths: ``a.txt`` comes
before ``a/b.txt`` just as ``"a.txt" < "a/b.txt"``.
"""

import logging
import os
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set, Tuple, Union

from .errors import ErrorSink, RepoRootError, report_error
from .ignore import (
    IgnoreLayer,
    default_layer,
    is_ignored,
    load_gitignore,
    override_layer,
    should_traverse,
)
from .paths import extended_path, is_path_inside, join_repo_path

logger = logging.getLogger(__name__)


class SymlinkPolicy(str, Enum):
    """Policy for handling symbolic links."""

    SKIP = "skip"  # Ignore all symlinks
    FOLLOW_FILE = "follow-file"  # Follow links to regular files
    FOLLOW_ALL = "follow-all"  # Also follow links to directories


class _Kind(Enum):
    FILE = "file"
    DIR = "dir"


@dataclass
class _Entry:
    name: str
    kind: _Kind

    @property
    def sort_key(self) -> str:
        return self.name + "/" if self.kind is _Kind.DIR else self.name


@dataclass
class _EnterFrame:
    dir_path: Path
    dir_rel: str
    depth: int
    layers: Tuple[IgnoreLayer, ...]


@dataclass
class _IterateFrame:
    dir_path: Path
    dir_rel: str
    depth: int
    layers: Tuple[IgnoreLayer, ...]
    entries: List[_Entry] = field(default_factory=list)
    index: int = 0


def _classify(
    entry: os.DirEntry,
    symlink_policy: SymlinkPolicy,
    on_error: Optional[ErrorSink],
) -> Optional[_Kind]:
    """Decide whether a directory entry is walked as a file, a directory or not at all."""
    try:
        if entry.is_symlink():
            if symlink_policy is SymlinkPolicy.SKIP:
                return None
            try:
                target = os.stat(extended_path(entry.path))
            except OSError as e:
                # Broken or unreadable link target
                report_error(e, entry.path, on_error, logger)
                return None
            if stat.S_ISDIR(target.st_mode):
                return _Kind.DIR if symlink_policy is SymlinkPolicy.FOLLOW_ALL else None
            if stat.S_ISREG(target.st_mode):
                return _Kind.FILE
            return None
        if entry.is_dir(follow_symlinks=False):
            return _Kind.DIR
        if entry.is_file(follow_symlinks=False):
            return _Kind.FILE
    except OSError as e:
        report_error(e, entry.path, on_error, logger)
    return None


def _read_entries(
    dir_path: Path,
    symlink_policy: SymlinkPolicy,
    on_error: Optional[ErrorSink],
) -> List[_Entry]:
    """List a directory once, classified and sorted.

    A listing that fails part-way keeps whatever was read before the error.
    """
    raw: List[os.DirEntry] = []
    try:
        with os.scandir(extended_path(dir_path)) as it:
            for entry in it:
                raw.append(entry)
    except OSError as e:
        report_error(e, str(dir_path), on_error, logger)

    entries = []
    for entry in raw:
        kind = _classify(entry, symlink_policy, on_error)
        if kind is not None:
            entries.append(_Entry(entry.name, kind))
    entries.sort(key=lambda item: item.sort_key)
    return entries


def resolve_root(root: Union[str, Path], cwd: Optional[Path] = None) -> Path:
    """Return the absolute walk root, validating that it is a directory.

    Raises:
        RepoRootError: If the root does not exist or is not a directory
    """
    base = cwd if cwd is not None else Path.cwd()
    absolute = Path(os.path.abspath(base / Path(root)))
    if not absolute.exists():
        raise RepoRootError(str(absolute), "directory does not exist")
    if not absolute.is_dir():
        raise RepoRootError(str(absolute), "not a directory")
    return absolute


def walk_files(
    root: Union[str, Path],
    ignore_globs: Optional[Iterable[str]] = None,
    symlink_policy: Union[SymlinkPolicy, str] = SymlinkPolicy.SKIP,
    max_depth: Optional[int] = None,
    *,
    use_gitignore: bool = True,
    default_ignores: Optional[Iterable[str]] = None,
    on_error: Optional[ErrorSink] = None,
    cwd: Optional[Path] = None,
) -> Iterator[str]:
    """Yield the ignore-filtered files under ``root`` as RepoPaths.

    The root is validated eagerly; the files themselves are produced lazily.
    Each call performs a fresh walk.

    Args:
        root: Directory to walk (relative paths resolve against ``cwd``)
        ignore_globs: Override patterns, evaluated after every other layer
        symlink_policy: ``skip``, ``follow-file`` or ``follow-all``
        max_depth: Deepest directory level to enter (root is 0); None for no
            limit. Deeper entries are skipped silently.
        use_gitignore: Load ``.gitignore`` files found along the way
        default_ignores: Replacement for the built-in default patterns
        on_error: Sink for per-entry errors; the entry is skipped either way
        cwd: Base for a relative ``root`` (defaults to the process cwd)

    Returns:
        Iterator over RepoPaths in ascending ordinal order

    Raises:
        RepoRootError: If the root does not exist or is not a directory
    """
    root_path = resolve_root(root, cwd)
    policy = SymlinkPolicy(symlink_policy)
    base = default_layer(default_ignores)
    override = override_layer(ignore_globs)
    return _walk(
        root_path,
        (base,) if base is not None else (),
        override,
        policy,
        max_depth,
        use_gitignore,
        on_error,
    )


def _walk(
    root: Path,
    root_layers: Tuple[IgnoreLayer, ...],
    override: Optional[IgnoreLayer],
    symlink_policy: SymlinkPolicy,
    max_depth: Optional[int],
    use_gitignore: bool,
    on_error: Optional[ErrorSink],
) -> Iterator[str]:
    follow_dirs = symlink_policy is SymlinkPolicy.FOLLOW_ALL
    real_root = os.path.realpath(root) if follow_dirs else None
    seen_real_paths: Set[str] = set()

    stack: List[Union[_EnterFrame, _IterateFrame]] = [
        _EnterFrame(dir_path=root, dir_rel="", depth=0, layers=root_layers)
    ]

    while stack:
        frame = stack[-1]

        if isinstance(frame, _EnterFrame):
            stack.pop()
            if follow_dirs:
                real = real_root if frame.depth == 0 else os.path.realpath(frame.dir_path)
                if not is_path_inside(real_root, real):
                    logger.debug("Not following %s outside of %s", frame.dir_rel, real_root)
                    continue
                if real in seen_real_paths:
                    logger.debug("Already walked %s, skipping %s", real, frame.dir_rel)
                    continue
                seen_real_paths.add(real)

            layers = frame.layers
            if use_gitignore:
                gitignore = load_gitignore(frame.dir_path, frame.dir_rel, on_error)
                if gitignore is not None:
                    layers = layers + (gitignore,)

            stack.append(_IterateFrame(
                dir_path=frame.dir_path,
                dir_rel=frame.dir_rel,
                depth=frame.depth,
                layers=layers,
                entries=_read_entries(frame.dir_path, symlink_policy, on_error),
            ))
            continue

        if frame.index >= len(frame.entries):
            stack.pop()
            continue
        entry = frame.entries[frame.index]
        frame.index += 1

        rel = join_repo_path(frame.dir_rel, entry.name)

        if entry.kind is _Kind.DIR:
            if not should_traverse(rel, frame.layers, override):
                continue
            if max_depth is not None and frame.depth + 1 > max_depth:
                continue
            stack.append(_EnterFrame(
                dir_path=frame.dir_path / entry.name,
                dir_rel=rel,
                depth=frame.depth + 1,
                layers=frame.layers,
            ))
            continue

        if is_ignored(rel, False, frame.layers, override):
            continue
        yield rel


def collect_files(root: Union[str, Path], **kwargs) -> List[str]:
    """Walk ``root`` and return all files as a list (see ``walk_files``)."""
    return list(walk_files(root, **kwargs))
