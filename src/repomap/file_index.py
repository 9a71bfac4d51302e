"""Content file index: build and diff.

Building is a fan-out/fan-in stage. A fixed number of long-lived worker
threads pull positions from a shared cursor over the immutable input list,
each worker owning the full stat-and-hash lifecycle of one file at a time, and
append their entries to a shared result list. The caller only ever sees the
index after every worker has finished and the entries have been sorted.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .constants import DEFAULT_CONCURRENCY, DEFAULT_HASH_ALGORITHM, ROOT_PATH
from .core import ChangeSet, FileIndex, FileIndexEntry
from .errors import ErrorSink, RepoRootError, report_error
from .hashing import compute_file_hash, new_hasher
from .paths import extended_path, normalize_repo_path, to_absolute

logger = logging.getLogger(__name__)


class _Cursor:
    """Thread-safe "next index" counter over a fixed-length list."""

    def __init__(self, length: int):
        self._length = length
        self._next = 0
        self._lock = threading.Lock()

    def take(self) -> Optional[int]:
        with self._lock:
            if self._next >= self._length:
                return None
            current = self._next
            self._next += 1
            return current


def _build_entry(
    root: Path,
    path: str,
    algorithm: str,
    on_error: Optional[ErrorSink],
) -> FileIndexEntry:
    """Stat and hash one file.

    A file that vanished or cannot be read still gets an entry, with a None
    hash and best-effort size/mtime.
    """
    abs_path = to_absolute(root, path)
    try:
        st = os.stat(extended_path(abs_path))
    except OSError as e:
        report_error(e, str(abs_path), on_error, logger)
        return FileIndexEntry(path=path, size=0, mtime=0.0, hash=None)

    try:
        digest = compute_file_hash(abs_path, algorithm)
    except OSError as e:
        report_error(e, str(abs_path), on_error, logger)
        digest = None

    return FileIndexEntry(path=path, size=st.st_size, mtime=st.st_mtime, hash=digest)


def build_file_index(
    repo_root: Union[str, Path],
    files: Iterable[str],
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    concurrency: int = DEFAULT_CONCURRENCY,
    on_error: Optional[ErrorSink] = None,
) -> FileIndex:
    """Hash every file and assemble a sorted index.

    Args:
        repo_root: Repository root directory
        files: RepoPaths to index (duplicates are indexed once)
        hash_algorithm: ``sha256`` or ``sha1``
        concurrency: Number of hashing workers (at least 1)
        on_error: Sink for per-file read errors

    Returns:
        FileIndex sorted by path

    Raises:
        RepoRootError: If the root is missing before or after hashing
        ValueError: If the hash algorithm is not supported
    """
    root = Path(os.path.abspath(repo_root))
    if not root.is_dir():
        raise RepoRootError(str(root), "directory does not exist")
    new_hasher(hash_algorithm)

    paths: List[str] = []
    seen = set()
    for value in files:
        path = normalize_repo_path(value)
        if path == ROOT_PATH or path in seen:
            continue
        seen.add(path)
        paths.append(path)

    entries: List[FileIndexEntry] = []
    cursor = _Cursor(len(paths))

    def worker() -> None:
        while True:
            position = cursor.take()
            if position is None:
                return
            entries.append(_build_entry(root, paths[position], hash_algorithm, on_error))

    workers = min(max(1, concurrency), len(paths))
    if workers:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="repomap-hash") as executor:
            futures = [executor.submit(worker) for _ in range(workers)]
            for future in futures:
                future.result()

    if not root.is_dir():
        raise RepoRootError(str(root), "directory disappeared while indexing")

    entries.sort(key=lambda entry: entry.path)
    logger.debug("Indexed %d files under %s with %d workers", len(entries), root, workers)
    return FileIndex(repo_root=str(root), hash_algorithm=hash_algorithm, files=entries)


def _entry_changed(previous: FileIndexEntry, current: FileIndexEntry, use_hash: bool) -> bool:
    if use_hash and previous.hash and current.hash:
        return previous.hash != current.hash
    return previous.size != current.size or previous.mtime != current.mtime


def diff_file_index(previous: FileIndex, current: FileIndex) -> ChangeSet:
    """Compute added, modified and deleted paths between two indexes.

    Hashes are compared only when both indexes use the same algorithm and both
    entries have a hash; otherwise size and mtime decide.

    Args:
        previous: Index from the earlier run
        current: Freshly built index

    Returns:
        ChangeSet with each list sorted ascending
    """
    previous_map = previous.by_path()
    current_map = current.by_path()
    use_hash = previous.hash_algorithm == current.hash_algorithm

    added = []
    modified = []
    for path, entry in current_map.items():
        prior = previous_map.get(path)
        if prior is None:
            added.append(path)
        elif _entry_changed(prior, entry, use_hash):
            modified.append(path)

    deleted = [path for path in previous_map if path not in current_map]

    return ChangeSet(
        hash_algorithm=current.hash_algorithm,
        added=sorted(added),
        modified=sorted(modified),
        deleted=sorted(deleted),
    )


def empty_index(repo_root: Union[str, Path], hash_algorithm: str = DEFAULT_HASH_ALGORITHM) -> FileIndex:
    """Index with no files, the baseline for a first run."""
    return FileIndex(repo_root=str(repo_root), hash_algorithm=hash_algorithm, files=[])
