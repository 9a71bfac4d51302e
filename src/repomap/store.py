"""Persisted state of the previous run.

State lives in the output directory (``.repomap/`` by default) as one JSON
document per model. Documents are written deterministically (sorted keys,
two-space indent, trailing newline) so an unchanged tree produces
byte-identical files, and atomically so a reader never sees a torn file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .constants import CHANGES_FILE, FILE_INDEX_FILE, META_FILE, MODULES_FILE
from .core import ChangeSet, FileIndex, ModuleCatalogue, RepoMapMeta
from .errors import StateCorruptError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


# ============= Atomic Write Helpers =============

def _atomic_write_text(path: Path, text: str) -> None:
    """Atomically write text to file with crash safety.

    1. Writes to a temp file in the same directory and fsyncs it
    2. Renames it over the target (appears all-at-once)
    3. Fsyncs the parent directory so the rename is durable

    Directory fsync is best-effort; it is not available on Windows.

    Args:
        path: Target file path
        text: Text content to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        newline="\n",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.tmp-",
        suffix=""
    ) as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
        tmp = Path(f.name)

    try:
        os.replace(tmp, path)

        try:
            flags = os.O_RDONLY
            if hasattr(os, "O_DIRECTORY"):
                flags |= os.O_DIRECTORY

            dirfd = os.open(str(path.parent), flags)
            try:
                os.fsync(dirfd)
            finally:
                os.close(dirfd)
        except OSError:
            # Not supported on Windows or some filesystems; the file fsync
            # above already made the content durable
            pass
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def dump_json(model: BaseModel) -> str:
    """Serialize a model deterministically."""
    return json.dumps(model.model_dump(mode="json"), indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def _save(model: BaseModel, path: Path) -> None:
    _atomic_write_text(path, dump_json(model))
    logger.debug("Wrote %s", path)


def _load(path: Path, model_cls: Type[M]) -> Optional[M]:
    """Load a model, or None if the file does not exist.

    Raises:
        StateCorruptError: If the file cannot be read, parsed or validated
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        raise StateCorruptError(str(path), str(e)) from e

    try:
        return model_cls.model_validate(json.loads(text))
    except ValueError as e:
        # json.JSONDecodeError and pydantic's ValidationError are both ValueErrors
        detail = e.errors()[0]["msg"] if isinstance(e, ValidationError) else str(e)
        raise StateCorruptError(str(path), detail) from e


# ============= Load / Save =============

def load_meta(out_dir: Path) -> Optional[RepoMapMeta]:
    return _load(out_dir / META_FILE, RepoMapMeta)


def load_file_index(out_dir: Path) -> Optional[FileIndex]:
    return _load(out_dir / FILE_INDEX_FILE, FileIndex)


def load_catalogue(out_dir: Path) -> Optional[ModuleCatalogue]:
    return _load(out_dir / MODULES_FILE, ModuleCatalogue)


def load_changes(out_dir: Path) -> Optional[ChangeSet]:
    return _load(out_dir / CHANGES_FILE, ChangeSet)


def save_state(
    out_dir: Path,
    meta: RepoMapMeta,
    catalogue: ModuleCatalogue,
    change_set: ChangeSet,
    file_index: FileIndex,
) -> None:
    """Persist the outcome of one run.

    The file index goes last: it is what the next run diffs against, so a run
    interrupted before this point leaves the previous index in place and the
    next run re-detects the same changes.
    """
    _save(meta, out_dir / META_FILE)
    _save(catalogue, out_dir / MODULES_FILE)
    _save(change_set, out_dir / CHANGES_FILE)
    _save(file_index, out_dir / FILE_INDEX_FILE)
    logger.info("Saved state for %d files and %d modules to %s",
                len(file_index.files), len(catalogue.modules), out_dir)
