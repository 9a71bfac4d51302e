"""Core data models for repomap.

Snapshot Model:
---------------
Every run derives a fresh, immutable snapshot of the repository from the live
tree: a FileIndex (path, size, mtime, content hash per file) and a
ModuleCatalogue (module roots plus collaborator-derived data). Incremental runs
compare the fresh snapshot against the previous run's persisted one and either
replace it wholesale or merge per module. Nothing is mutated in place.

All paths are RepoPaths (see ``repomap.paths``) and every list of paths or
entries is kept sorted by ordinal string comparison, so serialized output is
byte-stable across runs on an unchanged tree.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .constants import DEFAULT_HASH_ALGORITHM


HashAlgorithm = Literal["sha256", "sha1"]
ModuleLanguage = Literal["node", "go", "python", "mixed", "unknown"]


# ============= File Index =============

class FileIndexEntry(BaseModel):
    """Size, modification time and content hash of one file.

    ``hash`` is None when the file could not be read while indexing; the entry
    is still recorded so the path is known to exist.
    """

    path: str
    size: int
    mtime: float
    hash: Optional[str] = None


class FileIndex(BaseModel):
    """Content-addressed index of a repository, sorted by path."""

    repo_root: str
    hash_algorithm: HashAlgorithm = DEFAULT_HASH_ALGORITHM
    files: List[FileIndexEntry] = Field(default_factory=list)

    @property
    def paths(self) -> List[str]:
        """Paths of all entries, in index order."""
        return [entry.path for entry in self.files]

    def by_path(self) -> Dict[str, FileIndexEntry]:
        """Map entries by path."""
        return {entry.path: entry for entry in self.files}


class ChangeSet(BaseModel):
    """Added, modified and deleted paths between two file indexes."""

    hash_algorithm: HashAlgorithm = DEFAULT_HASH_ALGORITHM
    added: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)

    @property
    def changed_paths(self) -> List[str]:
        """All changed paths, sorted."""
        return sorted(set(self.added) | set(self.modified) | set(self.deleted))

    @property
    def total(self) -> int:
        return len(self.added) + len(self.modified) + len(self.deleted)

    @property
    def is_empty(self) -> bool:
        return self.total == 0

    def summary(self) -> str:
        """Get human-readable summary."""
        return f"+{len(self.added)} ~{len(self.modified)} -{len(self.deleted)}"


# ============= Modules =============

class WorkspaceConfig(BaseModel):
    """Monorepo layout declared by workspace configuration files.

    ``globs`` are workspace patterns such as ``packages/*`` (a leading ``!``
    negates); ``roots`` are explicit module directories.
    """

    globs: List[str] = Field(default_factory=list)
    roots: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.globs and not self.roots


class ModuleInfo(BaseModel):
    """One module: a directory subtree indexed as a logical unit."""

    name: str
    path: str
    language: ModuleLanguage
    file_count: int


class ModuleRecord(ModuleInfo):
    """A module plus the data collaborators derived for it.

    ``data`` maps collaborator name to that collaborator's JSON-serializable
    output for this module.
    """

    data: Dict[str, Any] = Field(default_factory=dict)

    def info(self) -> ModuleInfo:
        return ModuleInfo(
            name=self.name,
            path=self.path,
            language=self.language,
            file_count=self.file_count,
        )


class ModuleCatalogue(BaseModel):
    """Persisted module catalogue, sorted by module path."""

    modules: List[ModuleRecord] = Field(default_factory=list)

    @property
    def roots(self) -> List[str]:
        return [module.path for module in self.modules]

    def infos(self) -> List[ModuleInfo]:
        return [module.info() for module in self.modules]

    def data_by_path(self) -> Dict[str, Dict[str, Any]]:
        return {module.path: module.data for module in self.modules}


# ============= Run Metadata =============

class RepoMapMeta(BaseModel):
    """Metadata describing one indexing run."""

    tool_version: str
    repo_root: str
    git_commit: Optional[str] = None
    generated_at: str
    hash_algorithm: HashAlgorithm = DEFAULT_HASH_ALGORITHM


# ============= Incremental Planning =============

class UpdateMode(str, Enum):
    """How derived per-module data is refreshed for one invocation."""

    FULL = "full"
    INCREMENTAL = "incremental"


class UpdatePlan(BaseModel):
    """Decision of the incremental orchestrator for one invocation."""

    mode: UpdateMode
    reason: str
    change_set: ChangeSet
    affected_modules: List[str] = Field(default_factory=list)

    @property
    def is_full(self) -> bool:
        return self.mode == UpdateMode.FULL

    def summary(self) -> str:
        """Get human-readable summary."""
        return (
            f"{self.mode.value} ({self.reason}): {self.change_set.summary()}, "
            f"{len(self.affected_modules)} modules to refresh"
        )
