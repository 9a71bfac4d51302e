"""End-to-end indexing run.

walk -> file index -> module detection -> plan against previous state ->
collaborators for the affected modules -> merge -> persist.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from .collaborators import CollaboratorRequest, ModuleCollaborator
from .config import IndexConfig
from .core import FileIndex, ModuleCatalogue, ModuleInfo, RepoMapMeta, UpdatePlan
from .errors import StateCorruptError
from .file_index import build_file_index
from .incremental import merge_module_data, plan_update
from .meta import create_meta, read_git_commit
from .modules import detect_modules
from .paths import normalize_repo_path
from .store import load_catalogue, load_file_index, save_state
from .walker import collect_files, resolve_root

logger = logging.getLogger(__name__)


class IndexRunResult(BaseModel):
    """Outcome of one indexing run."""
    repo_root: str
    out_dir: str
    plan: UpdatePlan
    catalogue: ModuleCatalogue
    meta: RepoMapMeta
    file_count: int
    total_size: int
    # Recoverable errors reported while walking, hashing and reading manifests
    warnings: List[Tuple[str, str]] = Field(default_factory=list)


class _WarningCollector:
    """Error sink that logs and keeps every report."""

    def __init__(self):
        self.reports: List[Tuple[str, str]] = []

    def __call__(self, error: Union[OSError, ValueError], path: str) -> None:
        logger.warning("Skipping %s: %s", path, error)
        self.reports.append((path, str(error)))


def _ignore_patterns(config: IndexConfig) -> List[str]:
    """Override patterns, led by an anchored ignore of the output directory."""
    patterns = list(config.ignore)
    # Never index our own output, whatever the default layer holds
    patterns.insert(0, f"/{normalize_repo_path(config.out_dir)}/")
    return patterns


def _load_previous(out_dir: Path) -> Tuple[Optional[FileIndex], Optional[ModuleCatalogue]]:
    try:
        return load_file_index(out_dir), load_catalogue(out_dir)
    except StateCorruptError as e:
        logger.warning("%s Falling back to a full rebuild.", e)
        return None, None


def _populated_modules(
    catalogue: ModuleCatalogue,
    collaborators: Sequence[ModuleCollaborator],
) -> List[str]:
    """Previous modules holding data from every registered collaborator."""
    names = [collaborator.name for collaborator in collaborators]
    return [
        module.path for module in catalogue.modules
        if all(name in module.data for name in names)
    ]


def _run_collaborators(
    collaborators: Sequence[ModuleCollaborator],
    request: CollaboratorRequest,
    affected: List[str],
) -> Dict[str, Dict[str, Any]]:
    recomputed: Dict[str, Dict[str, Any]] = {path: {} for path in affected}
    for collaborator in collaborators:
        logger.debug("Running collaborator %s on %d modules", collaborator.name, len(affected))
        results = collaborator.compute(request)
        for path in affected:
            # An explicit None marks "asked, nothing to report"
            recomputed[path][collaborator.name] = results.get(path)
    return recomputed


def run_index(
    repo_root: Union[str, Path],
    config: Optional[IndexConfig] = None,
    collaborators: Sequence[ModuleCollaborator] = (),
    force_full: bool = False,
) -> IndexRunResult:
    """Index a repository and persist the result.

    Args:
        repo_root: Repository root directory
        config: Indexing configuration (defaults when None)
        collaborators: Per-module analyses to run for affected modules
        force_full: Refresh every module; previous state is still diffed

    Returns:
        IndexRunResult describing what was done

    Raises:
        RepoRootError: If the root is missing or not a directory
    """
    config = config or IndexConfig()
    root = resolve_root(repo_root)
    sink = _WarningCollector()

    files = collect_files(
        root,
        ignore_globs=_ignore_patterns(config),
        symlink_policy=config.symlinks,
        max_depth=config.max_depth,
        use_gitignore=config.use_gitignore,
        default_ignores=config.default_ignores,
        on_error=sink,
    )
    logger.info("Walked %d files under %s", len(files), root)

    file_index = build_file_index(
        root,
        files,
        hash_algorithm=config.hash_algorithm,
        concurrency=config.concurrency,
        on_error=sink,
    )

    modules: List[ModuleInfo] = detect_modules(
        root,
        file_index.paths,
        use_workspace_config=config.use_workspace_config,
        workspace_patterns=config.workspace_patterns,
        fallback_workspace_patterns=config.fallback_workspace_patterns,
        on_error=sink,
    )

    out_dir = config.output_path(root)
    # Loaded even when forced, so the change set still reports what changed
    previous_index, previous_catalogue = _load_previous(out_dir)

    plan = plan_update(
        file_index,
        modules,
        previous_index,
        previous_catalogue.infos() if previous_catalogue is not None else None,
        populated_modules=(
            _populated_modules(previous_catalogue, collaborators)
            if previous_catalogue is not None else None
        ),
        thresholds=config.thresholds(),
        force_full=force_full,
    )

    affected = plan.affected_modules
    recomputed: Dict[str, Dict[str, Any]] = {}
    if affected and collaborators:
        request = CollaboratorRequest(
            repo_root=str(root),
            files=file_index.paths,
            modules=modules,
            affected_modules=None if plan.is_full else affected,
        )
        recomputed = _run_collaborators(collaborators, request, affected)

    catalogue = merge_module_data(modules, previous_catalogue, recomputed, affected)
    meta = create_meta(root, config.hash_algorithm, read_git_commit(root))
    save_state(out_dir, meta, catalogue, plan.change_set, file_index)

    return IndexRunResult(
        repo_root=str(root),
        out_dir=str(out_dir),
        plan=plan,
        catalogue=catalogue,
        meta=meta,
        file_count=len(file_index.files),
        total_size=sum(entry.size for entry in file_index.files),
        warnings=sink.reports,
    )
