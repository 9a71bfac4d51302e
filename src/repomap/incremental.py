"""Incremental update planning and per-module data merging.

Every run starts from a fresh file index and module list. The planner compares
them with the previous run's persisted state and decides whether derived
per-module data has to be rebuilt for every module (``full``) or only for the
modules a change can have touched (``incremental``). Unaffected modules keep
their previous data exactly as it was.
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, Field

from .constants import DEFAULT_MAX_CHANGED_FILES, DEFAULT_MAX_CHANGED_RATIO
from .core import (
    ChangeSet,
    FileIndex,
    ModuleCatalogue,
    ModuleInfo,
    ModuleRecord,
    UpdateMode,
    UpdatePlan,
)
from .file_index import diff_file_index, empty_index
from .modules import ModuleRootCache, module_roots, resolve_module_root
from .paths import normalize_repo_path
from .workspace import WORKSPACE_CONFIG_FILES

logger = logging.getLogger(__name__)


class UpdateThresholds(BaseModel):
    """Change volume above which an incremental update is not attempted."""

    max_changed_files: int = Field(default=DEFAULT_MAX_CHANGED_FILES, ge=0)
    max_changed_ratio: float = Field(default=DEFAULT_MAX_CHANGED_RATIO, ge=0.0)


def is_workspace_config_path(path: str) -> bool:
    """Check whether a RepoPath is a top-level workspace configuration file."""
    return normalize_repo_path(path) in WORKSPACE_CONFIG_FILES


def _full_plan(reason: str, change_set: ChangeSet, modules: List[ModuleInfo]) -> UpdatePlan:
    plan = UpdatePlan(
        mode=UpdateMode.FULL,
        reason=reason,
        change_set=change_set,
        affected_modules=sorted(module.path for module in modules),
    )
    logger.info("Update plan: %s", plan.summary())
    return plan


def _threshold_reason(change_set: ChangeSet, file_count: int, thresholds: UpdateThresholds) -> Optional[str]:
    changed = len(change_set.changed_paths)
    if changed == 0:
        return None
    if changed >= thresholds.max_changed_files:
        return f"{changed} changed files (limit {thresholds.max_changed_files})"
    ratio = changed / max(file_count, 1)
    if ratio >= thresholds.max_changed_ratio:
        return f"{ratio:.0%} of files changed (limit {thresholds.max_changed_ratio:.0%})"
    return None


def plan_update(
    current_index: FileIndex,
    current_modules: List[ModuleInfo],
    previous_index: Optional[FileIndex] = None,
    previous_modules: Optional[List[ModuleInfo]] = None,
    *,
    populated_modules: Optional[Iterable[str]] = None,
    thresholds: Optional[UpdateThresholds] = None,
    force_full: bool = False,
) -> UpdatePlan:
    """Decide between a full and an incremental refresh.

    A full refresh is chosen when there is no previous state, when a workspace
    configuration file changed (module boundaries may have moved), or when the
    change volume crosses either threshold. Otherwise the affected modules are
    the new modules, the modules without collaborator data and every module
    owning a changed path under either the current or the previous module
    roots, restricted to modules that still exist.

    Args:
        current_index: Freshly built file index
        current_modules: Freshly detected modules
        previous_index: File index of the previous run, if any
        previous_modules: Modules of the previous run, if any
        populated_modules: Paths of previous modules that carry collaborator
            data; None means all of them do
        thresholds: Change volume limits (defaults apply when None)
        force_full: Skip planning and refresh everything

    Returns:
        UpdatePlan with the change set and the sorted affected module paths
    """
    thresholds = thresholds or UpdateThresholds()
    change_set = diff_file_index(
        previous_index if previous_index is not None
        else empty_index(current_index.repo_root, current_index.hash_algorithm),
        current_index,
    )

    if force_full:
        return _full_plan("requested", change_set, current_modules)
    if previous_index is None or previous_modules is None:
        return _full_plan("no previous state", change_set, current_modules)

    changed_paths = change_set.changed_paths
    config_changes = [path for path in changed_paths if is_workspace_config_path(path)]
    if config_changes:
        return _full_plan(
            f"workspace configuration changed ({', '.join(config_changes)})",
            change_set,
            current_modules,
        )

    reason = _threshold_reason(change_set, len(current_index.files), thresholds)
    if reason:
        return _full_plan(reason, change_set, current_modules)

    current_roots = {module.path for module in current_modules}
    previous_roots = {module.path for module in previous_modules}
    populated: Set[str] = previous_roots if populated_modules is None else set(populated_modules)

    affected: Set[str] = set()
    affected.update(current_roots - previous_roots)
    affected.update(root for root in current_roots if root not in populated)

    current_lookup = module_roots(current_modules)
    previous_lookup = module_roots(previous_modules)
    current_cache = ModuleRootCache()
    previous_cache = ModuleRootCache()
    for path in changed_paths:
        affected.add(resolve_module_root(path, current_lookup, current_cache))
        affected.add(resolve_module_root(path, previous_lookup, previous_cache))

    plan = UpdatePlan(
        mode=UpdateMode.INCREMENTAL,
        reason="changes detected" if changed_paths else "no changes",
        change_set=change_set,
        affected_modules=sorted(affected & current_roots),
    )
    logger.info("Update plan: %s", plan.summary())
    return plan


def merge_module_data(
    modules: List[ModuleInfo],
    previous: Optional[ModuleCatalogue],
    recomputed: Dict[str, Dict[str, Any]],
    affected: Iterable[str],
) -> ModuleCatalogue:
    """Assemble the new module catalogue.

    Affected modules take their freshly computed data; every other module keeps
    the data it had in the previous catalogue, unchanged.

    Args:
        modules: Current modules
        previous: Previous catalogue (None on a first run)
        recomputed: Module path -> collaborator name -> data, for affected
            modules
        affected: Module paths whose data was recomputed

    Returns:
        ModuleCatalogue sorted by module path
    """
    affected_set = set(affected)
    previous_data = previous.data_by_path() if previous is not None else {}

    records = []
    for module in sorted(modules, key=lambda item: item.path):
        if module.path in affected_set:
            data = recomputed.get(module.path, {})
        else:
            data = copy.deepcopy(previous_data.get(module.path, {}))
        records.append(ModuleRecord(**module.model_dump(), data=data))

    carried = sum(1 for module in modules if module.path not in affected_set)
    logger.debug("Merged %d modules (%d carried forward)", len(records), carried)
    return ModuleCatalogue(modules=records)
