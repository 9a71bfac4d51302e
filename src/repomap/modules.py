"""Module boundary detection.

The flat file list is partitioned into modules. A directory becomes a
candidate module root when it holds a language marker file, is declared by
workspace configuration, or matches a workspace glob; the repository root is
always a candidate. Every file then belongs to its nearest enclosing candidate
root, so modules never overlap and no file is left without one.
"""

import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

import yaml

from .constants import ROOT_PATH
from .core import ModuleInfo, ModuleLanguage, WorkspaceConfig
from .errors import ErrorSink, report_error
from .paths import base_name, normalize_repo_path, parent_dir, to_absolute
from .workspace import (
    DEFAULT_WORKSPACE_PATTERNS,
    PACKAGE_JSON,
    WorkspaceGlobs,
    load_workspace_config,
    normalize_glob_list,
    read_json_object,
    read_text_file,
)

logger = logging.getLogger(__name__)


GO_MOD = "go.mod"
PYPROJECT_FILES = ("pyproject.toml", "pyproject.yaml", "pyproject.yml")

# Marker file name -> language of the directory holding it
MARKER_FILES: Dict[str, str] = {
    PACKAGE_JSON: "node",
    GO_MOD: "go",
    **{name: "python" for name in PYPROJECT_FILES},
}

EXTENSION_LANGUAGES: Dict[str, str] = {
    **{ext: "node" for ext in (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".mts", ".cts")},
    ".py": "python",
    ".pyw": "python",
    ".go": "go",
}

# Order used for tie-free majority reporting and manifest-name lookup
KNOWN_LANGUAGES = ("node", "python", "go")

# Share of classified files the top extension language needs
LANGUAGE_MAJORITY = 0.6

_GO_MODULE_LINE = re.compile(r"^\s*module\s+(\"?)([^\s\"]+)\1\s*(?://.*)?$")


class ModuleRootCache:
    """Memo of directory -> owning module root for one detection run.

    Entries are only ever added, never replaced or dropped.
    """

    def __init__(self):
        self._roots: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._roots)

    def __contains__(self, directory: str) -> bool:
        return directory in self._roots

    def get(self, directory: str) -> Optional[str]:
        return self._roots.get(directory)

    def record(self, directories: Iterable[str], root: str) -> None:
        for directory in directories:
            self._roots.setdefault(directory, root)


def resolve_module_root(
    file_path: str,
    candidate_roots: Set[str],
    cache: ModuleRootCache,
) -> str:
    """Return the nearest enclosing candidate root of a file.

    Every directory visited on the way up is recorded in ``cache``, so later
    files in the same subtree resolve with a single lookup. The walk always
    ends at ``"."``.
    """
    directory = parent_dir(file_path)
    visited: List[str] = []
    while True:
        cached = cache.get(directory)
        if cached is not None:
            cache.record(visited, cached)
            return cached
        visited.append(directory)
        if directory in candidate_roots or directory == ROOT_PATH:
            cache.record(visited, directory)
            return directory
        directory = parent_dir(directory)


def module_roots(modules: Iterable[ModuleInfo]) -> Set[str]:
    """Root set of a module list, always including the repository root."""
    roots = {module.path for module in modules}
    roots.add(ROOT_PATH)
    return roots


def classify_language(markers: Set[str], extension_counts: Dict[str, int]) -> ModuleLanguage:
    """Decide a module's language.

    Marker files win when present (several languages -> ``mixed``). Otherwise
    the most common extension language is used if it covers at least 60% of
    the classified files; no classified files at all gives ``unknown``.
    """
    if len(markers) > 1:
        return "mixed"
    if len(markers) == 1:
        return next(iter(markers))

    total = sum(extension_counts.get(lang, 0) for lang in KNOWN_LANGUAGES)
    if total == 0:
        return "unknown"
    top_lang = max(KNOWN_LANGUAGES, key=lambda lang: extension_counts.get(lang, 0))
    if extension_counts.get(top_lang, 0) / total >= LANGUAGE_MAJORITY:
        return top_lang
    return "mixed"


def _language_of_file(file_path: str) -> Optional[str]:
    ext = os.path.splitext(base_name(file_path))[1].lower()
    return EXTENSION_LANGUAGES.get(ext)


# ============= Manifest Names =============

def _node_name(module_dir: Path, on_error: Optional[ErrorSink]) -> Optional[str]:
    pkg = read_json_object(module_dir / PACKAGE_JSON, on_error)
    if pkg and isinstance(pkg.get("name"), str) and pkg["name"]:
        return pkg["name"]
    return None


def _python_name(module_dir: Path, on_error: Optional[ErrorSink]) -> Optional[str]:
    for file_name in PYPROJECT_FILES:
        content = read_text_file(module_dir / file_name, on_error)
        if content is None:
            continue
        try:
            if file_name.endswith(".toml"):
                data = tomllib.loads(content)
            else:
                data = yaml.safe_load(content)
        except (tomllib.TOMLDecodeError, yaml.YAMLError) as e:
            report_error(ValueError(str(e)), str(module_dir / file_name), on_error, logger)
            continue
        if not isinstance(data, dict):
            continue
        project = data.get("project")
        if isinstance(project, dict) and isinstance(project.get("name"), str):
            return project["name"]
        tool = data.get("tool")
        poetry = tool.get("poetry") if isinstance(tool, dict) else None
        if isinstance(poetry, dict) and isinstance(poetry.get("name"), str):
            return poetry["name"]
    return None


def _go_name(module_dir: Path, on_error: Optional[ErrorSink]) -> Optional[str]:
    content = read_text_file(module_dir / GO_MOD, on_error)
    if content is None:
        return None
    for line in content.splitlines():
        match = _GO_MODULE_LINE.match(line)
        if match:
            return match.group(2)
    return None


_NAME_READERS = {
    "node": _node_name,
    "python": _python_name,
    "go": _go_name,
}


def read_module_name(
    repo_root: Path,
    module_path: str,
    markers: Set[str],
    on_error: Optional[ErrorSink] = None,
) -> Optional[str]:
    """Name declared in the module's own manifest, if any can be read."""
    module_dir = to_absolute(repo_root, module_path)
    for language in KNOWN_LANGUAGES:
        if language in markers:
            name = _NAME_READERS[language](module_dir, on_error)
            if name:
                return name
    return None


# ============= Detection =============

@dataclass
class _ModuleAggregate:
    path: str
    file_count: int = 0
    extension_counts: Dict[str, int] = field(default_factory=dict)


def detect_modules(
    repo_root: Union[str, Path],
    files: Iterable[str],
    *,
    use_workspace_config: bool = True,
    workspace_patterns: Optional[List[str]] = None,
    fallback_workspace_patterns: Optional[List[str]] = None,
    on_error: Optional[ErrorSink] = None,
    cache: Optional[ModuleRootCache] = None,
) -> List[ModuleInfo]:
    """Partition files into modules.

    Args:
        repo_root: Repository root directory
        files: RepoPaths, typically the walker's output
        use_workspace_config: Read workspace configuration files
        workspace_patterns: Globs that replace the configured ones
        fallback_workspace_patterns: Globs used when nothing is configured
            (defaults to ``packages/* apps/* services/* libs/*``)
        on_error: Sink for unreadable manifests and config files
        cache: Directory -> root memo to fill (a fresh one by default)

    Returns:
        Modules owning at least one file, sorted by path
    """
    root = Path(os.path.abspath(repo_root))
    file_list = []
    for value in files:
        path = normalize_repo_path(value)
        if path != ROOT_PATH:
            file_list.append(path)

    directories: Set[str] = set()
    top_level: Set[str] = set()
    markers: Dict[str, Set[str]] = {}

    for file_path in file_list:
        dir_path = parent_dir(file_path)

        current = dir_path
        while current not in directories:
            directories.add(current)
            if current == ROOT_PATH:
                break
            current = parent_dir(current)

        if "/" in file_path:
            top_level.add(file_path.split("/", 1)[0])

        language = MARKER_FILES.get(base_name(file_path))
        if language:
            markers.setdefault(dir_path, set()).add(language)

    config = load_workspace_config(root, on_error) if use_workspace_config else WorkspaceConfig()

    explicit_globs = normalize_glob_list(workspace_patterns or [])
    if explicit_globs:
        globs = WorkspaceGlobs(explicit_globs)
        has_hints = True
    elif config.globs:
        globs = WorkspaceGlobs(config.globs)
        has_hints = True
    else:
        fallback = DEFAULT_WORKSPACE_PATTERNS if fallback_workspace_patterns is None else fallback_workspace_patterns
        globs = WorkspaceGlobs(normalize_glob_list(fallback))
        has_hints = False
    has_hints = has_hints or bool(config.roots)

    candidate_roots: Set[str] = set(markers)
    candidate_roots.update(config.roots)

    if globs:
        for dir_path in directories:
            if dir_path != ROOT_PATH and globs.matches(dir_path):
                candidate_roots.add(dir_path)
                has_hints = True

    has_nested_markers = any(path != ROOT_PATH for path in markers)
    if not has_nested_markers and not has_hints:
        candidate_roots.update(top_level)

    candidate_roots.add(ROOT_PATH)

    if cache is None:
        cache = ModuleRootCache()
    aggregates: Dict[str, _ModuleAggregate] = {}
    for file_path in file_list:
        module_root = resolve_module_root(file_path, candidate_roots, cache)
        aggregate = aggregates.get(module_root)
        if aggregate is None:
            aggregate = aggregates[module_root] = _ModuleAggregate(path=module_root)
        aggregate.file_count += 1
        language = _language_of_file(file_path)
        if language:
            aggregate.extension_counts[language] = aggregate.extension_counts.get(language, 0) + 1

    modules = []
    for module_path in sorted(aggregates):
        aggregate = aggregates[module_path]
        module_markers = markers.get(module_path, set())
        name = read_module_name(root, module_path, module_markers, on_error)
        if not name:
            name = root.name if module_path == ROOT_PATH else base_name(module_path)
        modules.append(ModuleInfo(
            name=name,
            path=module_path,
            language=classify_language(module_markers, aggregate.extension_counts),
            file_count=aggregate.file_count,
        ))

    logger.debug(
        "Detected %d modules from %d candidate roots (%d cached directories)",
        len(modules), len(candidate_roots), len(cache),
    )
    return modules


def assign_files(files: Iterable[str], modules: Iterable[ModuleInfo]) -> Dict[str, str]:
    """Map each file to its owning module root under a module list."""
    roots = module_roots(modules)
    cache = ModuleRootCache()
    return {
        path: resolve_module_root(path, roots, cache)
        for path in (normalize_repo_path(value) for value in files)
        if path != ROOT_PATH
    }
