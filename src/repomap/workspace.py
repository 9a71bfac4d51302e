"""Workspace configuration discovery and workspace glob matching.

Monorepos declare where their sub-projects live in a handful of well-known
files. Each file is read independently and a broken or unreadable one only
empties its own contribution; module detection as a whole never fails here.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

import yaml

from .constants import ROOT_PATH
from .core import WorkspaceConfig
from .errors import ErrorSink, report_error
from .paths import extended_path, normalize_repo_path

logger = logging.getLogger(__name__)


PACKAGE_JSON = "package.json"
PNPM_WORKSPACE = "pnpm-workspace.yaml"
LERNA_JSON = "lerna.json"
RUSH_JSON = "rush.json"
NX_JSON = "nx.json"
WORKSPACE_JSON = "workspace.json"
GO_WORK = "go.work"

# Top-level files whose change can move module boundaries
WORKSPACE_CONFIG_FILES = (
    PACKAGE_JSON,
    PNPM_WORKSPACE,
    LERNA_JSON,
    RUSH_JSON,
    NX_JSON,
    WORKSPACE_JSON,
    GO_WORK,
)

# Conventional monorepo layout, used when nothing is declared
DEFAULT_WORKSPACE_PATTERNS = ["packages/*", "apps/*", "services/*", "libs/*"]


# ============= Reading =============

def read_text_file(path: Path, on_error: Optional[ErrorSink] = None) -> Optional[str]:
    """Read a UTF-8 text file, or None if it is missing or unreadable."""
    try:
        with open(extended_path(path), "r", encoding="utf-8") as f:
            content = f.read()
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        report_error(e, str(path), on_error, logger)
        return None
    if content.startswith("\ufeff"):
        content = content[1:]
    return content


def read_json_object(path: Path, on_error: Optional[ErrorSink] = None) -> Optional[Dict[str, Any]]:
    """Read a JSON file whose top level is an object."""
    content = read_text_file(path, on_error)
    if content is None:
        return None
    try:
        data = json.loads(content)
    except ValueError as e:
        report_error(e, str(path), on_error, logger)
        return None
    return data if isinstance(data, dict) else None


def _strings(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    return [value for value in values if isinstance(value, str)]


def _package_json_workspaces(pkg: Dict[str, Any]) -> List[str]:
    workspaces = pkg.get("workspaces")
    if isinstance(workspaces, list):
        return _strings(workspaces)
    if isinstance(workspaces, dict):
        return _strings(workspaces.get("packages"))
    return []


def _pnpm_workspace_packages(path: Path, on_error: Optional[ErrorSink]) -> List[str]:
    content = read_text_file(path, on_error)
    if not content:
        return []
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        report_error(ValueError(str(e)), str(path), on_error, logger)
        return []
    if not isinstance(data, dict):
        return []
    return _strings(data.get("packages"))


def _rush_project_folders(rush: Dict[str, Any]) -> List[str]:
    roots = []
    for project in rush.get("projects") or []:
        if isinstance(project, dict) and isinstance(project.get("projectFolder"), str):
            roots.append(project["projectFolder"])
    return roots


def _nx_layout_globs(nx: Dict[str, Any]) -> List[str]:
    layout = nx.get("workspaceLayout")
    if not isinstance(layout, dict):
        return []
    globs = []
    for key in ("appsDir", "libsDir"):
        value = layout.get(key)
        if isinstance(value, str):
            globs.append(f"{value}/*")
    return globs


def _workspace_json_roots(workspace: Dict[str, Any]) -> List[str]:
    projects = workspace.get("projects")
    if not isinstance(projects, dict):
        return []
    roots = []
    for project in projects.values():
        # Older layouts map project name straight to its directory
        if isinstance(project, str):
            roots.append(project)
        elif isinstance(project, dict) and isinstance(project.get("root"), str):
            roots.append(project["root"])
    return roots


def parse_go_work(content: str) -> List[str]:
    """Extract ``use`` directories from a go.work file.

    Handles both ``use ./dir`` lines and ``use ( ... )`` blocks.
    """
    roots = []
    in_block = False
    for raw in content.splitlines():
        line = raw.split("//", 1)[0].strip()
        if not line:
            continue
        if in_block:
            if line.startswith(")"):
                in_block = False
                continue
            roots.append(line.strip('"'))
            continue
        if line.startswith("use"):
            rest = line[3:].strip()
            if rest.startswith("("):
                in_block = True
                rest = rest[1:].strip()
                if rest.endswith(")"):
                    in_block = False
                    rest = rest[:-1].strip()
            if rest:
                roots.append(rest.strip('"'))
    return roots


# ============= Normalization =============

def normalize_glob_pattern(value: str) -> str:
    """Normalize a workspace glob, keeping a leading ``!``; ``""`` means drop."""
    pattern = value.strip()
    if not pattern:
        return ""
    negated = pattern.startswith("!")
    if negated:
        pattern = pattern[1:]
    pattern = normalize_repo_path(pattern)
    if pattern == ROOT_PATH:
        return ""
    return f"!{pattern}" if negated else pattern


def normalize_glob_list(patterns: Iterable[str]) -> List[str]:
    """Normalize and de-duplicate globs, keeping first-seen order."""
    normalized = (normalize_glob_pattern(pattern) for pattern in patterns)
    return list(dict.fromkeys(pattern for pattern in normalized if pattern))


def normalize_root_list(roots: Iterable[str]) -> List[str]:
    """Normalize and de-duplicate explicit roots, keeping first-seen order."""
    return list(dict.fromkeys(normalize_repo_path(root) for root in roots if root.strip()))


def load_workspace_config(
    repo_root: Path,
    on_error: Optional[ErrorSink] = None,
) -> WorkspaceConfig:
    """Collect workspace globs and explicit roots from known config files.

    Args:
        repo_root: Repository root directory
        on_error: Sink for unreadable or malformed files

    Returns:
        WorkspaceConfig (empty when nothing is declared)
    """
    globs: List[str] = []
    roots: List[str] = []

    pkg = read_json_object(repo_root / PACKAGE_JSON, on_error)
    if pkg:
        globs.extend(_package_json_workspaces(pkg))

    globs.extend(_pnpm_workspace_packages(repo_root / PNPM_WORKSPACE, on_error))

    lerna = read_json_object(repo_root / LERNA_JSON, on_error)
    if lerna:
        globs.extend(_strings(lerna.get("packages")))

    rush = read_json_object(repo_root / RUSH_JSON, on_error)
    if rush:
        roots.extend(_rush_project_folders(rush))

    nx = read_json_object(repo_root / NX_JSON, on_error)
    if nx:
        globs.extend(_nx_layout_globs(nx))

    workspace = read_json_object(repo_root / WORKSPACE_JSON, on_error)
    if workspace:
        roots.extend(_workspace_json_roots(workspace))

    go_work = read_text_file(repo_root / GO_WORK, on_error)
    if go_work:
        roots.extend(parse_go_work(go_work))

    config = WorkspaceConfig(
        globs=normalize_glob_list(globs),
        roots=[root for root in normalize_root_list(roots) if root != ROOT_PATH],
    )
    logger.debug("Workspace config for %s: %s", repo_root, config)
    return config


# ============= Glob Matching =============

def glob_to_regex(pattern: str) -> Pattern[str]:
    """Compile a workspace glob.

    ``*`` matches within one path segment, ``**`` across segments and ``?``
    one non-separator character. Everything else is literal.
    """
    parts = ["^"]
    index = 0
    while index < len(pattern):
        char = pattern[index]
        if char == "*":
            if index + 1 < len(pattern) and pattern[index + 1] == "*":
                while index + 1 < len(pattern) and pattern[index + 1] == "*":
                    index += 1
                parts.append(".*")
            else:
                parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
        index += 1
    parts.append("$")
    return re.compile("".join(parts))


class WorkspaceGlobs:
    """Ordered workspace globs where the last matching pattern wins."""

    def __init__(self, patterns: Iterable[str]):
        self.patterns = list(patterns)
        self._compiled: List[Tuple[bool, Pattern[str]]] = []
        for pattern in self.patterns:
            negated = pattern.startswith("!")
            self._compiled.append((negated, glob_to_regex(pattern[1:] if negated else pattern)))

    def __bool__(self) -> bool:
        return bool(self._compiled)

    def matches(self, dir_path: str) -> bool:
        """Check whether a directory RepoPath is selected by the globs."""
        included = False
        for negated, regex in self._compiled:
            if regex.match(dir_path):
                included = not negated
        return included
