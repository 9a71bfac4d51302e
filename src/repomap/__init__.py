"""repomap: incremental structural index of a source repository."""

from .constants import REPOMAP_VERSION as __version__
from .file_index import build_file_index, diff_file_index
from .incremental import merge_module_data, plan_update
from .modules import detect_modules
from .pipeline import IndexRunResult, run_index
from .walker import SymlinkPolicy, collect_files, walk_files

__all__ = [
    "__version__",
    "IndexRunResult",
    "SymlinkPolicy",
    "build_file_index",
    "collect_files",
    "detect_modules",
    "diff_file_index",
    "merge_module_data",
    "plan_update",
    "run_index",
    "walk_files",
]
