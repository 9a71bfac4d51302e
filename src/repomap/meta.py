"""Run metadata: tool version, repository root, git commit and timestamp."""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from .constants import DEFAULT_HASH_ALGORITHM, REPOMAP_VERSION
from .core import RepoMapMeta
from .utils import get_iso_timestamp

logger = logging.getLogger(__name__)


def _git(args: List[str], cwd: Union[str, Path]) -> Optional[str]:
    """Run a git command, returning stripped stdout or None on any failure."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        # git not installed or cwd unusable
        logger.debug("git %s failed: %s", " ".join(args), e)
        return None

    if result.returncode != 0:
        logger.debug("git %s exited %d: %s", " ".join(args), result.returncode, result.stderr.strip())
        return None
    return result.stdout.strip() or None


def read_git_root(cwd: Union[str, Path]) -> Optional[Path]:
    """Top-level directory of the git work tree containing ``cwd``, if any."""
    top = _git(["rev-parse", "--show-toplevel"], cwd)
    return Path(top) if top else None


def read_git_commit(repo_root: Union[str, Path]) -> Optional[str]:
    """Commit id of HEAD, or None outside a repository or before the first commit."""
    return _git(["rev-parse", "HEAD"], repo_root)


def create_meta(
    repo_root: Union[str, Path],
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    git_commit: Optional[str] = None,
) -> RepoMapMeta:
    """Describe the current run."""
    return RepoMapMeta(
        tool_version=REPOMAP_VERSION,
        repo_root=str(repo_root),
        git_commit=git_commit,
        generated_at=get_iso_timestamp(),
        hash_algorithm=hash_algorithm,
    )
