"""Indexing configuration.

Settings come from ``.repomap/config.yaml`` in the repository when present;
command-line options are layered on top. Every knob has a default, so an
absent file simply means "use the defaults".
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .constants import (
    CONFIG_FILE,
    DEFAULT_CONCURRENCY,
    DEFAULT_HASH_ALGORITHM,
    DEFAULT_MAX_CHANGED_FILES,
    DEFAULT_MAX_CHANGED_RATIO,
    REPOMAP_DIR,
)
from .core import HashAlgorithm
from .errors import InvalidConfigError
from .incremental import UpdateThresholds
from .walker import SymlinkPolicy

logger = logging.getLogger(__name__)


class IndexConfig(BaseModel):
    """
    Configuration for indexing one repository.
    """
    model_config = ConfigDict(extra="forbid")

    # Walker
    ignore: List[str] = Field(default_factory=list, description="Override ignore patterns, evaluated last")
    use_gitignore: bool = True
    default_ignores: Optional[List[str]] = Field(
        None, description="Replacement for the built-in default ignore patterns"
    )
    symlinks: SymlinkPolicy = SymlinkPolicy.SKIP
    max_depth: Optional[int] = Field(None, ge=0)

    # File index
    hash_algorithm: HashAlgorithm = DEFAULT_HASH_ALGORITHM
    concurrency: int = Field(DEFAULT_CONCURRENCY, ge=1)

    # Module detection
    use_workspace_config: bool = True
    workspace_patterns: List[str] = Field(
        default_factory=list, description="Workspace globs replacing the configured ones"
    )
    fallback_workspace_patterns: Optional[List[str]] = None

    # Incremental updates
    max_changed_files: int = Field(DEFAULT_MAX_CHANGED_FILES, ge=0)
    max_changed_ratio: float = Field(DEFAULT_MAX_CHANGED_RATIO, ge=0.0)

    # Output directory, relative to the repository root
    out_dir: str = Field(REPOMAP_DIR, min_length=1)

    @model_validator(mode="after")
    def _validate(self):
        if Path(self.out_dir).is_absolute():
            raise ValueError("out_dir must be relative to the repository root")
        return self

    def thresholds(self) -> UpdateThresholds:
        return UpdateThresholds(
            max_changed_files=self.max_changed_files,
            max_changed_ratio=self.max_changed_ratio,
        )

    def output_path(self, repo_root: Path) -> Path:
        return repo_root / self.out_dir


def config_path(repo_root: Path) -> Path:
    return repo_root / REPOMAP_DIR / CONFIG_FILE


def load_index_config(repo_root: Path, overrides: Optional[Dict[str, Any]] = None) -> IndexConfig:
    """Load configuration from .repomap/config.yaml if present.

    Args:
        repo_root: Repository root directory
        overrides: Values taking precedence over the file; None values are
            ignored so unset command-line options keep the file's setting

    Returns:
        Validated IndexConfig

    Raises:
        InvalidConfigError: If the file is not valid YAML, not a mapping, or
            fails validation
    """
    path = config_path(repo_root)
    data: Dict[str, Any] = {}
    if path.exists():
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            raise InvalidConfigError(str(path), str(e)) from e
        if loaded is not None and not isinstance(loaded, dict):
            raise InvalidConfigError(str(path), "top level must be a mapping")
        data = loaded or {}
        logger.debug("Loaded config from %s", path)

    if overrides:
        data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return IndexConfig.model_validate(data)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidConfigError(str(path), details) from e
