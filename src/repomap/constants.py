"""Constants for repomap."""

# Output directory (relative to the repository root)
REPOMAP_DIR = ".repomap"

# Files inside REPOMAP_DIR
CONFIG_FILE = "config.yaml"
META_FILE = "meta.json"
FILE_INDEX_FILE = "files.json"
MODULES_FILE = "modules.json"
CHANGES_FILE = "changes.json"

# Version
REPOMAP_VERSION = "0.1.0"

# Sentinel RepoPath for the repository root
ROOT_PATH = "."

DEFAULT_HASH_ALGORITHM = "sha256"
DEFAULT_CONCURRENCY = 8

# Incremental update thresholds
DEFAULT_MAX_CHANGED_FILES = 5000
DEFAULT_MAX_CHANGED_RATIO = 0.25
