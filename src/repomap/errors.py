"""Custom exceptions for repomap.

Per-entry filesystem problems and malformed workspace files are never raised;
they are reported through an error sink and recovered locally. The exceptions
here cover the conditions a caller has to act on.
"""

import logging
from typing import Callable, Optional, Union


class RepoMapError(RuntimeError):
    """Base class for all repomap errors."""
    pass


# Structural Errors
class RepoRootError(RepoMapError):
    """Repository root is missing or not a directory."""

    def __init__(self, root: str, reason: str):
        self.root = root
        self.reason = reason
        super().__init__(f"Cannot index '{root}': {reason}")


# State Errors
class StateError(RepoMapError):
    """Base class for persisted-state errors."""
    pass


class StateCorruptError(StateError):
    """A persisted state file exists but cannot be parsed."""

    def __init__(self, path: str, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(
            f"State file {path} is unreadable or malformed: {detail}. "
            f"Run 'repomap build' to regenerate it."
        )


# Configuration Errors
class ConfigError(RepoMapError):
    """Base class for configuration errors."""
    pass


class InvalidConfigError(ConfigError):
    """Configuration file exists but does not validate."""

    def __init__(self, path: str, detail: str):
        self.path = path
        super().__init__(f"Invalid configuration in {path}: {detail}")


# Callback receiving recoverable errors together with the path they concern.
ErrorSink = Callable[[Union[OSError, ValueError], str], None]


def report_error(
    error: Union[OSError, ValueError],
    path: str,
    on_error: Optional[ErrorSink],
    log: logging.Logger,
) -> None:
    """Hand a recoverable error to the sink, or log it when there is none."""
    if on_error is not None:
        on_error(error, path)
    else:
        log.warning("Skipping %s: %s", path, error)
