"""Interface for components that derive per-module data.

Keyword extraction, entry-point classification and similar analyses plug in
here. The pipeline hands each collaborator the current snapshot and stores
whatever it returns under the collaborator's name in the module catalogue.
"""

from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from .core import ModuleInfo


class CollaboratorRequest(BaseModel):
    """Input handed to a collaborator for one run."""
    repo_root: str
    files: List[str] = Field(default_factory=list)
    modules: List[ModuleInfo] = Field(default_factory=list)
    # None = compute for every module
    affected_modules: Optional[List[str]] = None

    def target_modules(self) -> List[ModuleInfo]:
        """Modules the collaborator is asked to compute."""
        if self.affected_modules is None:
            return list(self.modules)
        wanted = set(self.affected_modules)
        return [module for module in self.modules if module.path in wanted]


class ModuleCollaborator(Protocol):
    """Per-module analysis plugged into an indexing run."""

    name: str

    def compute(self, request: CollaboratorRequest) -> Dict[str, Any]:
        """Return module path -> JSON-serializable data for the requested modules."""
        ...
