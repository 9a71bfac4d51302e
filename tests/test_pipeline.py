"""End-to-end tests for indexing runs."""

from typing import Any, Dict, List

import pytest

from repomap.collaborators import CollaboratorRequest
from repomap.config import IndexConfig
from repomap.constants import FILE_INDEX_FILE, MODULES_FILE
from repomap.core import UpdateMode
from repomap.errors import RepoRootError
from repomap.pipeline import run_index
from repomap.store import load_catalogue, load_changes, load_file_index


class RecordingCollaborator:
    """Counts files per module and remembers every request it saw."""

    name = "file_counts"

    def __init__(self):
        self.requests: List[CollaboratorRequest] = []

    def compute(self, request: CollaboratorRequest) -> Dict[str, Any]:
        self.requests.append(request)
        run = len(self.requests)
        return {
            module.path: {"files": module.file_count, "run": run}
            for module in request.target_modules()
        }


class PackagesOnlyCollaborator:
    """Only reports on modules under packages/."""

    name = "packages_only"

    def __init__(self):
        self.calls = 0

    def compute(self, request: CollaboratorRequest) -> Dict[str, Any]:
        self.calls += 1
        return {
            module.path: {"files": module.file_count}
            for module in request.target_modules()
            if module.path.startswith("packages/")
        }


# Large ratio so single-file edits in the three-file scenario stay incremental
INCREMENTAL = IndexConfig(max_changed_ratio=1.0)


def test_first_run_is_full(scenario_repo):
    result = run_index(scenario_repo)

    assert result.plan.mode == UpdateMode.FULL
    assert result.plan.reason == "no previous state"
    assert result.file_count == 3
    assert [m.path for m in result.catalogue.modules] == [".", "packages/x"]
    assert result.warnings == []

    out_dir = scenario_repo / ".repomap"
    assert load_file_index(out_dir).paths == ["packages/x/index.ts", "packages/x/package.json", "src/a.ts"]
    assert load_catalogue(out_dir) == result.catalogue
    assert load_changes(out_dir).added == result.plan.change_set.added


def test_unchanged_tree_is_byte_stable(scenario_repo):
    run_index(scenario_repo)
    out_dir = scenario_repo / ".repomap"
    files_before = (out_dir / FILE_INDEX_FILE).read_bytes()
    modules_before = (out_dir / MODULES_FILE).read_bytes()

    result = run_index(scenario_repo)

    assert result.plan.mode == UpdateMode.INCREMENTAL
    assert result.plan.reason == "no changes"
    assert result.plan.affected_modules == []
    assert (out_dir / FILE_INDEX_FILE).read_bytes() == files_before
    assert (out_dir / MODULES_FILE).read_bytes() == modules_before


def test_deleted_file_is_reported(scenario_repo):
    run_index(scenario_repo)
    (scenario_repo / "src" / "a.ts").unlink()

    result = run_index(scenario_repo)

    assert result.plan.change_set.deleted == ["src/a.ts"]
    assert result.plan.change_set.added == []
    assert load_changes(scenario_repo / ".repomap").deleted == ["src/a.ts"]


def test_collaborators_only_see_affected_modules(scenario_repo):
    collaborator = RecordingCollaborator()
    first = run_index(scenario_repo, INCREMENTAL, [collaborator])
    assert collaborator.requests[0].affected_modules is None

    (scenario_repo / "packages" / "x" / "index.ts").write_text("export const x = 2;\n")
    second = run_index(scenario_repo, INCREMENTAL, [collaborator])

    assert second.plan.mode == UpdateMode.INCREMENTAL
    assert second.plan.affected_modules == ["packages/x"]
    assert collaborator.requests[1].affected_modules == ["packages/x"]

    data = second.catalogue.data_by_path()
    assert data["packages/x"] == {"file_counts": {"files": 2, "run": 2}}
    assert data["."] == first.catalogue.data_by_path()["."]


def test_new_collaborator_refreshes_every_module(scenario_repo):
    run_index(scenario_repo, INCREMENTAL)
    collaborator = RecordingCollaborator()

    result = run_index(scenario_repo, INCREMENTAL, [collaborator])

    assert result.plan.mode == UpdateMode.INCREMENTAL
    assert result.plan.affected_modules == [".", "packages/x"]
    assert set(result.catalogue.data_by_path()["."]) == {"file_counts"}


def test_no_work_for_collaborators_without_changes(scenario_repo):
    collaborator = RecordingCollaborator()
    run_index(scenario_repo, INCREMENTAL, [collaborator])
    run_index(scenario_repo, INCREMENTAL, [collaborator])
    assert len(collaborator.requests) == 1


def test_workspace_config_change_forces_full(scenario_repo, write_file):
    run_index(scenario_repo, INCREMENTAL)
    write_file("package.json", '{"workspaces": ["packages/*"]}')

    result = run_index(scenario_repo, INCREMENTAL)
    assert result.plan.is_full
    assert "package.json" in result.plan.reason


def test_corrupt_state_falls_back_to_full(scenario_repo):
    run_index(scenario_repo)
    (scenario_repo / ".repomap" / FILE_INDEX_FILE).write_text("not json")

    result = run_index(scenario_repo)
    assert result.plan.is_full
    assert result.plan.reason == "no previous state"


def test_force_full(scenario_repo):
    run_index(scenario_repo)
    result = run_index(scenario_repo, force_full=True)
    assert result.plan.reason == "requested"
    assert result.plan.affected_modules == [".", "packages/x"]
    assert result.plan.change_set.is_empty


def test_force_full_still_reports_deletions(scenario_repo):
    run_index(scenario_repo)
    (scenario_repo / "src" / "a.ts").unlink()

    result = run_index(scenario_repo, force_full=True)

    assert result.plan.is_full
    assert result.plan.change_set.deleted == ["src/a.ts"]
    assert result.plan.change_set.added == []
    assert load_changes(scenario_repo / ".repomap").deleted == ["src/a.ts"]


def test_custom_output_directory_not_indexed(scenario_repo):
    config = IndexConfig(out_dir="index-out")
    run_index(scenario_repo, config)
    result = run_index(scenario_repo, config)

    assert (scenario_repo / "index-out" / FILE_INDEX_FILE).exists()
    assert result.file_count == 3
    assert result.plan.change_set.is_empty


def test_output_directory_not_indexed_without_default_ignores(scenario_repo):
    config = IndexConfig(default_ignores=["*.bak"])
    run_index(scenario_repo, config)
    result = run_index(scenario_repo, config)

    assert result.file_count == 3
    assert result.plan.change_set.is_empty
    assert result.plan.affected_modules == []


def test_collaborator_without_result_is_not_rerun(scenario_repo):
    collaborator = PackagesOnlyCollaborator()
    first = run_index(scenario_repo, INCREMENTAL, [collaborator])
    assert first.catalogue.data_by_path()["."] == {"packages_only": None}

    second = run_index(scenario_repo, INCREMENTAL, [collaborator])

    assert second.plan.affected_modules == []
    assert collaborator.calls == 1
    assert load_catalogue(scenario_repo / ".repomap").data_by_path()["."] == {"packages_only": None}


def test_missing_root(tmp_path):
    with pytest.raises(RepoRootError):
        run_index(tmp_path / "missing")
