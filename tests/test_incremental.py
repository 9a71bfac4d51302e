"""Tests for incremental update planning and data merging."""

from repomap.core import ModuleCatalogue, ModuleRecord, UpdateMode
from repomap.incremental import (
    UpdateThresholds,
    is_workspace_config_path,
    merge_module_data,
    plan_update,
)
from repomap.store import dump_json

from conftest import make_index, make_modules


def _baseline(*extra):
    """Twelve-file monorepo index: two packages plus root sources."""
    entries = [
        ("package.json", 10, 1.0, "pkg"),
        ("packages/a/index.ts", 10, 1.0, "a"),
        ("packages/b/index.ts", 10, 1.0, "b"),
    ]
    entries += [(f"src/f{i}.ts", 10, 1.0, f"src{i}") for i in range(9)]
    entries += list(extra)
    return entries


def _replace(entries, path, digest):
    return [(p, s, m, digest if p == path else h) for p, s, m, h in entries]


MODULES = make_modules(".", "packages/a", "packages/b")


class TestFullMode:

    def test_no_previous_state(self):
        current = make_index(*_baseline())
        plan = plan_update(current, MODULES)

        assert plan.mode == UpdateMode.FULL
        assert plan.reason == "no previous state"
        assert plan.affected_modules == [".", "packages/a", "packages/b"]
        assert len(plan.change_set.added) == 12

    def test_missing_previous_catalogue(self):
        index = make_index(*_baseline())
        plan = plan_update(index, MODULES, index, None)
        assert plan.is_full

    def test_forced(self):
        index = make_index(*_baseline())
        plan = plan_update(index, MODULES, index, MODULES, force_full=True)
        assert plan.is_full
        assert plan.reason == "requested"
        assert plan.change_set.is_empty

    def test_workspace_config_change(self):
        previous = make_index(*_baseline())
        current = make_index(*_replace(_baseline(), "package.json", "pkg2"))

        plan = plan_update(current, MODULES, previous, MODULES)
        assert plan.is_full
        assert "package.json" in plan.reason

    def test_changed_count_threshold(self):
        previous = make_index(*_baseline())
        entries = _replace(_baseline(), "src/f0.ts", "x")
        current = make_index(*_replace(entries, "src/f1.ts", "y"))

        plan = plan_update(
            current, MODULES, previous, MODULES,
            thresholds=UpdateThresholds(max_changed_files=2, max_changed_ratio=1.0),
        )
        assert plan.is_full
        assert plan.affected_modules == [".", "packages/a", "packages/b"]

    def test_changed_ratio_threshold(self):
        previous = make_index(*_baseline())
        entries = _baseline()
        for i in range(3):
            entries = _replace(entries, f"src/f{i}.ts", "changed")
        current = make_index(*entries)

        # 3 of 12 files is exactly the default 25% ratio
        plan = plan_update(current, MODULES, previous, MODULES)
        assert plan.is_full
        assert plan.reason.startswith("25% of files changed")


class TestIncrementalMode:

    def test_single_module_change(self):
        previous = make_index(*_baseline())
        current = make_index(*_replace(_baseline(), "packages/a/index.ts", "a2"))

        plan = plan_update(current, MODULES, previous, MODULES)

        assert plan.mode == UpdateMode.INCREMENTAL
        assert plan.affected_modules == ["packages/a"]
        assert plan.change_set.modified == ["packages/a/index.ts"]

    def test_no_changes(self):
        index = make_index(*_baseline())
        plan = plan_update(index, MODULES, index, MODULES)
        assert plan.mode == UpdateMode.INCREMENTAL
        assert plan.reason == "no changes"
        assert plan.affected_modules == []

    def test_nested_workspace_manifest_is_not_config(self):
        previous = make_index(*_baseline(("packages/a/package.json", 5, 1.0, "m")))
        current = make_index(*_baseline(("packages/a/package.json", 5, 1.0, "m2")))
        plan = plan_update(current, MODULES, previous, MODULES)
        assert plan.mode == UpdateMode.INCREMENTAL
        assert plan.affected_modules == ["packages/a"]

    def test_new_module(self):
        previous = make_index(*_baseline())
        current = make_index(*_baseline(("packages/c/index.ts", 10, 1.0, "c")))
        current_modules = make_modules(".", "packages/a", "packages/b", "packages/c")

        plan = plan_update(current, current_modules, previous, MODULES)

        # Under the previous roots the new file belonged to "."
        assert plan.affected_modules == [".", "packages/c"]

    def test_removed_module(self):
        previous = make_index(*_baseline(("packages/old/x.ts", 10, 1.0, "old")))
        previous_modules = make_modules(".", "packages/a", "packages/b", "packages/old")
        current = make_index(*_baseline())

        plan = plan_update(current, MODULES, previous, previous_modules)

        assert plan.change_set.deleted == ["packages/old/x.ts"]
        assert plan.affected_modules == ["."]

    def test_modules_without_data_are_refreshed(self):
        index = make_index(*_baseline())
        plan = plan_update(index, MODULES, index, MODULES, populated_modules=[".", "packages/a"])
        assert plan.affected_modules == ["packages/b"]


def test_is_workspace_config_path():
    assert is_workspace_config_path("package.json")
    assert is_workspace_config_path("./go.work")
    assert is_workspace_config_path("pnpm-workspace.yaml")
    assert not is_workspace_config_path("packages/a/package.json")
    assert not is_workspace_config_path("src/nx.json.bak")


class TestMerge:

    def _previous(self):
        return ModuleCatalogue(modules=[
            ModuleRecord(name="repo", path=".", language="unknown", file_count=1,
                         data={"keywords": {"terms": ["root"]}}),
            ModuleRecord(name="a", path="packages/a", language="unknown", file_count=1,
                         data={"keywords": {"terms": ["old-a"]}}),
            ModuleRecord(name="b", path="packages/b", language="unknown", file_count=1,
                         data={"keywords": {"terms": ["b"], "weights": {"b": 1.5}}}),
        ])

    def test_carry_forward_is_exact(self):
        previous = self._previous()
        merged = merge_module_data(
            MODULES,
            previous,
            {"packages/a": {"keywords": {"terms": ["new-a"]}}},
            ["packages/a"],
        )

        data = merged.data_by_path()
        assert data["packages/a"] == {"keywords": {"terms": ["new-a"]}}
        assert data["packages/b"] == previous.data_by_path()["packages/b"]

        before = {m.path: dump_json(m) for m in previous.modules}
        after = {m.path: dump_json(m) for m in merged.modules}
        assert after["."] == before["."]
        assert after["packages/b"] == before["packages/b"]

    def test_carried_data_is_not_shared(self):
        previous = self._previous()
        merged = merge_module_data(MODULES, previous, {}, [])
        merged.data_by_path()["packages/b"]["keywords"]["terms"].append("mutated")
        assert previous.data_by_path()["packages/b"]["keywords"]["terms"] == ["b"]

    def test_affected_without_results_gets_empty_data(self):
        merged = merge_module_data(MODULES, self._previous(), {}, ["packages/a"])
        assert merged.data_by_path()["packages/a"] == {}

    def test_first_run(self):
        merged = merge_module_data(MODULES, None, {".": {"k": 1}}, [".", "packages/a", "packages/b"])
        assert [m.path for m in merged.modules] == [".", "packages/a", "packages/b"]
        assert merged.data_by_path() == {".": {"k": 1}, "packages/a": {}, "packages/b": {}}

    def test_module_info_comes_from_current_modules(self):
        modules = make_modules(".", "packages/a", "packages/b")
        modules[1] = modules[1].model_copy(update={"file_count": 7})
        merged = merge_module_data(modules, self._previous(), {}, [])
        assert merged.modules[1].file_count == 7
