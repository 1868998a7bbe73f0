import os
import stat
import time

import pytest

from codejudge.services.storage import WorkspaceStore, remove_tree


def test_workspace_is_removed_after_use(tmp_path):
    store = WorkspaceStore(tmp_path / "work")
    with store.workspace("sub/1") as wd:
        assert wd.is_dir()
        assert wd.name.startswith("run-sub_1-")
        (wd / "solution.py").write_text("print(1)")
        assert store.active() == [wd]
    assert not wd.exists()
    assert store.active() == []


def test_workspace_is_removed_when_grading_raises(tmp_path):
    store = WorkspaceStore(tmp_path / "work")
    with pytest.raises(RuntimeError):
        with store.workspace("s1") as wd:
            (wd / "io").mkdir()
            raise RuntimeError("boom")
    assert not wd.exists()


def test_each_run_gets_a_fresh_directory(tmp_path):
    store = WorkspaceStore(tmp_path / "work")
    with store.workspace("s1") as a, store.workspace("s1") as b:
        assert a != b


def test_read_only_leftovers_are_still_removed(tmp_path):
    d = tmp_path / "run-x"
    (d / "locked").mkdir(parents=True)
    (d / "locked" / "f").write_text("x")
    os.chmod(d / "locked", stat.S_IRUSR | stat.S_IXUSR)
    remove_tree(d)
    assert not d.exists()


def test_sweep_only_removes_old_runs(tmp_path):
    root = tmp_path / "work"
    old = root / "run-old-abc"
    fresh = root / "run-new-def"
    other = root / "keep-me"
    for p in (old, fresh, other):
        p.mkdir(parents=True)
    past = time.time() - 7200
    os.utime(old, (past, past))

    store = WorkspaceStore(root)
    assert store.sweep(older_than_s=3600) == 1
    assert not old.exists()
    assert fresh.exists() and other.exists()


def test_sweep_on_missing_root(tmp_path):
    assert WorkspaceStore(tmp_path / "absent").sweep() == 0
