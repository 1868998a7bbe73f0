# src/codejudge/executor/cgroups.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional
import time

import structlog

from ..core.errors import SandboxError

log = structlog.get_logger(__name__)

CGROOT = Path("/sys/fs/cgroup")


def _write_then_check(p: Path, val: str | int):
    val = str(val)
    p.write_text(val)
    back = p.read_text().strip()
    if back != val:
        raise SandboxError(f"[cgroup] write {p}='{val}' but read-back='{back}'")


def _enable_controllers(node: Path):
    """Turn on memory/pids for children of node (cgroup v2 needs node to be empty)."""
    cnt_file = node / "cgroup.controllers"
    if not cnt_file.exists():
        return
    have = set(cnt_file.read_text().split())
    want = [f"+{c}" for c in ("memory", "pids") if c in have]
    if not want:
        return
    ctl = node / "cgroup.subtree_control"
    enabled = set(ctl.read_text().split()) if ctl.exists() else set()
    if all(w[1:] in enabled for w in want):
        return
    procs = node / "cgroup.procs"
    if procs.exists() and procs.read_text().strip():
        raise SandboxError(f"{node} has PIDs; cannot set subtree_control")
    ctl.write_text(" ".join(want))


def create_leaf(base: Path, run_id: str) -> Path:
    if not (base.parent / "cgroup.controllers").exists() and not (base / "cgroup.controllers").exists():
        raise SandboxError(f"cgroup v2 is required under {base}")
    try:
        base.mkdir(parents=True, exist_ok=True)
        _enable_controllers(base)
        leaf = base / run_id
        leaf.mkdir(exist_ok=False)
    except OSError as e:
        raise SandboxError(f"cannot create cgroup leaf for {run_id}: {e}") from e
    return leaf


def set_limits(leaf: Path, memory_bytes: Optional[int], pids_max: Optional[int] = None):
    if memory_bytes:
        _write_then_check(leaf / "memory.max", memory_bytes)
        try:
            _write_then_check(leaf / "memory.swap.max", 0)
        except FileNotFoundError:
            # memcg swap accounting disabled on this host
            pass
    if pids_max:
        _write_then_check(leaf / "pids.max", pids_max)


def attach(leaf: Path, pid: int):
    try:
        (leaf / "cgroup.procs").write_text(str(pid))
    except OSError as e:
        raise SandboxError(f"cannot attach pid {pid} to {leaf}: {e}") from e


def read_memory_events(leaf: Path) -> Dict[str, int]:
    p = leaf / "memory.events"
    if not p.exists():
        return {}
    out: Dict[str, int] = {}
    for line in p.read_text().splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[1].isdigit():
            out[parts[0]] = int(parts[1])
    return out


def peak_memory_kb(leaf: Path) -> int:
    # memory.peak appeared in 5.19; older kernels only have memory.current
    for name in ("memory.peak", "memory.current"):
        p = leaf / name
        if p.exists():
            raw = p.read_text().strip()
            if raw.isdigit():
                return int(raw) // 1024
    return 0


def kill_all(leaf: Path):
    p = leaf / "cgroup.kill"
    if p.exists():
        try:
            p.write_text("1")
        except OSError:
            log.warning("cgroup_kill_failed", leaf=str(leaf))


def teardown(leaf: Path):
    # leaf must be empty; the kernel may need a moment to reap killed tasks
    for _ in range(10):
        try:
            leaf.rmdir()
            return
        except FileNotFoundError:
            return
        except OSError:
            time.sleep(0.05)
    log.error("cgroup_leaf_leaked", leaf=str(leaf))


@dataclass
class CgroupUsage:
    memory_kb: int
    oom_killed: bool


class CgroupLeaf:
    """Per-run leaf: created before spawn, removed after the run, whatever happened."""

    def __init__(self, base: Path, run_id: str, memory_bytes: Optional[int],
                 pids_max: Optional[int] = None):
        self.base = base
        self.run_id = run_id
        self.memory_bytes = memory_bytes
        self.pids_max = pids_max
        self.path: Optional[Path] = None

    def __enter__(self) -> "CgroupLeaf":
        self.path = create_leaf(self.base, self.run_id)
        try:
            set_limits(self.path, self.memory_bytes, self.pids_max)
        except BaseException:
            teardown(self.path)
            raise
        return self

    def __exit__(self, *exc):
        if self.path is not None:
            kill_all(self.path)
            teardown(self.path)
            self.path = None

    def attach(self, pid: int):
        assert self.path is not None
        attach(self.path, pid)

    def usage(self) -> CgroupUsage:
        assert self.path is not None
        events = read_memory_events(self.path)
        return CgroupUsage(
            memory_kb=peak_memory_kb(self.path),
            oom_killed=events.get("oom_kill", 0) > 0,
        )

    def kill(self):
        if self.path is not None:
            kill_all(self.path)
