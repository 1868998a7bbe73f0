from __future__ import annotations
import math
import resource
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple


@dataclass(frozen=True)
class RlimitSpec:
    cpu_seconds: int
    memory_bytes: Optional[int]
    stack_bytes: Optional[int]
    file_bytes: int
    nofile: int
    nproc: Optional[int] = None


def cpu_seconds_for(timeout_s: float) -> int:
    # wall clock is the real limit; CPU time only catches busy loops that
    # somehow outlive the wall timer
    return int(math.ceil(timeout_s)) + 1


def plan_rlimits(spec: RlimitSpec) -> List[Tuple[int, int, int]]:
    """(resource, soft, hard) triples in the order they are applied."""
    limits = [
        (resource.RLIMIT_CPU, spec.cpu_seconds, spec.cpu_seconds + 1),
        (resource.RLIMIT_FSIZE, spec.file_bytes, spec.file_bytes),
        (resource.RLIMIT_NOFILE, spec.nofile, spec.nofile),
        (resource.RLIMIT_CORE, 0, 0),
    ]
    if spec.memory_bytes:
        limits.append((resource.RLIMIT_AS, spec.memory_bytes, spec.memory_bytes))
    if spec.stack_bytes:
        limits.append((resource.RLIMIT_STACK, spec.stack_bytes, spec.stack_bytes))
    if spec.nproc:
        limits.append((resource.RLIMIT_NPROC, spec.nproc, spec.nproc))
    return limits


def apply_rlimits(spec: RlimitSpec) -> None:
    """
    Runs in the child between fork and exec. A limit the host refuses
    (above the hard cap, unsupported resource) is left as it was.
    """
    for res, soft, hard in plan_rlimits(spec):
        try:
            resource.setrlimit(res, (soft, hard))
        except (ValueError, OSError):
            pass


def make_preexec(spec: RlimitSpec, seccomp_hook: Optional[Callable[[], None]] = None):
    def _fn():
        apply_rlimits(spec)
        # seccomp last: the filter may forbid setrlimit itself
        if seccomp_hook is not None:
            seccomp_hook()

    return _fn
