from __future__ import annotations
import os, signal, subprocess, threading, time
from contextlib import ExitStack
from typing import BinaryIO, List, Optional, Tuple

import structlog

from ..core.errors import SandboxError
from ..core.models import ExecutionOutcome, OutcomeKind
from ..core.settings import Settings
from ..core.utils import decode, new_run_id
from .base import ExecSpec, Executor
from .cgroups import CgroupLeaf
from .rlimits import RlimitSpec, cpu_seconds_for, make_preexec
from .seccomp import load_deny_list, make_seccomp_hook

log = structlog.get_logger(__name__)

_CHUNK = 64 * 1024

# what runtimes print when an allocation fails under RLIMIT_AS
MEMORY_MARKERS = (
    "MemoryError",
    "std::bad_alloc",
    "java.lang.OutOfMemoryError",
    "heap out of memory",
    "Cannot allocate memory",
)


class _BoundedReader(threading.Thread):
    """Drains one pipe; keeps the first `limit` bytes and throws the rest away."""

    def __init__(self, stream: BinaryIO, limit: int):
        super().__init__(daemon=True)
        self.stream = stream
        self.limit = limit
        self.chunks: List[bytes] = []
        self.size = 0
        self.truncated = False

    def run(self):
        while True:
            try:
                chunk = self.stream.read1(_CHUNK)
            except (OSError, ValueError):
                break
            if not chunk:
                break
            room = self.limit - self.size
            if room > 0:
                kept = chunk[:room]
                self.chunks.append(kept)
                self.size += len(kept)
            if len(chunk) > max(room, 0):
                self.truncated = True

    def text(self) -> str:
        return decode(b"".join(self.chunks))


def classify(*, returncode: Optional[int], timed_out: bool, stderr: str,
             memory_kb: int, memory_bytes: Optional[int], oom_killed: bool,
             cpu_s: float, cpu_limit_s: float) -> OutcomeKind:
    if timed_out or returncode is None:
        return OutcomeKind.TIMED_OUT
    if returncode == 0:
        return OutcomeKind.COMPLETED

    sig = -returncode if returncode < 0 else None
    if sig == signal.SIGXCPU:
        return OutcomeKind.TIMED_OUT
    if sig == signal.SIGKILL and cpu_s >= cpu_limit_s:
        # RLIMIT_CPU hard limit
        return OutcomeKind.TIMED_OUT
    if oom_killed:
        return OutcomeKind.MEMORY_EXCEEDED
    if memory_bytes and memory_kb * 1024 >= memory_bytes:
        return OutcomeKind.MEMORY_EXCEEDED
    if sig == signal.SIGKILL:
        # nobody but the kernel OOM killer sends SIGKILL before our timer fires
        return OutcomeKind.MEMORY_EXCEEDED
    if any(m in stderr for m in MEMORY_MARKERS):
        return OutcomeKind.MEMORY_EXCEEDED
    return OutcomeKind.RUNTIME_ERROR


def _kill_group(pgid: int):
    try:
        os.killpg(pgid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass


def _exited(pid: int) -> bool:
    """True once the child has exited; WNOWAIT leaves it unreaped."""
    try:
        info = os.waitid(os.P_PID, pid, os.WEXITED | os.WNOHANG | os.WNOWAIT)
    except ChildProcessError as e:
        raise SandboxError(f"lost track of child {pid}: {e}") from e
    return info is not None


def _maxrss_kb(ru) -> int:
    if ru is None:
        return 0
    # kilobytes on Linux
    return ru.ru_maxrss


class ProcessSandbox(Executor):
    """
    Runs one command against one input file under wall-clock, CPU and memory
    limits. Misbehaving programs come back as an ExecutionOutcome; only host
    problems raise SandboxError.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._seccomp_hook = None
        if settings.seccomp_enabled:
            self._seccomp_hook = make_seccomp_hook(load_deny_list(settings.seccomp_policy))

    def run(self, spec: ExecSpec) -> ExecutionOutcome:
        if not spec.cmd:
            raise SandboxError("empty command")
        if not spec.workdir.is_dir():
            raise SandboxError(f"working directory missing: {spec.workdir}")

        with ExitStack() as stack:
            leaf = None
            if self.settings.cgroup_enabled:
                leaf = stack.enter_context(CgroupLeaf(
                    self.settings.cgroup_base, new_run_id(),
                    spec.memory_bytes, self.settings.max_processes,
                ))
            stdin = stack.enter_context(self._open_stdin(spec))
            return self._execute(spec, stdin, leaf)

    def _open_stdin(self, spec: ExecSpec) -> BinaryIO:
        path = spec.stdin_path or os.devnull
        try:
            return open(path, "rb")
        except OSError as e:
            raise SandboxError(f"cannot open stdin {path}: {e}") from e

    def _env(self, spec: ExecSpec) -> dict:
        return {
            "PATH": os.environ.get("PATH", os.defpath),
            "LANG": "C.UTF-8",
            "HOME": str(spec.workdir),
            **spec.env,
        }

    def _rlimits(self, spec: ExecSpec, leaf: Optional[CgroupLeaf]) -> RlimitSpec:
        # with a cgroup leaf memory.max is the ceiling; RLIMIT_AS would
        # only count reserved-but-unused address space against the program
        as_limit = spec.memory_bytes if (spec.limit_address_space and leaf is None) else None
        return RlimitSpec(
            cpu_seconds=cpu_seconds_for(spec.timeout_s * spec.cpu_scale),
            memory_bytes=as_limit,
            stack_bytes=spec.memory_bytes,
            file_bytes=self.settings.max_file_bytes,
            nofile=self.settings.max_open_files,
            nproc=self.settings.max_processes,
        )

    def _execute(self, spec: ExecSpec, stdin: BinaryIO, leaf: Optional[CgroupLeaf]) -> ExecutionOutcome:
        rl = self._rlimits(spec, leaf)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                spec.cmd,
                stdin=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(spec.workdir),
                env=self._env(spec),
                preexec_fn=make_preexec(rl, self._seccomp_hook),
                start_new_session=True,
            )
        except OSError as e:
            raise SandboxError(f"cannot spawn {spec.cmd[0]}: {e}") from e

        if leaf is not None:
            try:
                leaf.attach(proc.pid)
            except SandboxError:
                _kill_group(proc.pid)
                proc.wait()
                raise

        out = _BoundedReader(proc.stdout, self.settings.max_stdout_bytes)
        err = _BoundedReader(proc.stderr, self.settings.max_stderr_bytes)
        out.start()
        err.start()

        try:
            returncode, ru, timed_out = self._wait(proc, start, spec.timeout_s, leaf)
        finally:
            # the group itself is killed inside _wait, before the leader is reaped
            if leaf is not None:
                leaf.kill()
        duration = time.monotonic() - start

        for reader in (out, err):
            reader.join(self.settings.kill_grace_s)
            if reader.is_alive():
                log.warning("output_pipe_held_open", pid=proc.pid, cmd=spec.cmd[0])
            else:
                reader.stream.close()

        memory_kb = _maxrss_kb(ru)
        oom_killed = False
        if leaf is not None:
            usage = leaf.usage()
            memory_kb = usage.memory_kb or memory_kb
            oom_killed = usage.oom_killed

        stderr = err.text()
        cpu_s = (ru.ru_utime + ru.ru_stime) if ru is not None else 0.0
        kind = classify(
            returncode=returncode,
            timed_out=timed_out,
            stderr=stderr,
            memory_kb=memory_kb,
            memory_bytes=spec.memory_bytes,
            oom_killed=oom_killed,
            cpu_s=cpu_s,
            cpu_limit_s=rl.cpu_seconds,
        )
        sig = -returncode if (returncode is not None and returncode < 0) else None
        log.debug("sandbox_run", cmd=spec.cmd[0], outcome=kind.value, exit_code=returncode,
                  duration_s=round(duration, 3), memory_kb=memory_kb)
        return ExecutionOutcome(
            kind=kind,
            stdout=out.text(),
            stderr=stderr,
            duration_s=duration,
            exit_code=returncode,
            signal=sig,
            memory_kb=memory_kb,
            stdout_truncated=out.truncated,
            stderr_truncated=err.truncated,
        )

    def _wait(self, proc: subprocess.Popen, start: float, timeout_s: float,
              leaf: Optional[CgroupLeaf]) -> Tuple[Optional[int], object, bool]:
        """
        Poll with waitid(WNOWAIT) until the leader exits, then kill the rest
        of its group and reap it with wait4, which keeps the child's rusage
        (peak RSS, CPU time). Until wait4 the exited leader is a zombie, so
        its pid cannot be reused and killpg only reaches our own group.
        After the deadline the group is killed and we wait at most
        kill_grace_s more; a child that still will not die is abandoned and
        reported as a timeout.
        """
        deadline = start + timeout_s
        give_up = None
        timed_out = False
        delay = 0.001
        try:
            while not _exited(proc.pid):
                now = time.monotonic()
                if not timed_out and now >= deadline:
                    timed_out = True
                    _kill_group(proc.pid)
                    if leaf is not None:
                        leaf.kill()
                    give_up = now + self.settings.kill_grace_s
                elif timed_out and now >= give_up:
                    log.error("child_unreaped", pid=proc.pid)
                    _kill_group(proc.pid)
                    return None, None, True
                time.sleep(delay)
                delay = min(delay * 2, 0.02)
        except SandboxError:
            raise
        except BaseException:
            # leader not reaped yet, so its pid still names the group
            _kill_group(proc.pid)
            raise

        _kill_group(proc.pid)
        if leaf is not None:
            leaf.kill()
        _, status, ru = os.wait4(proc.pid, 0)
        proc.returncode = os.waitstatus_to_exitcode(status)
        return proc.returncode, ru, timed_out
