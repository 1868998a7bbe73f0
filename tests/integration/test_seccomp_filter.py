import platform
import signal
import sys
from pathlib import Path

import pytest

from codejudge.core.models import OutcomeKind
from codejudge.executor.base import ExecSpec
from codejudge.executor.process import ProcessSandbox

pytest.importorskip("pyseccomp")

pytestmark = pytest.mark.skipif(
    not sys.platform.startswith("linux") or platform.machine() != "x86_64",
    reason="syscall numbers below are x86_64",
)

POLICY = Path(__file__).resolve().parents[2] / "conf" / "seccomp.deny.yaml"

# ptrace(PTRACE_TRACEME) through the raw syscall number
PTRACE = "import ctypes\nctypes.CDLL(None).syscall(101, 0, 0, 0, 0)\nprint('still alive')\n"


@pytest.fixture
def filtered(settings):
    return ProcessSandbox(settings.model_copy(update={"seccomp_enabled": True,
                                                      "seccomp_policy": POLICY}))


def _run(sandbox, tmp_path, code):
    prog = tmp_path / "prog.py"
    prog.write_text(code)
    return sandbox.run(ExecSpec(cmd=[sys.executable, str(prog)], workdir=tmp_path,
                                timeout_s=5, memory_bytes=256 * 1024 * 1024))


def test_denied_syscall_kills_the_program(filtered, tmp_path):
    out = _run(filtered, tmp_path, PTRACE)
    assert out.kind is OutcomeKind.RUNTIME_ERROR
    assert out.signal == signal.SIGSYS
    assert "still alive" not in out.stdout


def test_ordinary_program_is_unaffected(filtered, tmp_path):
    out = _run(filtered, tmp_path, "import mmap\nm = mmap.mmap(-1, 10)\nprint('ok')\n")
    assert out.kind is OutcomeKind.COMPLETED
    assert out.stdout == "ok\n"
