from __future__ import annotations
from pathlib import Path
from typing import Mapping

from .base import Command, LanguageAdapter

# headroom for the runtime itself on top of the managed heap
_HEAP_RESERVE_MB = 32


def _heap_mb(memory_mb: int) -> int:
    return max(16, memory_mb - _HEAP_RESERVE_MB)


class CppAdapter(LanguageAdapter):
    name = "cpp"
    source_name = "solution.cpp"
    binaries = {"cpp": "g++"}

    def build_command(self, workdir: Path, runtimes: Mapping[str, str]) -> Command:
        return Command(
            argv=[self.binary(runtimes, "cpp"), "-std=c++17", "-O2", "-Wall",
                  self.source_name, "-o", "solution"],
            limit_address_space=False,
        )

    def run_command(self, workdir: Path, memory_mb: int, runtimes: Mapping[str, str]) -> Command:
        return Command(argv=[str(workdir / "solution")])


class PythonAdapter(LanguageAdapter):
    name = "python"
    source_name = "solution.py"
    binaries = {"python": "python3"}

    def run_command(self, workdir: Path, memory_mb: int, runtimes: Mapping[str, str]) -> Command:
        return Command(
            argv=[self.binary(runtimes, "python"), self.source_name],
            env={"PYTHONUNBUFFERED": "1", "PYTHONDONTWRITEBYTECODE": "1"},
        )


# CPU-time headroom for runtimes whose GC and JIT threads run beside the program
_MANAGED_CPU_SCALE = 2.0


class JavaAdapter(LanguageAdapter):
    name = "java"
    source_name = "Solution.java"
    binaries = {"javac": "javac", "java": "java"}

    def build_command(self, workdir: Path, runtimes: Mapping[str, str]) -> Command:
        return Command(
            argv=[self.binary(runtimes, "javac"), "-J-XX:+UseSerialGC", "-encoding", "UTF-8",
                  self.source_name],
            limit_address_space=False,
            cpu_scale=_MANAGED_CPU_SCALE,
        )

    def run_command(self, workdir: Path, memory_mb: int, runtimes: Mapping[str, str]) -> Command:
        heap = _heap_mb(memory_mb)
        # one active CPU keeps GC and compiler thread pools at their minimum
        return Command(
            argv=[self.binary(runtimes, "java"), f"-Xmx{heap}m", "-Xss64m",
                  "-XX:+UseSerialGC", "-XX:ActiveProcessorCount=1",
                  "-cp", ".", "Solution"],
            limit_address_space=False,
            cpu_scale=_MANAGED_CPU_SCALE,
        )


class JavaScriptAdapter(LanguageAdapter):
    name = "javascript"
    source_name = "solution.js"
    binaries = {"javascript": "node"}

    def run_command(self, workdir: Path, memory_mb: int, runtimes: Mapping[str, str]) -> Command:
        return Command(
            argv=[self.binary(runtimes, "javascript"),
                  f"--max-old-space-size={_heap_mb(memory_mb)}", self.source_name],
            limit_address_space=False,
            cpu_scale=_MANAGED_CPU_SCALE,
        )
