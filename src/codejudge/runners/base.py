from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional


@dataclass(frozen=True)
class Command:
    argv: List[str]
    # JVM / V8 reserve far more address space than they use; those runtimes
    # get a heap flag instead of RLIMIT_AS.
    limit_address_space: bool = True
    env: Dict[str, str] = field(default_factory=dict)
    # RLIMIT_CPU counts every thread; GC/JIT threads burn CPU time in parallel
    cpu_scale: float = 1.0


@dataclass
class LanguagePlan:
    language: str
    source_path: Path
    code: str
    run_command: Command
    build_command: Optional[Command] = None

    @property
    def workdir(self) -> Path:
        return self.source_path.parent

    def write_source(self) -> Path:
        self.source_path.parent.mkdir(parents=True, exist_ok=True)
        self.source_path.write_text(self.code, encoding="utf-8")
        return self.source_path


class LanguageAdapter:
    """One language: where the source goes and how it is built and started."""

    name: str = ""
    source_name: str = ""
    # key into Settings.runtimes -> default binary
    binaries: Dict[str, str] = {}

    def binary(self, runtimes: Mapping[str, str], key: str) -> str:
        return runtimes.get(key) or self.binaries[key]

    def build_command(self, workdir: Path, runtimes: Mapping[str, str]) -> Optional[Command]:
        return None

    def run_command(self, workdir: Path, memory_mb: int, runtimes: Mapping[str, str]) -> Command:
        raise NotImplementedError

    def plan(self, source_dir: Path, code: str, memory_mb: int,
             runtimes: Mapping[str, str]) -> LanguagePlan:
        return LanguagePlan(
            language=self.name,
            source_path=source_dir / self.source_name,
            code=code,
            run_command=self.run_command(source_dir, memory_mb, runtimes),
            build_command=self.build_command(source_dir, runtimes),
        )
