from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..core.models import ExecutionOutcome

@dataclass
class ExecSpec:
    cmd: List[str]
    workdir: Path
    timeout_s: float
    memory_bytes: Optional[int] = None
    stdin_path: Optional[Path] = None
    env: Dict[str, str] = field(default_factory=dict)
    limit_address_space: bool = True
    # RLIMIT_CPU backstop is timeout * cpu_scale; multi-threaded runtimes need more
    cpu_scale: float = 1.0


class Executor:
    def run(self, spec: ExecSpec) -> ExecutionOutcome: ...
