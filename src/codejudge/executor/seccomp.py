from __future__ import annotations
from typing import Callable, List
from pathlib import Path

import yaml

from ..core.errors import ConfigurationError


def load_deny_list(policy_path: Path) -> List[str]:
    """
    Syscalls to forbid, from YAML. Either a plain list or {"syscalls": [...]}.
    Duplicates are dropped, order kept.
    """
    if not policy_path.exists():
        raise ConfigurationError(f"seccomp policy not found: {policy_path}")

    data = yaml.safe_load(policy_path.read_text(encoding="utf-8")) or []
    if isinstance(data, dict):
        data = data.get("syscalls") or []
    if not isinstance(data, list):
        raise ConfigurationError(f"seccomp policy {policy_path} must be a list of syscalls")
    return list(dict.fromkeys(str(x).strip() for x in data if str(x).strip()))


def make_seccomp_hook(deny_syscalls: List[str]) -> Callable[[], None]:
    """
    Returns a preexec hook that installs a deny-list filter:
    - default: ALLOW every syscall
    - listed syscalls: KILL the process
    """
    try:
        import pyseccomp as sc
    except ModuleNotFoundError as e:
        raise ConfigurationError(
            "seccomp is enabled but the 'pyseccomp' binding is not installed"
        ) from e

    def _hook() -> None:
        f = sc.SyscallFilter(sc.ALLOW)
        for name in deny_syscalls:
            try:
                f.add_rule(sc.KILL, name)
            except (ValueError, RuntimeError):
                # syscall missing on this architecture
                pass
        f.load()

    return _hook
