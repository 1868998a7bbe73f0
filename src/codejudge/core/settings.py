from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MB = 1024 * 1024


class Settings(BaseSettings):
    # ---- paths ----
    work_root: Path = Path("/tmp/codejudge")
    problems_dir: Path = Path("problems")
    database_url: str = "sqlite:///./judge.db"

    # ---- build step ----
    compile_timeout_s: float = 10.0
    compile_memory_mb: int = 1024

    # ---- run step ----
    kill_grace_s: float = 1.0
    test_workers: int = Field(default=1, ge=1)
    max_concurrent_submissions: int = Field(default=4, ge=1)
    max_stdout_bytes: int = 16 * MB
    max_stderr_bytes: int = 64 * 1024
    max_open_files: int = 64
    max_file_bytes: int = 64 * MB
    max_processes: Optional[int] = None

    # ---- language binaries ----
    runtimes: Dict[str, str] = {}

    # ---- isolation ----
    cgroup_enabled: bool = False
    cgroup_base: Path = Path("/sys/fs/cgroup/codejudge")
    seccomp_enabled: bool = False
    seccomp_policy: Path = Path("conf/seccomp.deny.yaml")

    log_level: str = "INFO"

    # env prefix JUDGE_*
    model_config = SettingsConfigDict(env_prefix="JUDGE_", extra="ignore")


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    block = data.get(key) or {}
    return block if isinstance(block, dict) else {}


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    JUDGE_* environment first, then conf/judge.yaml (or JUDGE_CONF) on top.
    Blocks that are missing or not mappings keep their defaults.
    """
    s = Settings()

    conf = Path(path or os.environ.get("JUDGE_CONF", "conf/judge.yaml"))
    try:
        data = yaml.safe_load(conf.read_text(encoding="utf-8")) or {}
    except FileNotFoundError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    defaults = _section(data, "defaults")
    output = _section(data, "output")
    cgroup = _section(data, "cgroup")
    seccomp = _section(data, "seccomp")

    update: Dict[str, Any] = {}
    for key in ("work_root", "problems_dir", "database_url", "log_level"):
        if key in data:
            update[key] = data[key]
    for key in (
        "compile_timeout_s", "compile_memory_mb", "kill_grace_s", "test_workers",
        "max_concurrent_submissions", "max_open_files", "max_file_bytes", "max_processes",
    ):
        if key in defaults:
            update[key] = defaults[key]
    for key in ("max_stdout_bytes", "max_stderr_bytes"):
        if key in output:
            update[key] = output[key]
    if isinstance(data.get("runtimes"), dict):
        update["runtimes"] = {**s.runtimes, **data["runtimes"]}
    if "enabled" in cgroup:
        update["cgroup_enabled"] = cgroup["enabled"]
    if "base" in cgroup:
        update["cgroup_base"] = cgroup["base"]
    if "enabled" in seccomp:
        update["seccomp_enabled"] = seccomp["enabled"]
    if "policy" in seccomp:
        update["seccomp_policy"] = seccomp["policy"]

    # re-validate so YAML strings become Path/int/bool like env values do
    return Settings.model_validate({**s.model_dump(), **update})
