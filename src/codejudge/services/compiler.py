from __future__ import annotations
from typing import Optional

import structlog

from ..core.models import CompilationInfo, OutcomeKind
from ..core.settings import Settings
from ..executor.base import ExecSpec, Executor
from ..runners.base import LanguagePlan

log = structlog.get_logger(__name__)

MB = 1024 * 1024


def compile_plan(sandbox: Executor, plan: LanguagePlan, settings: Settings) -> Optional[CompilationInfo]:
    """
    Runs the plan's build command once. None when the language has no build step.
    Exit status decides success; compiler warnings are kept as the diagnostic.
    """
    cmd = plan.build_command
    if cmd is None:
        return None

    outcome = sandbox.run(ExecSpec(
        cmd=list(cmd.argv),
        workdir=plan.workdir,
        timeout_s=settings.compile_timeout_s,
        memory_bytes=settings.compile_memory_mb * MB,
        env=dict(cmd.env),
        limit_address_space=cmd.limit_address_space,
        cpu_scale=cmd.cpu_scale,
    ))

    diagnostic = "\n".join(part for part in (outcome.stdout, outcome.stderr) if part)
    if outcome.kind is OutcomeKind.TIMED_OUT:
        diagnostic = (diagnostic + "\n" if diagnostic else "") + \
            f"Compilation timed out after {settings.compile_timeout_s:g}s"
    elif outcome.kind is OutcomeKind.MEMORY_EXCEEDED:
        diagnostic = (diagnostic + "\n" if diagnostic else "") + \
            f"Compiler exceeded {settings.compile_memory_mb} MB"

    info = CompilationInfo(
        success=outcome.kind is OutcomeKind.COMPLETED,
        diagnostic=diagnostic,
        time_ms=int(outcome.duration_s * 1000),
    )
    log.info("build_finished", language=plan.language, success=info.success,
             time_ms=info.time_ms, exit_code=outcome.exit_code)
    return info
