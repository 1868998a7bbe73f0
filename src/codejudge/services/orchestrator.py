from __future__ import annotations
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, FrozenSet, List, Optional, Set

import structlog

from ..core.errors import AlreadyInProgress, ConfigurationError, InvalidTransition
from ..core.models import JudgeReport, Submission, SubmissionStatus, Verdict
from ..core.settings import Settings
from ..executor.base import Executor
from ..executor.process import ProcessSandbox
from ..runners.registry import get_adapter, resolve
from .compiler import compile_plan
from .job_store import StatusSink
from .storage import WorkspaceStore
from .test_runner import TestCaseRunner
from .verdict import resolve_verdict

log = structlog.get_logger(__name__)

S = SubmissionStatus

TRANSITIONS: Dict[SubmissionStatus, FrozenSet[SubmissionStatus]] = {
    S.PENDING: frozenset({S.COMPILING, S.RUNTIME_ERROR}),
    S.COMPILING: frozenset({S.RUNNING, S.COMPILATION_ERROR, S.RUNTIME_ERROR}),
    S.RUNNING: frozenset({
        S.ACCEPTED, S.WRONG_ANSWER, S.PARTIAL_CORRECT,
        S.TIME_LIMIT_EXCEEDED, S.MEMORY_LIMIT_EXCEEDED, S.RUNTIME_ERROR,
    }),
}


def _log_crash(submission_id: str):
    """Done-callback for dispatched runs; nobody else looks at the future."""
    def _check(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            log.error("grading_crashed", submission_id=submission_id, exc_info=exc)
    return _check


class GradingRun:
    """Status of one grading run. Moves forward only; terminal states are final."""

    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        self.status = S.PENDING
        self.history: List[SubmissionStatus] = [S.PENDING]

    def advance(self, target: SubmissionStatus) -> None:
        if target not in TRANSITIONS.get(self.status, frozenset()):
            raise InvalidTransition(self.status, target)
        self.status = target
        self.history.append(target)


class JudgeOrchestrator:
    """
    Single entry point of the judging engine: build once, run every test case,
    resolve the verdict and push each status change to the submission store.
    At most one grading run per submission id is in flight at any time.
    """

    def __init__(self, settings: Settings, store: StatusSink,
                 sandbox: Optional[Executor] = None,
                 workspaces: Optional[WorkspaceStore] = None):
        self.settings = settings
        self.store = store
        self.sandbox = sandbox or ProcessSandbox(settings)
        self.workspaces = workspaces or WorkspaceStore(settings.work_root)
        self.runner = TestCaseRunner(self.sandbox, settings.test_workers)

        self._inflight: Set[str] = set()
        self._lock = threading.Lock()
        self._pool = ThreadPoolExecutor(
            max_workers=settings.max_concurrent_submissions, thread_name_prefix="judge"
        )

    # ------------ intake ------------

    def validate(self, submission: Submission) -> None:
        get_adapter(submission.language)
        allowed = submission.allowed_languages
        if allowed is not None and submission.language not in allowed:
            raise ConfigurationError(
                f"Language {submission.language} is not allowed for this problem"
            )
        limits = submission.limits
        if limits is None or limits.time_limit_s is None or limits.memory_limit_mb is None:
            raise ConfigurationError("problem limits are missing")
        if limits.time_limit_s <= 0 or limits.memory_limit_mb <= 0:
            raise ConfigurationError("problem limits must be positive")

    def in_flight(self, submission_id: str) -> bool:
        with self._lock:
            return submission_id in self._inflight

    def _claim(self, submission_id: str) -> None:
        with self._lock:
            if submission_id in self._inflight:
                raise AlreadyInProgress(submission_id)
            self._inflight.add(submission_id)

    def _release(self, submission_id: str) -> None:
        with self._lock:
            self._inflight.discard(submission_id)

    def submit(self, submission: Submission) -> JudgeReport:
        """Grade in the calling thread and return the terminal report."""
        self.validate(submission)
        self._claim(submission.id)
        try:
            self.store.update_status(submission.id, S.PENDING)
            return self._grade(submission)
        finally:
            self._release(submission.id)

    def dispatch(self, submission: Submission) -> "Future[JudgeReport]":
        """Validate and claim now, grade on the worker pool."""
        self.validate(submission)
        self._claim(submission.id)
        try:
            self.store.update_status(submission.id, S.PENDING)
            future = self._pool.submit(self._grade_and_release, submission)
        except BaseException:
            self._release(submission.id)
            raise
        future.add_done_callback(_log_crash(submission.id))
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "JudgeOrchestrator":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    # ------------ grading ------------

    def _grade_and_release(self, submission: Submission) -> JudgeReport:
        try:
            return self._grade(submission)
        finally:
            self._release(submission.id)

    def _advance(self, run: GradingRun, status: SubmissionStatus) -> None:
        run.advance(status)
        self.store.update_status(run.submission_id, status)
        log.info("status_changed", submission_id=run.submission_id, status=status.value)

    def _grade(self, submission: Submission) -> JudgeReport:
        run = GradingRun(submission.id)
        compilation = None
        try:
            with self.workspaces.workspace(submission.id) as root:
                # box/ is the program's cwd; stdin files live beside it, not inside
                workdir, io_dir = root / "box", root / "io"
                plan = resolve(
                    submission.language, workdir, submission.code,
                    memory_mb=submission.limits.memory_limit_mb,
                    runtimes=self.settings.runtimes,
                )
                self._advance(run, S.COMPILING)
                plan.write_source()
                compilation = compile_plan(self.sandbox, plan, self.settings)
                if compilation is None or compilation.success:
                    self._advance(run, S.RUNNING)
                outcome = self.runner.run_all(plan, compilation, submission.test_cases,
                                              submission.limits, io_dir)
            verdict = resolve_verdict(outcome.results, outcome.build_failed,
                                      test_cases=submission.test_cases)
            report = JudgeReport(submission.id, verdict, outcome.results, outcome.compilation)
        except Exception as e:
            log.exception("grading_failed", submission_id=submission.id, status=run.status.value)
            verdict = Verdict(
                status=S.RUNTIME_ERROR,
                score=0,
                max_score=sum(c.points for c in submission.test_cases),
                passed=0,
                total=len(submission.test_cases),
            )
            report = JudgeReport(submission.id, verdict, [], compilation,
                                 message=str(e) or type(e).__name__)

        self._finish(run, submission, report)
        return report

    def _finish(self, run: GradingRun, submission: Submission, report: JudgeReport) -> None:
        run.advance(report.status)
        try:
            self.store.save_result(submission.id, report.status, report.to_payload())
        except Exception:
            # the report is still returned; the row keeps its last status
            log.exception("result_save_failed", submission_id=submission.id,
                          status=report.status.value)
            return
        log.info("submission_judged", submission_id=submission.id, status=report.status.value,
                 score=report.verdict.score, max_score=report.verdict.max_score,
                 passed=report.verdict.passed, total=report.verdict.total)

        if report.status is S.ACCEPTED and submission.user_id and submission.problem_id:
            try:
                self.store.record_acceptance(submission.user_id, submission.problem_id,
                                             submission.id)
            except Exception:
                # the verdict is already stored; statistics must not undo it
                log.exception("record_acceptance_failed", submission_id=submission.id)

        # rejudges and host faults stay out of the problem stats
        if submission.problem_id and not submission.rejudge and report.message is None:
            try:
                self.store.record_problem_stats(submission.problem_id, report.status)
            except Exception:
                log.exception("record_problem_stats_failed", submission_id=submission.id)
