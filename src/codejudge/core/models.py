from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    COMPILING = "compiling"
    RUNNING = "running"
    ACCEPTED = "accepted"
    WRONG_ANSWER = "wrong-answer"
    PARTIAL_CORRECT = "partial-correct"
    TIME_LIMIT_EXCEEDED = "time-limit-exceeded"
    MEMORY_LIMIT_EXCEEDED = "memory-limit-exceeded"
    RUNTIME_ERROR = "runtime-error"
    COMPILATION_ERROR = "compilation-error"

    @property
    def is_terminal(self) -> bool:
        return self not in (
            SubmissionStatus.PENDING,
            SubmissionStatus.COMPILING,
            SubmissionStatus.RUNNING,
        )


class OutcomeKind(str, Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    MEMORY_EXCEEDED = "memory_exceeded"
    RUNTIME_ERROR = "runtime_error"


DEFAULT_POINTS = 10


@dataclass(frozen=True)
class Limits:
    time_limit_s: float
    memory_limit_mb: int

    @property
    def memory_bytes(self) -> int:
        return int(self.memory_limit_mb) * 1024 * 1024


@dataclass(frozen=True)
class TestCase:
    input: str
    expected_output: str
    points: int = DEFAULT_POINTS
    hidden: bool = False
    id: Optional[str] = None

    __test__ = False  # keep pytest from collecting this class


@dataclass
class Submission:
    id: str
    code: str
    language: str
    limits: Optional[Limits]
    test_cases: List[TestCase] = field(default_factory=list)
    user_id: Optional[str] = None
    problem_id: Optional[str] = None
    allowed_languages: Optional[Sequence[str]] = None
    # rejudges re-run an existing row and do not count towards problem stats
    rejudge: bool = False


@dataclass(frozen=True)
class ExecutionOutcome:
    kind: OutcomeKind
    stdout: str
    stderr: str
    duration_s: float
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    memory_kb: int = 0
    stdout_truncated: bool = False
    stderr_truncated: bool = False


@dataclass(frozen=True)
class TestCaseResult:
    case_id: str
    passed: bool
    time_ms: int
    memory_kb: int
    output: str
    error: str
    score: int
    points: int
    hidden: bool
    outcome: OutcomeKind

    __test__ = False

    def to_payload(self, reveal_hidden: bool = False) -> Dict[str, Any]:
        redact = self.hidden and not reveal_hidden
        return {
            "testCaseId": self.case_id,
            "passed": self.passed,
            "timeTaken": self.time_ms,
            "memoryUsed": self.memory_kb,
            "output": "" if redact else self.output,
            "error": "" if redact else self.error,
            "score": self.score,
            "hidden": self.hidden,
        }


@dataclass(frozen=True)
class CompilationInfo:
    success: bool
    diagnostic: str
    time_ms: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "diagnostic": self.diagnostic,
            "compilationTime": self.time_ms,
        }


@dataclass(frozen=True)
class Verdict:
    status: SubmissionStatus
    score: int
    max_score: int
    passed: int
    total: int


@dataclass
class RunReport:
    """What the test case runner hands back: per-case results plus the build info."""
    results: List[TestCaseResult]
    compilation: Optional[CompilationInfo] = None

    @property
    def build_failed(self) -> bool:
        return self.compilation is not None and not self.compilation.success


@dataclass
class JudgeReport:
    submission_id: str
    verdict: Verdict
    results: List[TestCaseResult] = field(default_factory=list)
    compilation: Optional[CompilationInfo] = None
    message: Optional[str] = None

    @property
    def status(self) -> SubmissionStatus:
        return self.verdict.status

    def peak_usage(self) -> Tuple[int, int]:
        time_ms = max((r.time_ms for r in self.results), default=0)
        memory_kb = max((r.memory_kb for r in self.results), default=0)
        return time_ms, memory_kb

    def to_payload(self, reveal_hidden: bool = False) -> Dict[str, Any]:
        time_ms, memory_kb = self.peak_usage()
        payload: Dict[str, Any] = {
            "status": self.verdict.status.value,
            "score": self.verdict.score,
            "maxScore": self.verdict.max_score,
            "testCasesPassed": self.verdict.passed,
            "totalTestCases": self.verdict.total,
            "timeTaken": time_ms,
            "memoryUsed": memory_kb,
            "testCaseResults": [r.to_payload(reveal_hidden) for r in self.results],
        }
        if self.compilation is not None:
            payload["compilationInfo"] = self.compilation.to_payload()
        if self.message:
            payload["message"] = self.message
        return payload
