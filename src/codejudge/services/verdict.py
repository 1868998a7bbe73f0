from __future__ import annotations
from typing import Optional, Sequence

from ..core.models import OutcomeKind, SubmissionStatus, TestCase, TestCaseResult, Verdict

# checked in this order over the whole result set; the first kind present wins
PRECEDENCE = (
    (OutcomeKind.TIMED_OUT, SubmissionStatus.TIME_LIMIT_EXCEEDED),
    (OutcomeKind.MEMORY_EXCEEDED, SubmissionStatus.MEMORY_LIMIT_EXCEEDED),
    (OutcomeKind.RUNTIME_ERROR, SubmissionStatus.RUNTIME_ERROR),
)


def resolve_verdict(results: Sequence[TestCaseResult], build_failed: bool = False, *,
                    test_cases: Optional[Sequence[TestCase]] = None) -> Verdict:
    """Collapse per-case results into one status and score.

    A timeout, memory overrun or crash in any case outranks the score, even
    if every other case passed. Only clean runs are classified by score, and
    a run with nothing to score (no cases) is a wrong answer, not accepted.
    """
    if test_cases is not None:
        max_score = sum(c.points for c in test_cases)
        total = len(test_cases)
    else:
        max_score = sum(r.points for r in results)
        total = len(results)
    score = sum(r.score for r in results)
    passed = sum(1 for r in results if r.passed)

    if build_failed:
        return Verdict(SubmissionStatus.COMPILATION_ERROR, 0, max_score, 0, total)

    kinds = {r.outcome for r in results}
    for kind, status in PRECEDENCE:
        if kind in kinds:
            return Verdict(status, score, max_score, passed, total)

    if score <= 0:
        status = SubmissionStatus.WRONG_ANSWER
    elif score < max_score:
        status = SubmissionStatus.PARTIAL_CORRECT
    else:
        status = SubmissionStatus.ACCEPTED
    return Verdict(status, score, max_score, passed, total)
