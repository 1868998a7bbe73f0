import itertools

from codejudge.core.models import OutcomeKind, SubmissionStatus, TestCase, TestCaseResult
from codejudge.services.verdict import resolve_verdict


def result(passed=True, points=10, outcome=OutcomeKind.COMPLETED, case_id="0"):
    return TestCaseResult(
        case_id=case_id, passed=passed, time_ms=1, memory_kb=0, output="", error="",
        score=points if passed else 0, points=points, hidden=False, outcome=outcome,
    )


def test_zero_cases_is_wrong_answer():
    v = resolve_verdict([])
    assert v.status is SubmissionStatus.WRONG_ANSWER
    assert v.max_score == 0
    assert v.total == 0


def test_all_pass_is_accepted():
    v = resolve_verdict([result(), result(points=5)])
    assert v.status is SubmissionStatus.ACCEPTED
    assert v.score == v.max_score == 15
    assert v.passed == v.total == 2


def test_some_pass_is_partial():
    v = resolve_verdict([result(), result(passed=False)])
    assert v.status is SubmissionStatus.PARTIAL_CORRECT
    assert (v.score, v.max_score, v.passed) == (10, 20, 1)


def test_none_pass_is_wrong_answer():
    v = resolve_verdict([result(passed=False), result(passed=False)])
    assert v.status is SubmissionStatus.WRONG_ANSWER
    assert v.score == 0


def test_timeout_beats_passing_cases():
    v = resolve_verdict([result()] * 5 + [result(passed=False, outcome=OutcomeKind.TIMED_OUT)])
    assert v.status is SubmissionStatus.TIME_LIMIT_EXCEEDED
    assert v.score == 50


def test_precedence_tle_then_mle_then_re():
    re = result(passed=False, outcome=OutcomeKind.RUNTIME_ERROR)
    mle = result(passed=False, outcome=OutcomeKind.MEMORY_EXCEEDED)
    tle = result(passed=False, outcome=OutcomeKind.TIMED_OUT)
    assert resolve_verdict([re, mle]).status is SubmissionStatus.MEMORY_LIMIT_EXCEEDED
    assert resolve_verdict([re, mle, tle]).status is SubmissionStatus.TIME_LIMIT_EXCEEDED
    assert resolve_verdict([result(), re]).status is SubmissionStatus.RUNTIME_ERROR


def test_verdict_does_not_depend_on_order():
    results = [
        result(case_id="a"),
        result(passed=False, outcome=OutcomeKind.RUNTIME_ERROR, case_id="b"),
        result(passed=False, outcome=OutcomeKind.MEMORY_EXCEEDED, case_id="c"),
        result(passed=False, case_id="d"),
    ]
    seen = {resolve_verdict(list(p)) for p in itertools.permutations(results)}
    assert len(seen) == 1
    assert seen.pop().status is SubmissionStatus.MEMORY_LIMIT_EXCEEDED


def test_build_failure_is_compilation_error():
    cases = [TestCase("1", "1"), TestCase("2", "2", points=15)]
    v = resolve_verdict([], build_failed=True, test_cases=cases)
    assert v.status is SubmissionStatus.COMPILATION_ERROR
    assert (v.score, v.max_score, v.passed, v.total) == (0, 25, 0, 2)


def test_all_zero_point_cases_never_accept():
    v = resolve_verdict([result(points=0), result(points=0)])
    assert v.status is SubmissionStatus.WRONG_ANSWER
