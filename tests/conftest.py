import sys
import threading

import pytest

from codejudge.core.models import Limits, Submission, TestCase
from codejudge.core.settings import Settings
from codejudge.executor.process import ProcessSandbox

ECHO = "import sys\nsys.stdout.write(sys.stdin.read())\n"


class RecordingStore:
    """In-memory stand-in for the submission store."""

    def __init__(self):
        self.events = []
        self.results = {}
        self.solves = set()
        self.stats = []
        self._lock = threading.Lock()

    def update_status(self, submission_id, status):
        with self._lock:
            self.events.append((submission_id, status))

    def save_result(self, submission_id, status, payload):
        with self._lock:
            self.events.append((submission_id, status))
            self.results[submission_id] = payload

    def record_acceptance(self, user_id, problem_id, submission_id):
        with self._lock:
            key = (user_id, problem_id)
            if key in self.solves:
                return False
            self.solves.add(key)
            return True

    def record_problem_stats(self, problem_id, status):
        with self._lock:
            self.stats.append((problem_id, status))

    def statuses(self, submission_id):
        return [s.value for sid, s in self.events if sid == submission_id]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        work_root=tmp_path / "work",
        problems_dir=tmp_path / "problems",
        database_url=f"sqlite:///{tmp_path / 'judge.db'}",
        runtimes={"python": sys.executable},
        kill_grace_s=1.0,
    )


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def sandbox(settings):
    return ProcessSandbox(settings)


@pytest.fixture
def make_submission():
    def _make(code=ECHO, language="python", cases=None, time_limit_s=2.0, memory_limit_mb=256,
              submission_id="sub-1", **kw):
        if cases is None:
            cases = [TestCase(input="1 2\n", expected_output="1 2\n")]
        return Submission(
            id=submission_id,
            code=code,
            language=language,
            limits=Limits(time_limit_s=time_limit_s, memory_limit_mb=memory_limit_mb),
            test_cases=list(cases),
            **kw,
        )

    return _make
