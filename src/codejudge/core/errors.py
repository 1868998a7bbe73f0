from __future__ import annotations


class JudgeError(Exception):
    """Base class for every error raised by the judging engine."""


class ConfigurationError(JudgeError):
    """Bad problem or submission setup. Raised before any process is spawned."""


class UnsupportedLanguage(ConfigurationError):
    def __init__(self, language: str):
        self.language = language
        super().__init__(f"Unsupported language: {language}")


class AlreadyInProgress(JudgeError):
    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        super().__init__(f"submission {submission_id} is already being graded")


class SandboxError(JudgeError):
    """Host/environment failure: no workdir, cannot spawn, cgroup refused..."""


class InvalidTransition(JudgeError):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(
            f"illegal status transition {getattr(current, 'value', current)} -> "
            f"{getattr(target, 'value', target)}"
        )


class ProblemNotFound(JudgeError):
    def __init__(self, problem_id: str):
        self.problem_id = problem_id
        super().__init__(f"problem not found: {problem_id}")


class AttemptLimitReached(JudgeError):
    def __init__(self, max_attempts: int):
        self.max_attempts = max_attempts
        super().__init__(f"Maximum attempts ({max_attempts}) reached for this problem")
