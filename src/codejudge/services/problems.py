from __future__ import annotations
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.errors import ConfigurationError, ProblemNotFound
from ..core.models import DEFAULT_POINTS, Limits, Submission, TestCase

_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class Problem:
    id: str
    limits: Limits
    test_cases: List[TestCase]
    allowed_languages: Optional[List[str]] = None
    title: str = ""
    # 0 means unlimited
    max_attempts: int = 0

    @property
    def max_score(self) -> int:
        return sum(c.points for c in self.test_cases)

    def submission(self, submission_id: str, code: str, language: str,
                   user_id: Optional[str] = None, rejudge: bool = False) -> Submission:
        return Submission(
            id=submission_id,
            code=code,
            language=language,
            limits=self.limits,
            test_cases=list(self.test_cases),
            user_id=user_id,
            problem_id=self.id,
            allowed_languages=self.allowed_languages,
            rejudge=rejudge,
        )


def _positive(data: Dict[str, Any], key: str, where: Path) -> float:
    if data.get(key) is None:
        raise ConfigurationError(f"{where}: '{key}' is required")
    try:
        value = float(data[key])
    except (TypeError, ValueError):
        raise ConfigurationError(f"{where}: '{key}' must be a number") from None
    if value <= 0:
        raise ConfigurationError(f"{where}: '{key}' must be positive")
    return value


def _max_attempts(data: Dict[str, Any], where: Path) -> int:
    raw = data.get("max_attempts")
    if raw is None:
        return 0
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        raise ConfigurationError(f"{where}: 'max_attempts' must be a non-negative integer")
    return raw


def _text(base: Path, raw: Dict[str, Any], key: str, where: Path) -> str:
    if key in raw:
        return str(raw[key])
    file_key = f"{key}_file"
    if file_key in raw:
        p = (base / str(raw[file_key])).resolve()
        if base.resolve() not in p.parents:
            raise ConfigurationError(f"{where}: {file_key} escapes the problem directory")
        try:
            return p.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"{where}: cannot read {file_key}: {e}") from e
    raise ConfigurationError(f"{where}: test case needs '{key}' or '{file_key}'")


def load_problem(problem_dir: Path) -> Problem:
    """
    Reads <problem_dir>/problem.yaml:
      time_limit_s, memory_limit_mb     required, no defaults
      allowed_languages                 optional list of tags
      max_attempts                      optional, per user; 0 or absent = unlimited
      test_cases: - input / input_file, output / output_file, points, hidden, id
    """
    conf = problem_dir / "problem.yaml"
    try:
        data = yaml.safe_load(conf.read_text(encoding="utf-8")) or {}
    except FileNotFoundError:
        raise ProblemNotFound(problem_dir.name) from None
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{conf}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{conf}: expected a mapping")

    limits = Limits(
        time_limit_s=_positive(data, "time_limit_s", conf),
        memory_limit_mb=int(_positive(data, "memory_limit_mb", conf)),
    )

    cases: List[TestCase] = []
    for i, raw in enumerate(data.get("test_cases") or []):
        if not isinstance(raw, dict):
            raise ConfigurationError(f"{conf}: test case #{i} must be a mapping")
        cases.append(TestCase(
            input=_text(problem_dir, raw, "input", conf),
            expected_output=_text(problem_dir, raw, "output", conf),
            points=int(raw.get("points", DEFAULT_POINTS)),
            hidden=bool(raw.get("hidden", False)),
            id=str(raw["id"]) if "id" in raw else None,
        ))

    allowed = data.get("allowed_languages")
    if allowed is not None and not isinstance(allowed, list):
        raise ConfigurationError(f"{conf}: allowed_languages must be a list")

    return Problem(
        id=problem_dir.name,
        limits=limits,
        test_cases=cases,
        allowed_languages=[str(x) for x in allowed] if allowed is not None else None,
        title=str(data.get("title", "")),
        max_attempts=_max_attempts(data, conf),
    )


class ProblemRepository:
    def __init__(self, root: Path):
        self.root = root

    def get(self, problem_id: str) -> Problem:
        if not _ID_RE.match(problem_id):
            raise ProblemNotFound(problem_id)
        return load_problem(self.root / problem_id)

    def list_ids(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.name for p in self.root.iterdir()
                      if p.is_dir() and (p / "problem.yaml").exists())
