from __future__ import annotations
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import structlog
from sqlalchemy import UniqueConstraint, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from ..core.errors import AttemptLimitReached
from ..core.models import Submission, SubmissionStatus

log = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StatusSink(Protocol):
    """What the orchestrator needs from the submission store."""

    def update_status(self, submission_id: str, status: SubmissionStatus) -> None: ...

    def save_result(self, submission_id: str, status: SubmissionStatus,
                    payload: Dict[str, Any]) -> None: ...

    def record_acceptance(self, user_id: str, problem_id: str, submission_id: str) -> bool: ...

    def record_problem_stats(self, problem_id: str, status: SubmissionStatus) -> None: ...


class SubmissionRecord(SQLModel, table=True):
    __tablename__ = "submissions"
    __table_args__ = (UniqueConstraint("user_id", "problem_id", "attempt_number"),)

    id: str = Field(primary_key=True)
    language: str
    code: str = ""
    problem_id: Optional[str] = None
    user_id: Optional[str] = None
    attempt_number: int = 1
    status: str = SubmissionStatus.PENDING.value
    result: Optional[str] = None  # JSON payload of the last terminal run
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def payload(self) -> Optional[Dict[str, Any]]:
        return json.loads(self.result) if self.result else None


class FirstSolve(SQLModel, table=True):
    __tablename__ = "first_solves"

    # composite key: the insert itself is the "first acceptance" check
    user_id: str = Field(primary_key=True)
    problem_id: str = Field(primary_key=True)
    submission_id: Optional[str] = None
    solved_at: datetime = Field(default_factory=_now)


class ProblemStats(SQLModel, table=True):
    __tablename__ = "problem_stats"

    problem_id: str = Field(primary_key=True)
    total: int = 0
    successful: int = 0
    partial: int = 0

    @property
    def success_rate(self) -> int:
        """Accepted share of all judged submissions, in whole percent."""
        return round(self.successful * 100 / self.total) if self.total else 0


_CREATE_RETRIES = 5


class SqlSubmissionStore:
    def __init__(self, url: str = "sqlite:///./judge.db"):
        kwargs: Dict[str, Any] = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, **kwargs)
        SQLModel.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, class_=Session, expire_on_commit=False)

    @staticmethod
    def _attempts(s: Session, user_id: Optional[str], problem_id: Optional[str]) -> int:
        if user_id is None or problem_id is None:
            return 0
        stmt = select(func.count(SubmissionRecord.id)).where(
            SubmissionRecord.user_id == user_id,
            SubmissionRecord.problem_id == problem_id,
        )
        return s.exec(stmt).one()

    def count_attempts(self, user_id: Optional[str], problem_id: Optional[str]) -> int:
        with self.SessionLocal() as s:
            return self._attempts(s, user_id, problem_id)

    def create(self, submission: Submission, max_attempts: int = 0) -> SubmissionRecord:
        """
        Inserts the row under the next attempt number of its user on its
        problem. max_attempts > 0 caps that number (AttemptLimitReached).
        Two concurrent creates collide on the unique attempt key; the loser
        counts again and retries.
        """
        conflict: Optional[IntegrityError] = None
        for _ in range(_CREATE_RETRIES):
            with self.SessionLocal() as s:
                attempt = self._attempts(s, submission.user_id, submission.problem_id) + 1
                if max_attempts and attempt > max_attempts:
                    raise AttemptLimitReached(max_attempts)
                rec = SubmissionRecord(
                    id=submission.id,
                    language=submission.language,
                    code=submission.code,
                    problem_id=submission.problem_id,
                    user_id=submission.user_id,
                    attempt_number=attempt,
                )
                s.add(rec)
                try:
                    s.commit()
                except IntegrityError as e:
                    s.rollback()
                    conflict = e
                    continue
            return rec
        raise conflict

    def get(self, submission_id: str) -> Optional[SubmissionRecord]:
        with self.SessionLocal() as s:
            return s.get(SubmissionRecord, submission_id)

    def update_status(self, submission_id: str, status: SubmissionStatus) -> None:
        with self.SessionLocal() as s:
            rec = s.get(SubmissionRecord, submission_id)
            if rec is None:
                raise KeyError(submission_id)
            rec.status = status.value
            rec.updated_at = _now()
            s.commit()

    def save_result(self, submission_id: str, status: SubmissionStatus,
                    payload: Dict[str, Any]) -> None:
        with self.SessionLocal() as s:
            rec = s.get(SubmissionRecord, submission_id)
            if rec is None:
                raise KeyError(submission_id)
            rec.status = status.value
            rec.result = json.dumps(payload, ensure_ascii=False)
            rec.updated_at = _now()
            s.commit()

    def record_acceptance(self, user_id: str, problem_id: str, submission_id: str) -> bool:
        """True only for the first accepted submission of this user on this problem."""
        with self.SessionLocal() as s:
            s.add(FirstSolve(user_id=user_id, problem_id=problem_id, submission_id=submission_id))
            try:
                s.commit()
            except IntegrityError:
                s.rollback()
                return False
        log.info("first_solve", user_id=user_id, problem_id=problem_id, submission_id=submission_id)
        return True

    def record_problem_stats(self, problem_id: str, status: SubmissionStatus) -> None:
        """Counts one judged submission against the problem."""
        with self.SessionLocal() as s:
            if s.get(ProblemStats, problem_id) is None:
                s.add(ProblemStats(problem_id=problem_id))
                try:
                    s.commit()
                except IntegrityError:
                    # created by a concurrent run
                    s.rollback()
        stmt = (
            update(ProblemStats)
            .where(ProblemStats.problem_id == problem_id)
            .values(
                total=ProblemStats.total + 1,
                successful=ProblemStats.successful + int(status is SubmissionStatus.ACCEPTED),
                partial=ProblemStats.partial + int(status is SubmissionStatus.PARTIAL_CORRECT),
            )
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def problem_stats(self, problem_id: str) -> ProblemStats:
        with self.SessionLocal() as s:
            return s.get(ProblemStats, problem_id) or ProblemStats(problem_id=problem_id)
