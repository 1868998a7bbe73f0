from __future__ import annotations
import uuid
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ..core.errors import AlreadyInProgress, AttemptLimitReached, ConfigurationError, ProblemNotFound
from ..core.settings import Settings, load_settings
from ..logging import setup_logging
from ..runners.registry import supported_languages
from ..services.job_store import SqlSubmissionStore
from ..services.orchestrator import JudgeOrchestrator
from ..services.problems import ProblemRepository


# --------- Schemas ---------
class SubmitReq(BaseModel):
    problem_id: str
    code: str
    language: str
    user_id: Optional[str] = None


class SubmitRes(BaseModel):
    submission_id: str
    status: str
    attempt_number: int


class SubmissionRes(BaseModel):
    id: str
    status: str
    language: str
    problem_id: Optional[str] = None
    user_id: Optional[str] = None
    attempt_number: int
    result: Optional[Dict[str, Any]] = None


class ProblemStatsRes(BaseModel):
    total: int
    successful: int
    partial: int
    success_rate: int


class ProblemRes(BaseModel):
    id: str
    title: str
    time_limit_s: float
    memory_limit_mb: int
    max_score: int
    max_attempts: int
    allowed_languages: Optional[List[str]] = None
    stats: ProblemStatsRes


MAX_CODE_CHARS = 100_000


def create_app(settings: Optional[Settings] = None,
               store: Optional[SqlSubmissionStore] = None) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.log_level)

    store = store or SqlSubmissionStore(settings.database_url)
    problems = ProblemRepository(settings.problems_dir)
    judge = JudgeOrchestrator(settings, store)
    judge.workspaces.sweep()

    app = FastAPI(title="Judge API")
    app.state.judge = judge
    app.state.store = store

    @app.on_event("shutdown")
    def _shutdown():
        judge.shutdown(wait=False)

    # --------- Endpoints ---------

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/languages")
    def languages() -> List[str]:
        return supported_languages()

    @app.get("/problems")
    def list_problems() -> List[str]:
        return problems.list_ids()

    @app.get("/problems/{problem_id}", response_model=ProblemRes)
    def get_problem(problem_id: str):
        try:
            problem = problems.get(problem_id)
        except ProblemNotFound:
            raise HTTPException(status_code=404, detail="Problem not found")
        except ConfigurationError as e:
            raise HTTPException(status_code=500, detail=str(e))
        stats = store.problem_stats(problem.id)
        return ProblemRes(
            id=problem.id,
            title=problem.title,
            time_limit_s=problem.limits.time_limit_s,
            memory_limit_mb=problem.limits.memory_limit_mb,
            max_score=problem.max_score,
            max_attempts=problem.max_attempts,
            allowed_languages=problem.allowed_languages,
            stats=ProblemStatsRes(
                total=stats.total,
                successful=stats.successful,
                partial=stats.partial,
                success_rate=stats.success_rate,
            ),
        )

    @app.post("/submissions", response_model=SubmitRes, status_code=202)
    def submit(req: SubmitReq):
        if not req.code.strip():
            raise HTTPException(status_code=400, detail="Code cannot be empty")
        if len(req.code) > MAX_CODE_CHARS:
            raise HTTPException(status_code=400, detail="Code cannot exceed 100,000 characters")
        try:
            problem = problems.get(req.problem_id)
        except ProblemNotFound:
            raise HTTPException(status_code=404, detail="Problem not found")
        except ConfigurationError as e:
            raise HTTPException(status_code=500, detail=str(e))

        sub = problem.submission(uuid.uuid4().hex[:12], req.code, req.language, req.user_id)
        try:
            judge.validate(sub)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        try:
            rec = store.create(sub, max_attempts=problem.max_attempts)
        except AttemptLimitReached as e:
            raise HTTPException(status_code=409, detail=str(e))
        judge.dispatch(sub)
        return SubmitRes(submission_id=sub.id, status="pending", attempt_number=rec.attempt_number)

    @app.post("/submissions/{submission_id}/rejudge", response_model=SubmitRes, status_code=202)
    def rejudge(submission_id: str):
        rec = store.get(submission_id)
        if not rec:
            raise HTTPException(status_code=404, detail="Submission not found")
        if not rec.problem_id:
            raise HTTPException(status_code=400, detail="Submission has no problem")
        try:
            problem = problems.get(rec.problem_id)
            sub = problem.submission(rec.id, rec.code, rec.language, rec.user_id, rejudge=True)
            judge.dispatch(sub)
        except ProblemNotFound:
            raise HTTPException(status_code=404, detail="Problem not found")
        except AlreadyInProgress as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return SubmitRes(submission_id=rec.id, status="pending", attempt_number=rec.attempt_number)

    @app.get("/submissions/{submission_id}", response_model=SubmissionRes)
    def get_submission(submission_id: str):
        rec = store.get(submission_id)
        if not rec:
            raise HTTPException(status_code=404, detail="Submission not found")
        return SubmissionRes(
            id=rec.id,
            status=rec.status,
            language=rec.language,
            problem_id=rec.problem_id,
            user_id=rec.user_id,
            attempt_number=rec.attempt_number,
            result=rec.payload(),
        )

    return app
