"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the daily quiz backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Business errors raised by the
services are mapped to status codes in one exception handler.

Endpoints implemented:
- GET /health
- GET /quiz/today
- POST /quiz/attempts
- GET /users/{user_id}/limits
- GET /users/{user_id}/attempts
- GET /users/{user_id}/quiz-stats
- POST /users/{user_id}/premium
- POST /questions/import
- POST /admin/sessions/{quiz_date}/deactivate
"""

from fastapi import FastAPI, Depends, UploadFile, File, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
import json
import logging
import time
import uuid
from datetime import date
from .database import create_db_and_tables, get_session
from . import services
from .config import settings
from .errors import QuizError
from .schemas import AttemptIn, PremiumIn
from .utils.clock import Clock

app = FastAPI(title="Daily Quiz API")
logger = logging.getLogger("dailyquiz.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

IMPORT_CONTENT_TYPES = ("text/csv", "application/json", "application/vnd.ms-excel", "text/plain", "application/octet-stream")

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


def get_clock() -> Clock:
    """Clock dependency; tests override it to pin the calendar date."""
    return Clock()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
                "client": request.client.host if request.client else "unknown",
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(QuizError)
async def quiz_error_handler(request: Request, exc: QuizError):
    """Render business errors as `{detail, code, retryable}`."""
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "retryable": exc.retryable},
        headers=headers,
    )


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


@app.get('/quiz/today')
def today_quiz(db: Session = Depends(get_session), clock: Clock = Depends(get_clock)):
    """Return today's shared quiz, creating it on the first request of the day.

    Correct answers and explanations are withheld until submission.
    """
    return services.SessionManager(db, clock=clock).get_today_session()


@app.post('/quiz/attempts')
def submit_attempt(payload: AttemptIn, db: Session = Depends(get_session), clock: Clock = Depends(get_clock)):
    """Grade and record the caller's single attempt for today.

    Out-of-range or missing answers are graded as incorrect and listed
    under `warnings`; the submission itself is never rejected for them.
    """
    svc = services.AttemptProcessor(db, clock=clock)
    return svc.submit_attempt(payload.user_id, payload.answers, payload.time_spent_seconds)


@app.get('/users/{user_id}/limits')
def user_limits(user_id: str, db: Session = Depends(get_session), clock: Clock = Depends(get_clock)):
    """Report whether the user may attempt today's quiz."""
    return services.LimitGuard(db, clock=clock).get_user_limits(user_id)


@app.get('/users/{user_id}/attempts')
def user_attempts(user_id: str, limit: int = 10, db: Session = Depends(get_session), clock: Clock = Depends(get_clock)):
    """Return the user's most recent attempts, newest first."""
    if limit < 1 or limit > 100:
        raise HTTPException(status_code=400, detail='limit must be between 1 and 100')
    return services.AttemptProcessor(db, clock=clock).get_user_history(user_id, limit=limit)


@app.get('/users/{user_id}/quiz-stats')
def user_quiz_stats(user_id: str, db: Session = Depends(get_session), clock: Clock = Depends(get_clock)):
    """Aggregate score, points and time over all of the user's attempts."""
    return services.AttemptProcessor(db, clock=clock).get_quiz_stats(user_id)


@app.post('/users/{user_id}/premium')
def grant_premium(user_id: str, payload: PremiumIn, db: Session = Depends(get_session), clock: Clock = Depends(get_clock)):
    """Mark the user premium for `months` calendar months.

    Billing happens elsewhere; this only records the entitlement.
    """
    return services.LimitGuard(db, clock=clock).grant_premium(user_id, months=payload.months)


@app.post('/questions/import')
def import_questions(file: UploadFile = File(...), dry_run: bool = False, db: Session = Depends(get_session)):
    """Upload a JSON or CSV question bank file and import its questions.

    Returns a JSON summary with created/skipped counts and any per-row
    validation errors.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail='no file')
    if file.content_type and file.content_type not in IMPORT_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail='unsupported content type')
    content = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail='file too large')
    svc = services.ImportService(db)
    try:
        res = svc.import_file(content, file.filename, dry_run=dry_run)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JSONResponse(status_code=200, content=res)


@app.post('/admin/sessions/{quiz_date}/deactivate')
def deactivate_session(quiz_date: date, db: Session = Depends(get_session)):
    """Retire the session for `quiz_date`. Attempts against it stop being accepted."""
    changed = services.SessionManager(db).deactivate_session(quiz_date)
    if not changed:
        raise HTTPException(status_code=404, detail=f'no session for {quiz_date}')
    return {'status': 'ok', 'quiz_date': quiz_date.isoformat()}
