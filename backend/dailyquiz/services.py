"""Business logic services used by HTTP controllers.

This module holds the daily quiz lifecycle:

- `SessionManager` guarantees one immutable question set per date,
  built by stratified sampling and created with a make-or-fetch insert
  that leans on the unique `quiz_date` constraint.
- `LimitGuard` tracks each user's daily quota with single-statement
  check-and-reset and increment operations.
- `AttemptProcessor` grades a submission and records it under the
  unique (user_id, quiz_date) constraint, consuming quota and adding to
  user stats in the same transaction.
- `ImportService` loads question bank files.

Services translate SQLAlchemy errors into `dailyquiz.errors` so callers
never see storage exceptions.
"""

import json
import logging
import random
from datetime import date
from typing import List, Optional, Sequence

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlmodel import Session

from . import models, repositories, schemas
from .config import settings
from .errors import (
    AlreadySubmittedToday,
    LimitExceeded,
    NoActiveSession,
    SessionUnavailable,
    StorageUnavailable,
    ValidationError,
)
from .utils import grading
from .utils.clock import Clock, add_months, as_utc
from .utils.parsers import parse_file_to_questions

logger = logging.getLogger("dailyquiz.services")


def _log(event: str, **fields):
    logger.info("%s %s", event, json.dumps(fields, default=str, ensure_ascii=True))


class SessionManager:
    """Create or fetch the shared question set for a calendar date."""
    def __init__(self, session: Session, clock: Clock = None, rng: random.Random = None, bucket_counts: dict = None):
        self.session = session
        self.clock = clock or Clock()
        self.rng = rng or random.Random()
        self.bucket_counts = bucket_counts if bucket_counts is not None else settings.bucket_counts
        self.q_repo = repositories.QuestionRepository(session)
        self.session_repo = repositories.SessionRepository(session)

    def get_or_create_session(self, quiz_date: Optional[date] = None) -> models.QuizSession:
        """Return the session for `quiz_date`, creating it if absent.

        Concurrent callers may both decide to create; the loser's insert
        fails on the unique date and it returns the winner's row instead.
        Any other insert failure gets one more read before giving up with
        a retryable `SessionUnavailable`.
        """
        quiz_date = quiz_date or self.clock.today()
        existing = self._read(quiz_date)
        if existing is not None:
            return self._require_active(existing)

        candidate = self._build_session(quiz_date)
        try:
            created = self.session_repo.insert(candidate)
            _log(
                "session_created",
                quiz_date=quiz_date,
                session_id=created.id,
                total_questions=created.total_questions,
                distribution=created.difficulty_distribution,
            )
            return created
        except IntegrityError:
            self.session.rollback()
            _log("session_create_race", quiz_date=quiz_date)
        except DBAPIError as exc:
            self.session.rollback()
            logger.warning("session_insert_failed quiz_date=%s error=%s", quiz_date, exc)

        winner = self._read(quiz_date)
        if winner is None:
            raise SessionUnavailable(f"quiz session for {quiz_date} is unavailable, retry shortly")
        return self._require_active(winner)

    def get_active_session(self, quiz_date: Optional[date] = None) -> models.QuizSession:
        """Return the active session for `quiz_date` without creating one."""
        quiz_date = quiz_date or self.clock.today()
        existing = self._read(quiz_date)
        if existing is None:
            raise NoActiveSession(f"no quiz session for {quiz_date}")
        return self._require_active(existing)

    def get_today_session(self) -> schemas.SessionOut:
        """Today's session with its questions, minus the answer key."""
        quiz = self.get_or_create_session(self.clock.today())
        questions = self.session_questions(quiz)
        return schemas.SessionOut(
            id=quiz.id,
            quiz_date=quiz.quiz_date,
            questions=[
                schemas.QuestionOut(
                    id=q.id,
                    question=q.question,
                    options=q.options,
                    subject=q.subject,
                    subtopic=q.subtopic or q.subject,
                    difficulty=q.difficulty,
                    points=q.points,
                    exam_relevance=q.exam_relevance,
                )
                for q in questions if q is not None
            ],
            total_questions=quiz.total_questions,
            total_points=quiz.total_points,
            difficulty_distribution=quiz.difficulty_distribution,
            subjects_covered=quiz.subjects_covered,
        )

    def session_questions(self, quiz: models.QuizSession) -> List[Optional[models.QuizQuestion]]:
        """Questions in session order; `None` marks a missing row."""
        ids = list(quiz.selected_questions)
        try:
            by_id = self.q_repo.get_many(ids)
        except DBAPIError as exc:
            self.session.rollback()
            raise StorageUnavailable() from exc
        return [by_id.get(qid) for qid in ids]

    def deactivate_session(self, quiz_date: date) -> bool:
        try:
            changed = self.session_repo.deactivate(quiz_date)
        except DBAPIError as exc:
            self.session.rollback()
            raise StorageUnavailable() from exc
        if changed:
            _log("session_deactivated", quiz_date=quiz_date)
        return bool(changed)

    def _read(self, quiz_date: date) -> Optional[models.QuizSession]:
        try:
            return self.session_repo.get_by_date(quiz_date)
        except DBAPIError as exc:
            self.session.rollback()
            logger.warning("session_read_failed quiz_date=%s error=%s", quiz_date, exc)
            raise SessionUnavailable(f"quiz session for {quiz_date} is unavailable, retry shortly") from exc

    @staticmethod
    def _require_active(quiz: models.QuizSession) -> models.QuizSession:
        if not quiz.is_active:
            raise NoActiveSession(f"quiz session for {quiz.quiz_date} has been deactivated")
        return quiz

    def _build_session(self, quiz_date: date) -> models.QuizSession:
        """Stratified sample: draw each bucket independently, easy first.

        A bucket with fewer active questions than requested contributes
        everything it has.
        """
        selected: List[models.QuizQuestion] = []
        distribution = {}
        try:
            for difficulty in models.DIFFICULTIES:
                wanted = self.bucket_counts.get(difficulty, 0)
                pool = self.q_repo.list_active_questions(difficulty)
                picked = self.rng.sample(pool, min(wanted, len(pool)))
                if len(picked) < wanted:
                    logger.warning(
                        "question_bucket_short difficulty=%s wanted=%d available=%d",
                        difficulty, wanted, len(pool),
                    )
                distribution[difficulty] = len(picked)
                selected.extend(picked)
        except DBAPIError as exc:
            self.session.rollback()
            raise SessionUnavailable() from exc
        if not selected:
            raise NoActiveSession("question bank has no active questions")
        return models.QuizSession(
            quiz_date=quiz_date,
            selected_questions=[q.id for q in selected],
            total_questions=len(selected),
            total_points=sum(q.points for q in selected),
            difficulty_distribution=distribution,
            subjects_covered=sorted({q.subject for q in selected}),
            is_active=True,
            created_at=self.clock.utcnow(),
        )


class LimitGuard:
    """Per-user daily attempt quota."""
    def __init__(self, session: Session, clock: Clock = None):
        self.session = session
        self.clock = clock or Clock()
        self.limit_repo = repositories.LimitRepository(session)

    def check_and_maybe_reset(self, user_id: str, today: Optional[date] = None) -> schemas.LimitStatus:
        """Create the user's row if needed, roll the counter over on a new
        day and report whether another attempt is allowed.

        The rollover and the read of the counter it returns are the same
        UPDATE, so two requests cannot both act on a stale count.
        """
        today = today or self.clock.today()
        now = self.clock.utcnow()
        try:
            self.limit_repo.ensure(user_id, today, settings.DEFAULT_DAILY_LIMIT, now)
            row = self.limit_repo.reset_and_fetch(user_id, today, now)
            self.session.commit()
        except DBAPIError as exc:
            self.session.rollback()
            logger.warning("limit_check_failed user_id=%s error=%s", user_id, exc)
            raise StorageUnavailable() from exc
        if row is None:
            raise StorageUnavailable(f"quota row for {user_id} vanished, retry shortly")
        return self._status(row)

    get_user_limits = check_and_maybe_reset

    def consume_attempt(self, user_id: str, today: Optional[date] = None, commit: bool = True) -> None:
        """Count one attempt against today's quota.

        Called only after the attempt row has been written. With
        `commit=False` the increment joins the caller's transaction.
        """
        today = today or self.clock.today()
        now = self.clock.utcnow()
        try:
            if not self.limit_repo.increment(user_id, today, now):
                self.limit_repo.ensure(user_id, today, settings.DEFAULT_DAILY_LIMIT, now)
                self.limit_repo.increment(user_id, today, now)
            if commit:
                self.session.commit()
        except DBAPIError as exc:
            self.session.rollback()
            raise StorageUnavailable() from exc

    def grant_premium(self, user_id: str, months: int = 1) -> schemas.LimitStatus:
        """Mark `user_id` premium until `months` calendar months from now."""
        if months < 1:
            raise ValidationError("months must be >= 1")
        now = self.clock.utcnow()
        expires_at = add_months(now, months)
        try:
            self.limit_repo.upsert_premium(user_id, expires_at, settings.DEFAULT_DAILY_LIMIT, self.clock.today(), now)
            self.session.commit()
        except DBAPIError as exc:
            self.session.rollback()
            raise StorageUnavailable() from exc
        _log("premium_granted", user_id=user_id, expires_at=expires_at)
        return self.check_and_maybe_reset(user_id)

    def _status(self, row) -> schemas.LimitStatus:
        now = self.clock.utcnow()
        expires_at = as_utc(row.premium_expires_at) if row.premium_expires_at is not None else None
        premium = bool(row.is_premium) and (expires_at is None or expires_at > now)
        if premium:
            return schemas.LimitStatus(
                can_attempt=True,
                remaining=settings.UNLIMITED_REMAINING,
                attempts_today=row.attempts_today,
                daily_limit=row.daily_limit,
                is_premium=True,
                premium_expires_at=expires_at,
            )
        return schemas.LimitStatus(
            can_attempt=row.attempts_today < row.daily_limit,
            remaining=max(0, row.daily_limit - row.attempts_today),
            attempts_today=row.attempts_today,
            daily_limit=row.daily_limit,
            is_premium=False,
            premium_expires_at=expires_at,
        )


class AttemptProcessor:
    """Grade and record a user's daily quiz submission."""
    def __init__(self, session: Session, clock: Clock = None):
        self.session = session
        self.clock = clock or Clock()
        self.sessions = SessionManager(session, clock=self.clock)
        self.limits = LimitGuard(session, clock=self.clock)
        self.attempt_repo = repositories.AttemptRepository(session)
        self.stats_repo = repositories.StatsRepository(session)

    def submit_attempt(self, user_id: str, answers: Sequence, time_spent_seconds: int = 0) -> schemas.AttemptResult:
        """Grade `answers` against today's session and record the attempt.

        Raises `NoActiveSession`, `LimitExceeded` or
        `AlreadySubmittedToday` for the expected business outcomes and
        `StorageUnavailable` when the same call may be retried.
        """
        if not user_id or not str(user_id).strip():
            raise ValidationError("user_id is required")
        if time_spent_seconds is None or time_spent_seconds < 0:
            raise ValidationError("time_spent_seconds must be >= 0")
        if not isinstance(answers, (list, tuple)):
            raise ValidationError("answers must be a list")
        today = self.clock.today()

        quiz = self.sessions.get_active_session(today)
        limits = self.limits.check_and_maybe_reset(user_id, today=today)
        if not limits.can_attempt:
            _log("attempt_denied", user_id=user_id, attempts_today=limits.attempts_today, daily_limit=limits.daily_limit)
            raise LimitExceeded(
                f"daily limit of {limits.daily_limit} quiz attempt(s) reached; come back tomorrow"
            )

        questions = self.sessions.session_questions(quiz)
        selected_ids = list(quiz.selected_questions)
        total = len(selected_ids)
        normalized, warnings = grading.normalize_answers(answers, total)
        correct, points, outcome = grading.grade(normalized, questions)
        percentage = grading.score_percentage(correct, total)
        xp = grading.xp_for(correct, settings.XP_BASE, settings.XP_PER_CORRECT)

        review = [
            schemas.QuestionReview(
                question_id=qid,
                given_answer=given,
                correct_answer=q.correct_answer if q is not None else None,
                correct=ok,
                points=q.points if (q is not None and ok) else 0,
                explanation=q.explanation if q is not None else None,
            )
            for qid, given, q, ok in zip(selected_ids, normalized, questions, outcome)
        ]
        attempt = models.UserAttempt(
            user_id=user_id,
            quiz_session_id=quiz.id,
            quiz_date=today,
            answers=normalized,
            correct_answers=correct,
            total_questions=total,
            score_percentage=percentage,
            total_points=points,
            xp_earned=xp,
            time_spent_seconds=int(time_spent_seconds),
            created_at=self.clock.utcnow(),
        )
        try:
            self.attempt_repo.add(attempt)
            attempt_id = attempt.id
            self.limits.consume_attempt(user_id, today=today, commit=False)
            self.stats_repo.add_progress(user_id, xp=xp, missions=1, activity_date=today)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            _log("attempt_duplicate", user_id=user_id, quiz_date=today)
            raise AlreadySubmittedToday(f"quiz for {today} already submitted") from exc
        except DBAPIError as exc:
            self.session.rollback()
            logger.warning("attempt_insert_failed user_id=%s error=%s", user_id, exc)
            raise StorageUnavailable() from exc

        _log(
            "attempt_recorded",
            user_id=user_id,
            attempt_id=attempt_id,
            quiz_date=today,
            correct=correct,
            total=total,
            xp=xp,
        )
        return schemas.AttemptResult(
            attempt_id=attempt_id,
            quiz_date=today,
            correct_answers=correct,
            total_questions=total,
            score_percentage=percentage,
            total_points=points,
            xp_earned=xp,
            time_spent_seconds=int(time_spent_seconds),
            warnings=warnings,
            review=review,
        )

    def get_user_history(self, user_id: str, limit: int = 10) -> List[schemas.AttemptSummary]:
        """Most recent attempts first."""
        try:
            rows = self.attempt_repo.list_for_user(user_id, limit=limit)
        except DBAPIError as exc:
            self.session.rollback()
            raise StorageUnavailable() from exc
        return [
            schemas.AttemptSummary(
                attempt_id=r.id,
                quiz_date=r.quiz_date,
                correct_answers=r.correct_answers,
                total_questions=r.total_questions,
                score_percentage=r.score_percentage,
                total_points=r.total_points,
                xp_earned=r.xp_earned,
                time_spent_seconds=r.time_spent_seconds,
                created_at=r.created_at,
            )
            for r in rows
        ]

    def get_quiz_stats(self, user_id: str) -> schemas.QuizStats:
        try:
            count, score_sum, points_sum, time_sum, best = self.attempt_repo.aggregate_for_user(user_id)
        except DBAPIError as exc:
            self.session.rollback()
            raise StorageUnavailable() from exc
        if not count:
            return schemas.QuizStats()
        return schemas.QuizStats(
            total_attempts=count,
            average_score=grading.round_half_up(score_sum, count),
            total_points=points_sum,
            average_time=grading.round_half_up(time_sum, count),
            best_score=best,
        )


class ImportService:
    """Import question bank files and persist them to the DB."""
    def __init__(self, session: Session):
        self.session = session
        self.q_repo = repositories.QuestionRepository(session)

    def import_file(self, file_bytes: bytes, filename: str, deduplicate: bool = True, dry_run: bool = False):
        """Parse `filename` contents and create `QuizQuestion` rows.

        Returns a dictionary with the number of created questions, the
        number skipped as duplicates and any validation `errors`
        encountered per item. When `deduplicate` is True, questions with
        identical subject/text are skipped.
        """
        parsed = parse_file_to_questions(file_bytes, filename)
        created = 0
        skipped = 0
        errors = []
        seen = set()
        for idx, p in enumerate(parsed):
            try:
                self._validate_parsed_question(p)
            except ValueError as e:
                errors.append({'index': idx, 'error': str(e)})
                continue
            key = (p['subject'], p['question'])
            if deduplicate and (key in seen or self._exists(*key)):
                skipped += 1
                continue
            seen.add(key)
            if dry_run:
                created += 1
                continue
            a, b, c, d = p['options']
            try:
                self.q_repo.create(models.QuizQuestion(
                    question=p['question'],
                    option_a=a,
                    option_b=b,
                    option_c=c,
                    option_d=d,
                    correct_answer=p['correct_answer'],
                    explanation=p['explanation'],
                    subject=p['subject'],
                    subtopic=p['subtopic'],
                    difficulty=p['difficulty'],
                    points=p['points'],
                    exam_relevance=p['exam_relevance'],
                ))
            except DBAPIError as exc:
                self.session.rollback()
                logger.warning("question_insert_failed filename=%s index=%d error=%s", filename, idx, exc)
                raise StorageUnavailable() from exc
            created += 1
        _log("questions_imported", filename=filename, created=created, skipped=skipped, errors=len(errors), dry_run=dry_run)
        return {'created': created, 'skipped': skipped, 'errors': errors}

    def _exists(self, subject: str, question: str) -> bool:
        try:
            return self.q_repo.exists_by_subject_and_text(subject, question)
        except DBAPIError as exc:
            self.session.rollback()
            raise StorageUnavailable() from exc

    def _validate_parsed_question(self, p: dict):
        """Validate a parsed question dictionary and raise ValueError on error."""
        if not isinstance(p, dict):
            raise ValueError('question item must be an object')
        if not p.get('question'):
            raise ValueError('missing or empty question')
        options = p.get('options') or []
        if len(options) != 4 or not all(options):
            raise ValueError('exactly four non-empty options are required')
        if p.get('correct_answer') not in (0, 1, 2, 3):
            raise ValueError('correct_answer must be 0-3, A-D or the text of an option')
        if p.get('difficulty') not in models.DIFFICULTIES:
            raise ValueError(f"difficulty must be one of {', '.join(models.DIFFICULTIES)}")
        if not isinstance(p.get('points'), int) or p['points'] < 0:
            raise ValueError('points must be a non-negative integer')
