"""Repository classes encapsulating database operations.

Each repository is small and focused on a single table (questions,
sessions, limits, attempts, stats). Read-modify-write operations on
shared rows are issued as single SQL statements (`INSERT .. ON
CONFLICT`, `UPDATE .. RETURNING`) so that their atomicity comes from
the database rather than from application code. Repositories that take
part in a larger unit of work only flush; the calling service decides
when to commit.
"""

from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import case, func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import Session, select

from . import models


def _insert(session: Session, table):
    """Return a dialect specific INSERT that supports ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == 'postgresql':
        return postgresql.insert(table)
    if dialect == 'sqlite':
        return sqlite.insert(table)
    raise RuntimeError(f'unsupported database dialect: {dialect}')


class QuestionRepository:
    """Question bank access. Read-only apart from imports."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, question: models.QuizQuestion) -> models.QuizQuestion:
        """Persist a new question and return the managed instance."""
        self.session.add(question)
        self.session.commit()
        self.session.refresh(question)
        return question

    def list_active_questions(self, difficulty: str) -> List[models.QuizQuestion]:
        """Return all active questions for `difficulty`, ordered by id."""
        stmt = select(models.QuizQuestion).where(
            models.QuizQuestion.difficulty == difficulty,
            models.QuizQuestion.is_active == True,  # noqa: E712
        ).order_by(models.QuizQuestion.id)
        return self.session.exec(stmt).all()

    def get_many(self, question_ids: Sequence[int]) -> Dict[int, models.QuizQuestion]:
        """Fetch questions by id, including deactivated ones."""
        if not question_ids:
            return {}
        stmt = select(models.QuizQuestion).where(models.QuizQuestion.id.in_(list(question_ids)))
        return {q.id: q for q in self.session.exec(stmt).all()}

    def exists_by_subject_and_text(self, subject: str, question: str) -> bool:
        """Return True if a question with the same subject/text already exists."""
        stmt = select(models.QuizQuestion.id).where(
            models.QuizQuestion.subject == subject,
            models.QuizQuestion.question == question,
        )
        return self.session.exec(stmt).first() is not None


class SessionRepository:
    """Daily session rows keyed by `quiz_date`."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_date(self, quiz_date: date) -> Optional[models.QuizSession]:
        stmt = select(models.QuizSession).where(models.QuizSession.quiz_date == quiz_date)
        return self.session.exec(stmt).first()

    def insert(self, quiz: models.QuizSession) -> models.QuizSession:
        """Insert a new session; raises IntegrityError if the date is taken."""
        self.session.add(quiz)
        self.session.commit()
        self.session.refresh(quiz)
        return quiz

    def deactivate(self, quiz_date: date) -> int:
        """Mark the session for `quiz_date` inactive. Returns rows changed."""
        table = models.QuizSession.__table__
        result = self.session.connection().execute(
            update(table).where(table.c.quiz_date == quiz_date).values(is_active=False)
        )
        self.session.commit()
        return result.rowcount


class LimitRepository:
    """Per-user quota rows. Every mutation is one statement."""
    def __init__(self, session: Session):
        self.session = session
        self.table = models.UserQuizLimit.__table__

    def ensure(self, user_id: str, today: date, daily_limit: int, now: datetime) -> None:
        """Create the user's row with defaults unless it already exists."""
        stmt = _insert(self.session, self.table).values(
            user_id=user_id,
            daily_limit=daily_limit,
            attempts_today=0,
            last_attempt_date=today,
            is_premium=False,
            created_at=now,
            updated_at=now,
        ).on_conflict_do_nothing(index_elements=['user_id'])
        self.session.connection().execute(stmt)

    def reset_and_fetch(self, user_id: str, today: date, now: datetime):
        """Zero `attempts_today` if the stored date is not `today`, stamp
        `today` and return the resulting row, all in one UPDATE.
        """
        c = self.table.c
        stmt = (
            update(self.table)
            .where(c.user_id == user_id)
            .values(
                attempts_today=case((c.last_attempt_date == today, c.attempts_today), else_=0),
                last_attempt_date=today,
                updated_at=now,
            )
            .returning(c.daily_limit, c.attempts_today, c.is_premium, c.premium_expires_at)
        )
        return self.session.connection().execute(stmt).one_or_none()

    def increment(self, user_id: str, today: date, now: datetime) -> int:
        """Count one attempt for `today`. Returns rows changed."""
        c = self.table.c
        stmt = (
            update(self.table)
            .where(c.user_id == user_id)
            .values(
                attempts_today=case((c.last_attempt_date == today, c.attempts_today + 1), else_=1),
                last_attempt_date=today,
                updated_at=now,
            )
        )
        return self.session.connection().execute(stmt).rowcount

    def upsert_premium(self, user_id: str, expires_at: datetime, daily_limit: int, today: date, now: datetime) -> None:
        stmt = _insert(self.session, self.table).values(
            user_id=user_id,
            daily_limit=daily_limit,
            attempts_today=0,
            last_attempt_date=today,
            is_premium=True,
            premium_expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=['user_id'],
            set_={'is_premium': True, 'premium_expires_at': expires_at, 'updated_at': now},
        )
        self.session.connection().execute(stmt)


class AttemptRepository:
    """Graded attempts; insert-only."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, attempt: models.UserAttempt) -> models.UserAttempt:
        """Stage and flush an attempt so the unique constraint fires now.

        The caller owns the transaction and must commit or roll back.
        """
        self.session.add(attempt)
        self.session.flush()
        return attempt

    def list_for_user(self, user_id: str, limit: int = 10) -> List[models.UserAttempt]:
        stmt = (
            select(models.UserAttempt)
            .where(models.UserAttempt.user_id == user_id)
            .order_by(models.UserAttempt.quiz_date.desc(), models.UserAttempt.id.desc())
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def aggregate_for_user(self, user_id: str):
        """Return (count, score_sum, points_sum, time_sum, best_score)."""
        a = models.UserAttempt
        stmt = select(
            func.count(a.id),
            func.coalesce(func.sum(a.score_percentage), 0),
            func.coalesce(func.sum(a.total_points), 0),
            func.coalesce(func.sum(a.time_spent_seconds), 0),
            func.coalesce(func.max(a.score_percentage), 0),
        ).where(a.user_id == user_id)
        return self.session.exec(stmt).one()


class StatsRepository:
    """Aggregate user progress. Writes are increments, never overwrites."""
    def __init__(self, session: Session):
        self.session = session
        self.table = models.UserStats.__table__

    def add_progress(self, user_id: str, xp: int, missions: int, activity_date: date) -> None:
        """Add `xp` and `missions` to the user's totals, creating the row if needed."""
        stmt = _insert(self.session, self.table).values(
            user_id=user_id,
            total_xp=xp,
            missions_completed=missions,
            last_activity_date=activity_date,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=['user_id'],
            set_={
                'total_xp': self.table.c.total_xp + stmt.excluded.total_xp,
                'missions_completed': self.table.c.missions_completed + stmt.excluded.missions_completed,
                'last_activity_date': stmt.excluded.last_activity_date,
            },
        )
        self.session.connection().execute(stmt)
