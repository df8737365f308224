"""SQLModel data models.

This module defines the daily quiz tables using SQLModel. Uniqueness
rules that protect the daily lifecycle (one session per date, one
limit row per user, one attempt per user and date) are declared here
as database constraints so that concurrent requests are serialized by
the store itself.
"""

from typing import List, Optional
from datetime import datetime, date, timezone

from sqlalchemy import Column, JSON, CheckConstraint, UniqueConstraint
from sqlmodel import SQLModel, Field

DIFFICULTIES = ("easy", "medium", "hard")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuizQuestion(SQLModel, table=True):
    """A multiple-choice question in the bank.

    `correct_answer` is the index (0-3) of the correct option. Questions
    referenced by a session are never renumbered; retire them with
    `is_active = False`.
    """
    __tablename__ = "quiz_questions"
    __table_args__ = (
        CheckConstraint("correct_answer >= 0 AND correct_answer <= 3", name="ck_question_correct_answer"),
        CheckConstraint("difficulty IN ('easy', 'medium', 'hard')", name="ck_question_difficulty"),
        CheckConstraint("points >= 0", name="ck_question_points"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    question: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_answer: int
    explanation: str = ""
    subject: str = Field(index=True)
    subtopic: Optional[str] = None
    difficulty: str = Field(default="medium", index=True)
    points: int = 10
    exam_relevance: Optional[str] = None
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def options(self) -> List[str]:
        return [self.option_a, self.option_b, self.option_c, self.option_d]


class QuizSession(SQLModel, table=True):
    """The question set assigned to one calendar date."""
    __tablename__ = "daily_quiz_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_date: date = Field(unique=True, index=True, nullable=False)
    selected_questions: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    total_questions: int = 0
    total_points: int = 0
    difficulty_distribution: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    subjects_covered: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class UserQuizLimit(SQLModel, table=True):
    """Per-user daily quota. One row per user, created on first check."""
    __tablename__ = "user_quiz_limits"
    __table_args__ = (
        CheckConstraint("attempts_today >= 0", name="ck_limit_attempts_today"),
    )

    user_id: str = Field(primary_key=True)
    daily_limit: int = 1
    attempts_today: int = 0
    last_attempt_date: Optional[date] = None
    is_premium: bool = False
    premium_expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class UserAttempt(SQLModel, table=True):
    """A user's graded submission for a day's session.

    The (user_id, quiz_date) constraint is the last line against double
    credit when two submissions race past the limit check.
    """
    __tablename__ = "user_daily_attempts"
    __table_args__ = (
        UniqueConstraint("user_id", "quiz_date", name="uq_attempt_user_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    quiz_session_id: int = Field(foreign_key="daily_quiz_sessions.id")
    quiz_date: date
    answers: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    correct_answers: int = 0
    total_questions: int = 0
    score_percentage: int = 0
    total_points: int = 0
    xp_earned: int = 0
    time_spent_seconds: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class UserStats(SQLModel, table=True):
    """Aggregate progress per user, only ever changed by increments."""
    __tablename__ = "user_stats"

    user_id: str = Field(primary_key=True)
    total_xp: int = 0
    missions_completed: int = 0
    last_activity_date: Optional[date] = None
