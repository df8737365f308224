import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Point the app at a throwaway SQLite file before `dailyquiz` is imported.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="dailyquiz-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlmodel import Session

from dailyquiz import models
from dailyquiz.database import engine, create_db_and_tables, drop_db_and_tables
from dailyquiz.utils.clock import Clock


class FixedClock(Clock):
    """Clock pinned to a moment; `advance` moves it forward."""

    def __init__(self, now: datetime):
        super().__init__("UTC")
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs):
        self._now = self._now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def reset_db():
    """Ensure fresh tables for every test."""
    drop_db_and_tables()
    create_db_and_tables()
    yield


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


def make_question(difficulty="easy", points=10, correct=0, subject="History", text=None, active=True):
    return models.QuizQuestion(
        question=text or f"{subject} {difficulty} question",
        option_a="A",
        option_b="B",
        option_c="C",
        option_d="D",
        correct_answer=correct,
        explanation=f"Option {correct} is right",
        subject=subject,
        difficulty=difficulty,
        points=points,
        is_active=active,
    )


def seed_questions(questions):
    """Insert questions in a short-lived session and return them detached.

    Using a separate session keeps the test's own session from holding
    the SQLite write lock.
    """
    with Session(engine, expire_on_commit=False) as session:
        for q in questions:
            session.add(q)
        session.commit()
    return questions


@pytest.fixture
def seed_bank():
    def _seed(easy=10, medium=10, hard=5, points=None):
        points = points or {"easy": 5, "medium": 10, "hard": 20}
        subjects = ["History", "Polity", "Geography"]
        qs = []
        for difficulty, count in (("easy", easy), ("medium", medium), ("hard", hard)):
            for i in range(count):
                qs.append(make_question(
                    difficulty=difficulty,
                    points=points[difficulty],
                    correct=i % 4,
                    subject=subjects[i % len(subjects)],
                    text=f"{difficulty} question {i}",
                ))
        return seed_questions(qs)
    return _seed


def insert_session(quiz_date, questions, active=True):
    """Create a session row with an explicit question order."""
    quiz = models.QuizSession(
        quiz_date=quiz_date,
        selected_questions=[q.id for q in questions],
        total_questions=len(questions),
        total_points=sum(q.points for q in questions),
        difficulty_distribution={d: sum(1 for q in questions if q.difficulty == d) for d in models.DIFFICULTIES},
        subjects_covered=sorted({q.subject for q in questions}),
        is_active=active,
    )
    with Session(engine, expire_on_commit=False) as session:
        session.add(quiz)
        session.commit()
    return quiz
