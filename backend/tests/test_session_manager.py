import random
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from conftest import make_question, seed_questions
from dailyquiz import models
from dailyquiz.database import engine
from dailyquiz.errors import NoActiveSession, SessionUnavailable
from dailyquiz.repositories import SessionRepository
from dailyquiz.services import SessionManager

QUIZ_DAY = date(2026, 3, 10)


def _count_sessions(session, quiz_date):
    return len(session.exec(select(models.QuizSession).where(models.QuizSession.quiz_date == quiz_date)).all())


def test_stratified_selection_uses_default_buckets_in_order(db, clock, seed_bank):
    bank = seed_bank(easy=10, medium=10, hard=5)
    by_id = {q.id: q for q in bank}
    mgr = SessionManager(db, clock=clock, rng=random.Random(7))
    quiz = mgr.get_or_create_session(QUIZ_DAY)

    assert quiz.total_questions == 20
    assert len(quiz.selected_questions) == 20
    assert len(set(quiz.selected_questions)) == 20
    difficulties = [by_id[qid].difficulty for qid in quiz.selected_questions]
    assert difficulties == ["easy"] * 8 + ["medium"] * 8 + ["hard"] * 4
    assert quiz.difficulty_distribution == {"easy": 8, "medium": 8, "hard": 4}
    assert quiz.total_points == sum(by_id[qid].points for qid in quiz.selected_questions)
    assert quiz.subjects_covered == sorted({by_id[qid].subject for qid in quiz.selected_questions})


def test_second_call_returns_same_session(db, clock, seed_bank):
    seed_bank()
    mgr = SessionManager(db, clock=clock)
    first = mgr.get_or_create_session(QUIZ_DAY)
    second = mgr.get_or_create_session(QUIZ_DAY)
    assert first.id == second.id
    assert first.selected_questions == second.selected_questions
    assert _count_sessions(db, QUIZ_DAY) == 1


def test_new_date_gets_its_own_session(db, clock, seed_bank):
    seed_bank()
    mgr = SessionManager(db, clock=clock)
    today = mgr.get_or_create_session(QUIZ_DAY)
    tomorrow = mgr.get_or_create_session(QUIZ_DAY + timedelta(days=1))
    assert today.id != tomorrow.id


def test_defaults_to_clock_date(db, clock, seed_bank):
    seed_bank()
    quiz = SessionManager(db, clock=clock).get_or_create_session()
    assert quiz.quiz_date == clock.today()


def test_bucket_with_enough_questions_draws_without_replacement(db, clock):
    seed_questions([make_question("hard", text=f"hard {i}") for i in range(5)])
    mgr = SessionManager(db, clock=clock, bucket_counts={"easy": 0, "medium": 0, "hard": 4})
    quiz = mgr.get_or_create_session(QUIZ_DAY)
    assert quiz.total_questions == 4
    assert len(set(quiz.selected_questions)) == 4


def test_short_bucket_takes_everything_available(db, clock):
    seed_questions([make_question("easy", points=3, text=f"easy {i}") for i in range(8)])
    seed_questions([make_question("hard", points=7, text=f"hard {i}") for i in range(5)])
    mgr = SessionManager(db, clock=clock, bucket_counts={"easy": 8, "medium": 8, "hard": 10})
    quiz = mgr.get_or_create_session(QUIZ_DAY)
    assert quiz.total_questions == 13
    assert quiz.difficulty_distribution == {"easy": 8, "medium": 0, "hard": 5}
    assert quiz.total_points == 8 * 3 + 5 * 7


def test_inactive_questions_are_never_selected(db, clock):
    active = seed_questions([make_question("easy", text=f"active {i}") for i in range(3)])
    seed_questions([make_question("easy", text=f"retired {i}", active=False) for i in range(3)])
    mgr = SessionManager(db, clock=clock, bucket_counts={"easy": 6, "medium": 0, "hard": 0})
    quiz = mgr.get_or_create_session(QUIZ_DAY)
    assert sorted(quiz.selected_questions) == sorted(q.id for q in active)


def test_empty_bank_creates_nothing(db, clock):
    with pytest.raises(NoActiveSession):
        SessionManager(db, clock=clock).get_or_create_session(QUIZ_DAY)
    assert _count_sessions(db, QUIZ_DAY) == 0


def test_deactivated_session_is_not_replaced(db, clock, seed_bank):
    seed_bank()
    mgr = SessionManager(db, clock=clock)
    mgr.get_or_create_session(QUIZ_DAY)
    assert mgr.deactivate_session(QUIZ_DAY) is True
    with pytest.raises(NoActiveSession):
        mgr.get_or_create_session(QUIZ_DAY)
    assert _count_sessions(db, QUIZ_DAY) == 1


def test_get_active_session_does_not_create(db, clock, seed_bank):
    seed_bank()
    with pytest.raises(NoActiveSession):
        SessionManager(db, clock=clock).get_active_session(QUIZ_DAY)
    assert _count_sessions(db, QUIZ_DAY) == 0


def test_losing_a_creation_race_returns_the_winner(db, clock, seed_bank, monkeypatch):
    bank = seed_bank()
    real_get = SessionRepository.get_by_date
    calls = {"n": 0}
    winner = {}

    def racing_get(self, quiz_date):
        calls["n"] += 1
        if calls["n"] == 1:
            # another request commits the day's session after our read
            with Session(engine, expire_on_commit=False) as other:
                row = models.QuizSession(
                    quiz_date=quiz_date,
                    selected_questions=[bank[0].id],
                    total_questions=1,
                    total_points=bank[0].points,
                    difficulty_distribution={"easy": 1, "medium": 0, "hard": 0},
                )
                other.add(row)
                other.commit()
                winner["id"] = row.id
            return None
        return real_get(self, quiz_date)

    monkeypatch.setattr(SessionRepository, "get_by_date", racing_get)
    quiz = SessionManager(db, clock=clock).get_or_create_session(QUIZ_DAY)
    assert quiz.id == winner["id"]
    assert quiz.selected_questions == [bank[0].id]
    assert _count_sessions(db, QUIZ_DAY) == 1


def test_storage_failure_without_a_row_is_retryable(db, clock, seed_bank, monkeypatch):
    seed_bank()

    def broken_insert(self, quiz):
        raise OperationalError("INSERT INTO daily_quiz_sessions", {}, Exception("disk I/O error"))

    monkeypatch.setattr(SessionRepository, "insert", broken_insert)
    with pytest.raises(SessionUnavailable) as exc_info:
        SessionManager(db, clock=clock).get_or_create_session(QUIZ_DAY)
    assert exc_info.value.retryable is True
    assert _count_sessions(db, QUIZ_DAY) == 0


def test_concurrent_creators_share_one_session(db, seed_bank, clock):
    seed_bank()

    def worker(_):
        with Session(engine) as s:
            return SessionManager(s, clock=clock).get_or_create_session(QUIZ_DAY).id

    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(worker, range(8)))

    assert len(set(ids)) == 1
    assert _count_sessions(db, QUIZ_DAY) == 1
