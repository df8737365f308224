"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Service methods return the result
schemas directly so the same shapes are used in-process and over HTTP.
"""

from datetime import date, datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class AttemptIn(BaseModel):
    """Submission of today's quiz.

    `answers` is deliberately loose: bad entries are graded as incorrect
    rather than rejected.
    """
    user_id: str = Field(min_length=1)
    answers: List[Any]
    time_spent_seconds: int = Field(default=0, ge=0)


class PremiumIn(BaseModel):
    """Grant premium for a number of calendar months."""
    months: int = Field(default=1, ge=1, le=36)


class QuestionOut(BaseModel):
    """A session question as shown to players (no answer key)."""
    id: int
    question: str
    options: List[str]
    subject: str
    subtopic: Optional[str] = None
    difficulty: str
    points: int
    exam_relevance: Optional[str] = None


class SessionOut(BaseModel):
    id: int
    quiz_date: date
    questions: List[QuestionOut]
    total_questions: int
    total_points: int
    difficulty_distribution: Dict[str, int]
    subjects_covered: List[str]


class LimitStatus(BaseModel):
    """Result of a quota check."""
    can_attempt: bool
    remaining: int
    attempts_today: int
    daily_limit: int
    is_premium: bool
    premium_expires_at: Optional[datetime] = None


class QuestionReview(BaseModel):
    question_id: Optional[int]
    given_answer: int
    correct_answer: Optional[int]
    correct: bool
    points: int
    explanation: Optional[str] = None


class AttemptResult(BaseModel):
    attempt_id: int
    quiz_date: date
    correct_answers: int
    total_questions: int
    score_percentage: int
    total_points: int
    xp_earned: int
    time_spent_seconds: int
    warnings: List[str] = []
    review: List[QuestionReview] = []


class AttemptSummary(BaseModel):
    """One row of a user's attempt history."""
    attempt_id: int
    quiz_date: date
    correct_answers: int
    total_questions: int
    score_percentage: int
    total_points: int
    xp_earned: int
    time_spent_seconds: int
    created_at: datetime


class QuizStats(BaseModel):
    total_attempts: int = 0
    average_score: int = 0
    total_points: int = 0
    average_time: int = 0
    best_score: int = 0
