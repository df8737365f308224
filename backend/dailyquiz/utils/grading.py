"""Pure grading helpers for daily quiz attempts.

Nothing here touches the database: the attempt processor feeds in the
session's questions and the raw submitted answers and persists what
comes back.
"""

from typing import List, Optional, Sequence, Tuple

VALID_ANSWERS = {-1, 0, 1, 2, 3}
UNANSWERED = -1


def normalize_answers(answers: Sequence, total_questions: int) -> Tuple[List[int], List[str]]:
    """Coerce a submitted answers array to exactly `total_questions` entries.

    Missing positions become unanswered, surplus entries are dropped and
    values outside -1..3 (including non-integers) are stored as unanswered
    so they grade as incorrect. Each repair is described in the returned
    warnings instead of rejecting the submission.
    """
    answers = list(answers or [])
    warnings = []
    normalized = []
    for idx, value in enumerate(answers[:total_questions]):
        # bool is an int subclass; True must not pass as option 1
        if isinstance(value, int) and not isinstance(value, bool) and value in VALID_ANSWERS:
            normalized.append(value)
        else:
            warnings.append(f"answer {idx} has invalid value {value!r}; graded as incorrect")
            normalized.append(UNANSWERED)
    if len(answers) < total_questions:
        missing = total_questions - len(answers)
        warnings.append(f"{missing} answer(s) missing; graded as unanswered")
        normalized.extend([UNANSWERED] * missing)
    elif len(answers) > total_questions:
        warnings.append(f"{len(answers) - total_questions} extra answer(s) ignored")
    return normalized, warnings


def round_half_up(numerator: int, denominator: int) -> int:
    """Non-negative integer division rounded to nearest, halves up."""
    if denominator <= 0:
        return 0
    return (2 * numerator + denominator) // (2 * denominator)


def score_percentage(correct: int, total: int) -> int:
    return round_half_up(100 * correct, total)


def xp_for(correct: int, base: int, per_correct: int) -> int:
    return base + per_correct * correct


def grade(answers: Sequence[int], questions: Sequence[Optional[object]]) -> Tuple[int, int, List[bool]]:
    """Return (correct_count, points_earned, per-position correctness).

    `questions` is aligned with `answers`; a `None` entry (question row
    missing) can never be answered correctly.
    """
    correct = 0
    points = 0
    outcome = []
    for given, q in zip(answers, questions):
        ok = q is not None and given == q.correct_answer
        if ok:
            correct += 1
            points += q.points
        outcome.append(ok)
    return correct, points, outcome
