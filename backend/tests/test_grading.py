from types import SimpleNamespace

from dailyquiz.utils import grading


def _q(correct, points):
    return SimpleNamespace(correct_answer=correct, points=points)


def test_grade_counts_points_only_for_correct_positions():
    questions = [_q(1, 10), _q(2, 10), _q(0, 15)]
    correct, points, outcome = grading.grade([1, 2, 1], questions)
    assert (correct, points) == (2, 20)
    assert outcome == [True, True, False]


def test_missing_question_row_is_never_correct():
    correct, points, _ = grading.grade([0, 0], [None, _q(0, 5)])
    assert (correct, points) == (1, 5)


def test_normalize_pads_and_flags_bad_values():
    normalized, warnings = grading.normalize_answers([0, "b", None, True, 4], 6)
    assert normalized == [0, -1, -1, -1, -1, -1]
    assert len(warnings) == 5


def test_normalize_accepts_unanswered_marker_silently():
    normalized, warnings = grading.normalize_answers([-1, 3], 2)
    assert normalized == [-1, 3]
    assert warnings == []


def test_score_percentage_rounds_half_up():
    assert grading.score_percentage(2, 3) == 67
    assert grading.score_percentage(1, 3) == 33
    assert grading.score_percentage(1, 8) == 13
    assert grading.score_percentage(0, 20) == 0
    assert grading.score_percentage(20, 20) == 100


def test_score_percentage_stays_in_range():
    for total in range(1, 25):
        for correct in range(total + 1):
            pct = grading.score_percentage(correct, total)
            assert 0 <= pct <= 100


def test_xp_formula():
    assert grading.xp_for(0, 50, 5) == 50
    assert grading.xp_for(20, 50, 5) == 150
