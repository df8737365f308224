import pytest

from dailyquiz.utils.parsers import parse_file_to_questions


def test_parse_json():
    data = b'[{"question":"Q1","options":["A","B","C","D"],"correct_answer":2,"subject":"Polity","difficulty":"Hard","points":15}]'
    res = parse_file_to_questions(data, 'questions.json')
    assert isinstance(res, list)
    assert res[0]['question'] == 'Q1'
    assert res[0]['correct_answer'] == 2
    assert res[0]['difficulty'] == 'hard'
    assert res[0]['points'] == 15


def test_parse_json_wrapped_object_and_defaults():
    data = b'{"questions":[{"question_text":"Q2","option_a":"w","option_b":"x","option_c":"y","option_d":"z","correct_answer":"C"}]}'
    res = parse_file_to_questions(data, 'bank.JSON')
    assert res[0]['options'] == ['w', 'x', 'y', 'z']
    assert res[0]['correct_answer'] == 2
    assert res[0]['subject'] == 'General'
    assert res[0]['difficulty'] == 'medium'
    assert res[0]['points'] == 10


def test_parse_csv_with_pipe_options_and_answer_text():
    csv = b'question,options,correct_answer,difficulty,points\nWhat is X?,A|B|C|D,c,easy,5\n'
    res = parse_file_to_questions(csv, 'q.csv')
    assert res[0]['question'].startswith('What')
    assert res[0]['options'] == ['A', 'B', 'C', 'D']
    assert res[0]['correct_answer'] == 2
    assert res[0]['points'] == 5


def test_parse_csv_option_columns():
    csv = b'question,option_a,option_b,option_c,option_d,correct_answer,subject\nCapital?,Rome,Paris,Oslo,Bern,Paris,Geography\n'
    res = parse_file_to_questions(csv, 'q.csv')
    assert res[0]['correct_answer'] == 1
    assert res[0]['subject'] == 'Geography'


def test_bad_points_are_left_for_validation():
    data = b'[{"question":"Q","options":["A","B","C","D"],"correct_answer":0,"points":"lots"}]'
    assert parse_file_to_questions(data, 'q.json')[0]['points'] is None


def test_unsupported_extension():
    with pytest.raises(ValueError):
        parse_file_to_questions(b'', 'q.txt')
