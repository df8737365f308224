"""File parsing utilities that convert question bank exports into a
normalized question list.

Supported input types: JSON and CSV. Parsers return a list of
dictionaries with keys: `question`, `options` (four strings),
`correct_answer`, `explanation`, `subject`, `subtopic`, `difficulty`,
`points` and `exam_relevance`. Validation happens in the import
service so one bad row does not discard the whole file.
"""

import io
import json
import csv
from typing import List, Dict, Optional

OPTION_KEYS = ('option_a', 'option_b', 'option_c', 'option_d')
LETTERS = 'ABCD'


def parse_file_to_questions(file_bytes: bytes, filename: str) -> List[Dict]:
    """Dispatch to the appropriate parser based on file extension."""
    name = filename.lower()
    if name.endswith('.json'):
        return parse_json(file_bytes)
    if name.endswith('.csv'):
        return parse_csv(file_bytes)
    raise ValueError('Unsupported file type')


def parse_json(b: bytes):
    """Parse a JSON array (or `{"questions": [...]}`) of question objects."""
    data = json.loads(b.decode('utf-8'))
    if isinstance(data, dict):
        data = data.get('questions') or []
    if not isinstance(data, list):
        raise ValueError('JSON payload must be a list of questions')
    return [normalize_question(item) if isinstance(item, dict) else item for item in data]


def parse_csv(b: bytes):
    """Parse a CSV export.

    Expected columns: `question`, either `option_a`..`option_d` or a pipe
    separated `options` column, and `correct_answer` given as an index
    (0-3), a letter (A-D) or the exact option text. `explanation`,
    `subject`, `subtopic`, `difficulty`, `points` and `exam_relevance`
    are passed through when present.
    """
    sio = io.StringIO(b.decode('utf-8-sig'))
    reader = csv.DictReader(sio)
    out = []
    for row in reader:
        item = dict(row)
        if not any(item.get(k) for k in OPTION_KEYS):
            raw = item.get('options') or item.get('answers') or ''
            item['options'] = [p.strip() for p in raw.split('|') if p.strip()]
        out.append(normalize_question(item))
    return out


def normalize_question(item: dict) -> dict:
    """Normalize a parsed question object (maps alternative keys to the
    canonical output shape).
    """
    options = item.get('options')
    if not options:
        options = [item.get(k) for k in OPTION_KEYS if item.get(k) is not None]
    options = [str(o).strip() for o in options or []]
    return {
        'question': str(item.get('question') or item.get('question_text') or '').strip(),
        'options': options,
        'correct_answer': resolve_correct_answer(item.get('correct_answer', item.get('correct')), options),
        'explanation': str(item.get('explanation') or '').strip(),
        'subject': str(item.get('subject') or 'General').strip(),
        'subtopic': item.get('subtopic') or None,
        'difficulty': str(item.get('difficulty') or 'medium').strip().lower(),
        'points': _coerce_int(item.get('points'), default=10),
        'exam_relevance': item.get('exam_relevance') or None,
    }


def resolve_correct_answer(raw, options: List[str]) -> Optional[int]:
    """Map an index, letter or option text to an option index."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    text = str(raw).strip()
    if not text:
        return None
    if text.lstrip('-').isdigit():
        return int(text)
    if len(text) == 1 and text.upper() in LETTERS:
        return LETTERS.index(text.upper())
    lowered = [o.lower() for o in options]
    if text.lower() in lowered:
        return lowered.index(text.lower())
    return None


def _coerce_int(val, default=None):
    # blank falls back to the default, garbage becomes None for the validator
    if val is None or str(val).strip() == '':
        return default
    try:
        return int(val)
    except (TypeError, ValueError):
        return None
