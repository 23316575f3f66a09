"""
Grade records: validation, filtering, statistics and chart series.

Everything here works on plain record dicts:
    {"id", "test", "subject", "term", "score", "created_at", ["student_name"]}
"""
import math
import re
from datetime import datetime

from scorebook.config import FILTER_ALL, MAX_SCORE, MIN_SCORE, SUBJECTS, TERMS, TESTS
from scorebook.errors import ValidationError

# fractional seconds are padded to six digits before fromisoformat
_FRACTION = re.compile(r"\.(\d+)")

SERIES_COLORS = ['#ef4444', '#3b82f6', '#10b981', '#f59e0b', '#6366f1', '#f43f5e']


def _parse_score(value):
    """Return an int score, or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError("Score must be a whole number.")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Score must be a whole number.")
    if not math.isfinite(number) or number != int(number):
        raise ValidationError("Score must be a whole number.")
    return int(number)


def validate_grade(form: dict) -> dict:
    """
    Check an add-grade form and return the record to write.

    Raises ValidationError when a selector is unset or not one of the fixed
    values, or when the score is missing or outside [0, 100].
    """
    form = form or {}
    test = form.get('test') or ''
    subject = form.get('subject') or ''
    term = form.get('term') or ''
    score = form.get('score')

    if not test or not subject or not term or score is None or score == '':
        raise ValidationError("Please fill in all fields.")

    if test not in TESTS or subject not in SUBJECTS or term not in TERMS:
        raise ValidationError("Please choose a test, subject and term from the list.")

    score = _parse_score(score)
    if score < MIN_SCORE or score > MAX_SCORE:
        raise ValidationError(f"Score must be between {MIN_SCORE} and {MAX_SCORE}.")

    return {"test": test, "subject": subject, "term": term, "score": score}


def normalize_filters(term=None, subject=None, test=None) -> dict:
    """Fill unset selectors with 'all' and reject unknown values."""
    filters = {
        "term": term or FILTER_ALL,
        "subject": subject or FILTER_ALL,
        "test": test or FILTER_ALL,
    }
    allowed = {"term": TERMS, "subject": SUBJECTS, "test": TESTS}
    for key, value in filters.items():
        if value != FILTER_ALL and value not in allowed[key]:
            raise ValidationError(f"Unknown {key} filter: {value}")
    return filters


def filter_grades(grades, term=FILTER_ALL, subject=FILTER_ALL, test=FILTER_ALL):
    """Keep records matching every selector that is not 'all'."""
    return [
        g for g in grades
        if (term == FILTER_ALL or g.get('term') == term)
        and (subject == FILTER_ALL or g.get('subject') == subject)
        and (test == FILTER_ALL or g.get('test') == test)
    ]


def grade_stats(grades) -> dict:
    """Count, mean, max and min of the score field. All zero when empty."""
    scores = [g.get('score', 0) for g in grades]
    if not scores:
        return {"count": 0, "average": 0, "average_display": "0.0", "max": 0, "min": 0}
    average = sum(scores) / len(scores)
    return {
        "count": len(scores),
        "average": average,
        "average_display": f"{average:.1f}",
        "max": max(scores),
        "min": min(scores),
    }


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 timestamp with a Z suffix or any number of fractional digits."""
    value = value.strip().replace('Z', '+00:00')
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    return datetime.fromisoformat(value)


def created_timestamp(grade) -> float:
    """created_at as epoch seconds; 0 when missing or unreadable."""
    value = grade.get('created_at')
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, str) and value:
        try:
            return parse_timestamp(value).timestamp()
        except ValueError:
            return 0
    return 0


def sort_by_created(grades):
    """Stable sort, oldest first."""
    return sorted(grades, key=created_timestamp)


def serialize_grade(grade) -> dict:
    d = dict(grade)
    value = d.get('created_at')
    if hasattr(value, 'isoformat'):
        d['created_at'] = value.isoformat()
    return d


def student_chart(grades) -> dict:
    """One 'Score trend' series in list order, labelled '<term> <test>'."""
    return {
        "title": "Score trend",
        "labels": [f"{g.get('term')} {g.get('test')}" for g in grades],
        "datasets": [{
            "label": "Score trend",
            "data": [g.get('score') for g in grades],
            "color": "#4f46e5",
        }],
    }


def subject_chart(grades, term=FILTER_ALL) -> dict:
    """
    One series per subject over the distinct test names.

    `grades` should already be filtered. They are time-sorted here; the x axis
    is each test name in first-occurrence order. When the same (subject, test)
    pair appears more than once only the first score is kept.
    """
    ordered = sort_by_created(grades)

    labels = []
    for g in ordered:
        if g.get('test') not in labels:
            labels.append(g.get('test'))

    by_subject = {}
    for g in ordered:
        points = by_subject.setdefault(g.get('subject'), {})
        if g.get('test') not in points:
            points[g.get('test')] = g.get('score')

    datasets = []
    for index, (subject, points) in enumerate(by_subject.items()):
        datasets.append({
            "label": subject,
            "data": [points.get(label) for label in labels],
            "color": SERIES_COLORS[index % len(SERIES_COLORS)],
        })

    title = "Scores by subject" if term == FILTER_ALL else f"{term} scores by subject"
    return {"title": title, "labels": labels, "datasets": datasets}
