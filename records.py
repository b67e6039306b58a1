"""
Typed records shared by the grading, ranking and broadsheet modules.

Form and import payloads are turned into these records and validated at the
boundary; nothing downstream deals with untyped dicts of scores.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple


TERMS = ('First Term', 'Second Term', 'Third Term')

TEST_MAX = 20
EXAM_MAX = 60

STATUS_DRAFT = 'draft'
STATUS_SUBMITTED = 'submitted'
STATUS_APPROVED = 'approved'
STATUS_PUBLISHED = 'published'
STATUSES = (STATUS_DRAFT, STATUS_SUBMITTED, STATUS_APPROVED, STATUS_PUBLISHED)


class ValidationError(ValueError):
    """Raised when a score or record payload is out of its allowed domain."""

    def __init__(self, message, field_name=None):
        super().__init__(message)
        self.field_name = field_name


class ResultLockedError(Exception):
    """Raised when saving over an approved or published result."""


class StatusTransitionError(Exception):
    """Raised when a result status change is not the next step forward."""


class ResultNotFoundError(KeyError):
    """Raised when no stored result matches a student/subject/term/session key."""


def normalize_term(value):
    """Map 'first', 'Second', 'third term' etc. to the canonical term name."""
    t = (value or '').strip().lower()
    if t.endswith(' term'):
        t = t[:-5].strip()
    for term in TERMS:
        if term.split(' ', 1)[0].lower() == t:
            return term
    raise ValidationError(f"Unknown term: {value!r}.", 'term')


def term_sort_value(term):
    t = (term or '').strip().lower()
    if t == 'first term':
        return 1
    if t == 'second term':
        return 2
    if t == 'third term':
        return 3
    return 99


def check_component(value, name, maximum):
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {name} score.", name)
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name} score.", name) from None
    if not math.isfinite(score):
        raise ValidationError(f"Invalid {name} score.", name)
    if score < 0 or score > maximum:
        raise ValidationError(f"{name} score must be between 0 and {maximum:g}.", name)
    return score


@dataclass(frozen=True)
class AssessmentScore:
    """One student's raw continuous-assessment and exam input for a subject."""
    student_id: str
    subject_id: str
    class_id: str
    term: str
    session: str
    test1: float
    test2: float
    exam: float

    @property
    def key(self) -> Tuple[str, str, str, str]:
        return (self.student_id, self.subject_id, self.term, self.session)


def validate_assessment(score: AssessmentScore) -> AssessmentScore:
    """Check each component against its maximum; returns a normalised copy."""
    return replace(
        score,
        term=normalize_term(score.term),
        test1=check_component(score.test1, 'test1', TEST_MAX),
        test2=check_component(score.test2, 'test2', TEST_MAX),
        exam=check_component(score.exam, 'exam', EXAM_MAX),
    )


@dataclass(frozen=True)
class ComputedResult:
    student_id: str
    subject_id: str
    class_id: str
    term: str
    session: str
    total_score: int
    grade: str
    status: str = STATUS_DRAFT

    @property
    def percentage(self) -> int:
        # Totals are already out of 100.
        return self.total_score

    @property
    def key(self) -> Tuple[str, str, str, str]:
        return (self.student_id, self.subject_id, self.term, self.session)

    def to_dict(self):
        return {
            'student_id': self.student_id,
            'subject_id': self.subject_id,
            'class_id': self.class_id,
            'term': self.term,
            'session': self.session,
            'total_score': self.total_score,
            'percentage': self.percentage,
            'grade': self.grade,
            'status': self.status,
        }


@dataclass(frozen=True)
class RankedEntry:
    result: ComputedResult
    position: int
    group_size: int

    def to_dict(self):
        data = self.result.to_dict()
        data['position'] = self.position
        data['group_size'] = self.group_size
        return data


@dataclass(frozen=True)
class Student:
    id: str
    name: str
    admission_number: str
    class_id: str
    is_active: bool = True


@dataclass(frozen=True)
class Subject:
    id: str
    code: str
    name: str
    credit_unit: int = 1


@dataclass
class BroadsheetRow:
    """One student's full-session roll-up; a derived view, never stored."""
    student_id: str
    admission_number: str
    student_name: str
    term_scores: Dict[str, Dict[str, int]] = field(default_factory=dict)
    cumulative_scores: Dict[str, int] = field(default_factory=dict)
    total_average: int = 0
    grade: str = 'F'
    position: Optional[int] = None

    def to_dict(self):
        return {
            'student_id': self.student_id,
            'admission_number': self.admission_number,
            'student_name': self.student_name,
            'term_scores': {term: dict(scores) for term, scores in self.term_scores.items()},
            'cumulative_scores': dict(self.cumulative_scores),
            'total_average': self.total_average,
            'grade': self.grade,
            'position': self.position,
        }
