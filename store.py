"""
In-memory result store with change notification.

One ResultStore is created by the caller and handed to the app factory;
there is no module-level instance. Listeners registered with subscribe()
are called synchronously as listener(event, record) until unsubscribe().
"""

import logging
from dataclasses import replace

from grading import score_assessment
from records import (
    STATUSES, STATUS_APPROVED, STATUS_PUBLISHED,
    ResultLockedError, ResultNotFoundError, StatusTransitionError, ValidationError,
    normalize_term,
)


EVENT_RESULT_SAVED = 'result_saved'
EVENT_STATUS_CHANGED = 'status_changed'

LOCKED_STATUSES = (STATUS_APPROVED, STATUS_PUBLISHED)


class ResultStore:

    def __init__(self):
        self._students = {}
        self._subjects = {}
        self._results = {}
        self._history = {}
        self._listeners = []

    # ---- listeners ----

    def subscribe(self, listener):
        if listener not in self._listeners:
            self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event, record):
        for listener in list(self._listeners):
            listener(event, record)

    # ---- students and subjects ----

    def add_student(self, student):
        self._students[student.id] = student
        return student

    def add_subject(self, subject):
        self._subjects[subject.id] = subject
        return subject

    def students(self):
        return list(self._students.values())

    def subjects(self):
        return list(self._subjects.values())

    def get_subject(self, subject_id):
        return self._subjects.get(subject_id)

    # ---- results ----

    def save_assessment(self, assessment):
        """Compute and store a draft result, superseding an unlocked earlier one."""
        result = score_assessment(assessment)
        previous = self._results.get(result.key)
        if previous is not None:
            if previous.status in LOCKED_STATUSES:
                raise ResultLockedError(
                    f"Result for {previous.student_id}/{previous.subject_id} "
                    f"({previous.term} {previous.session}) is {previous.status} and locked."
                )
            self._history.setdefault(result.key, []).append(previous)
        self._results[result.key] = result
        logging.info(
            "Result saved: student=%s subject=%s term=%s session=%s total=%s grade=%s",
            result.student_id, result.subject_id, result.term, result.session,
            result.total_score, result.grade,
        )
        self._notify(EVENT_RESULT_SAVED, result)
        return result

    def get_result(self, key):
        student_id, subject_id, term, session = key
        key = (student_id, subject_id, normalize_term(term), session)
        try:
            return self._results[key]
        except KeyError:
            raise ResultNotFoundError(key) from None

    def history(self, key):
        """Superseded records for a key, oldest first."""
        student_id, subject_id, term, session = key
        key = (student_id, subject_id, normalize_term(term), session)
        return list(self._history.get(key, []))

    def advance_status(self, key, status):
        """Move a result exactly one step along draft -> submitted -> approved -> published."""
        if status not in STATUSES:
            raise ValidationError(f"Unknown result status: {status!r}.", 'status')
        current = self.get_result(key)
        expected_index = STATUSES.index(current.status) + 1
        if STATUSES.index(status) != expected_index:
            raise StatusTransitionError(f"Cannot move result from {current.status} to {status}.")
        updated = replace(current, status=status)
        self._results[updated.key] = updated
        logging.info(
            "Result status changed: student=%s subject=%s %s -> %s",
            updated.student_id, updated.subject_id, current.status, status,
        )
        self._notify(EVENT_STATUS_CHANGED, updated)
        return updated

    def results(self, class_id=None, subject_id=None, term=None, session=None, student_id=None, status=None):
        if term:
            term = normalize_term(term)
        out = []
        for result in self._results.values():
            if class_id and result.class_id != class_id:
                continue
            if subject_id and result.subject_id != subject_id:
                continue
            if term and result.term != term:
                continue
            if session and result.session != session:
                continue
            if student_id and result.student_id != student_id:
                continue
            if status and result.status != status:
                continue
            out.append(result)
        return out
