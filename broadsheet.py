"""
Broadsheet: per-class, per-session roll-up of every student's term scores.

Rows are a derived view recomputed from the supplied students, results and
subjects; nothing here is stored.
"""

from grading import grade_for, grade_distribution, round_half_up, PASS_MARK
from ranking import assign_positions
from records import BroadsheetRow, TERMS, normalize_term


def _mean(values):
    return round_half_up(sum(values) / len(values))


def build_broadsheet_row(student, student_results, subjects):
    # Last matching result wins when a subject/term appears twice.
    recorded = {}
    for result in student_results:
        recorded[(normalize_term(result.term), result.subject_id)] = result.percentage

    term_scores = {}
    for term in TERMS:
        term_scores[term] = {
            subject.code: recorded.get((term, subject.id), 0) or 0
            for subject in subjects
        }

    cumulative_scores = {}
    for subject in subjects:
        subject_scores = [term_scores[term][subject.code] for term in TERMS]
        subject_scores = [score for score in subject_scores if score > 0]
        if subject_scores:
            cumulative_scores[subject.code] = _mean(subject_scores)

    all_scores = list(cumulative_scores.values())
    total_average = _mean(all_scores) if all_scores else 0

    return BroadsheetRow(
        student_id=student.id,
        admission_number=student.admission_number,
        student_name=student.name,
        term_scores=term_scores,
        cumulative_scores=cumulative_scores,
        total_average=total_average,
        grade=grade_for(total_average),
    )


def build_broadsheet(students, results, subjects, class_id, session):
    """
    Build one row per active student in class_id for the session.

    Subject cumulative scores average only terms with a non-zero percentage;
    a subject never recorded is left out entirely. Rows come back sorted by
    total average (descending) with competition-ranked positions.
    """
    subjects = list(subjects)
    class_students = [s for s in students if s.class_id == class_id and s.is_active]
    if not class_students or not subjects:
        return []

    session_results = {}
    for result in results:
        if result.session == session:
            session_results.setdefault(result.student_id, []).append(result)

    rows = [
        build_broadsheet_row(student, session_results.get(student.id, []), subjects)
        for student in class_students
    ]
    ranked = []
    for pos, row in assign_positions(rows, lambda r: r.total_average):
        row.position = pos
        ranked.append(row)
    return ranked


def search_rows(rows, text):
    """Filter rows by student name or admission number (case-insensitive)."""
    needle = (text or '').strip().lower()
    if not needle:
        return list(rows)
    return [
        row for row in rows
        if needle in (row.student_name or '').lower() or needle in (row.admission_number or '').lower()
    ]


def subject_analytics(rows, subject):
    """Class statistics for one subject's cumulative scores on a broadsheet."""
    student_data = [{
        'student_name': row.student_name,
        'admission_number': row.admission_number,
        'term_scores': {term: row.term_scores.get(term, {}).get(subject.code, 0) for term in TERMS},
        'cumulative_score': row.cumulative_scores.get(subject.code, 0),
        'grade': grade_for(row.cumulative_scores.get(subject.code, 0)),
    } for row in rows]
    student_data.sort(key=lambda d: d['cumulative_score'], reverse=True)

    scores = [d['cumulative_score'] for d in student_data if d['cumulative_score'] > 0]
    passed = [s for s in scores if s >= PASS_MARK]
    return {
        'subject_name': subject.name,
        'subject_code': subject.code,
        'total_students': len(student_data),
        'attempted_students': len(scores),
        'highest_score': max(scores, default=0),
        'lowest_score': min(scores, default=0),
        'average_score': _mean(scores) if scores else 0,
        'pass_rate': round_half_up(len(passed) / len(scores) * 100) if scores else 0,
        'grade_distribution': grade_distribution(scores),
        'student_data': student_data,
    }
