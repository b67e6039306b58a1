"""
Score aggregation and grade lookup.

Test and exam components arrive pre-scaled (out of 20, 20 and 60) and are
summed directly into a total out of 100.
"""

import math
from collections import namedtuple

from records import ComputedResult, ValidationError, validate_assessment, STATUSES, STATUS_DRAFT


GradeBand = namedtuple('GradeBand', 'grade min max point description')

# Evaluated high to low; first band whose minimum is reached wins.
GRADING_SCALE = (
    GradeBand('A', 80, 100, 5, 'Excellent'),
    GradeBand('B', 70, 79, 4, 'Very Good'),
    GradeBand('C', 60, 69, 3, 'Good'),
    GradeBand('D', 50, 59, 2, 'Satisfactory'),
    GradeBand('E', 40, 49, 1, 'Poor'),
    GradeBand('F', 0, 39, 0, 'Fail'),
)

GRADES = tuple(band.grade for band in GRADING_SCALE)

PASS_MARK = 40

PERFORMANCE_RECOMMENDATIONS = {
    'A': {
        'message': "Outstanding performance! Keep up the excellent work.",
        'suggestions': [
            "Continue maintaining this excellent standard",
            "Consider taking on leadership roles in class projects",
            "Explore advanced topics to further challenge yourself",
            "Mentor classmates who may need assistance",
        ],
    },
    'B': {
        'message': "Very good work! You're performing well above average.",
        'suggestions': [
            "Review areas where you lost marks to reach excellence",
            "Increase practice time for challenging topics",
            "Participate more actively in class discussions",
            "Set specific goals to reach grade A in the next assessment",
        ],
    },
    'C': {
        'message': "Good performance with room for improvement.",
        'suggestions': [
            "Identify and focus on your weaker subject areas",
            "Create a structured study schedule",
            "Seek additional help from teachers for difficult concepts",
            "Form study groups with classmates",
        ],
    },
    'D': {
        'message': "Satisfactory but needs significant improvement.",
        'suggestions': [
            "Schedule extra tutoring sessions with subject teachers",
            "Break down study materials into smaller, manageable sections",
            "Practice past questions regularly",
            "Attend all classes and participate actively",
        ],
    },
    'E': {
        'message': "Poor performance requiring immediate attention.",
        'suggestions': [
            "Meet with class supervisor to discuss academic challenges",
            "Attend all available extra classes and tutorials",
            "Consider changing study methods and techniques",
            "Seek help from parents for additional home support",
        ],
    },
    'F': {
        'message': "Failing grade - urgent intervention required.",
        'suggestions': [
            "Immediate meeting with parents and class supervisor required",
            "Enroll in intensive remedial classes",
            "Complete diagnostic assessment to identify learning gaps",
            "Consider repeating the academic term if necessary",
        ],
    },
}


def round_half_up(value):
    """Round to the nearest integer with .5 going up (79.5 -> 80)."""
    value = float(value)
    if not math.isfinite(value):
        raise ValidationError(f"Score must be a finite number, got {value!r}.", 'score')
    return int(math.floor(value + 0.5))


def grade_details(score):
    """Get the grading band for a score out of 100."""
    try:
        score = float(score)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid score: {score!r}.", 'score') from None
    if not math.isfinite(score) or score < 0 or score > 100:
        raise ValidationError(f"Score must be between 0 and 100, got {score:g}.", 'score')
    for band in GRADING_SCALE:
        if score >= band.min:
            return band
    return GRADING_SCALE[-1]


def grade_for(score):
    """Get letter grade from score."""
    return grade_details(score).grade


def grade_rank(grade):
    """F=0 up to A=5, for comparing grades."""
    try:
        return len(GRADES) - 1 - GRADES.index(grade)
    except ValueError:
        raise ValidationError(f"Unknown grade: {grade!r}.", 'grade') from None


def pass_status(score):
    """Get pass/fail status from score."""
    return 'Pass' if float(score or 0) >= PASS_MARK else 'Fail'


def compute_result(test1, test2, exam):
    """
    Sum the three assessment components into a total and grade.

    Components are not re-validated here; use score_assessment (or
    validate_assessment) first when inputs come from outside.
    """
    total = round_half_up(test1 + test2 + exam)
    return {'total': total, 'grade': grade_for(total)}


def score_assessment(assessment, status=STATUS_DRAFT):
    """Validate one AssessmentScore and compute its result record."""
    if status not in STATUSES:
        raise ValidationError(f"Unknown result status: {status!r}.", 'status')
    checked = validate_assessment(assessment)
    computed = compute_result(checked.test1, checked.test2, checked.exam)
    return ComputedResult(
        student_id=checked.student_id,
        subject_id=checked.subject_id,
        class_id=checked.class_id,
        term=checked.term,
        session=checked.session,
        total_score=computed['total'],
        grade=computed['grade'],
        status=status,
    )


def calculate_gpa(entries):
    """
    Credit-weighted grade point average.

    entries is an iterable of (total_score, credit_unit) pairs; a falsy credit
    unit counts as 1.
    """
    total_points = 0
    total_credits = 0
    for total_score, credit_unit in entries:
        credit_unit = credit_unit or 1
        total_points += grade_details(total_score).point * credit_unit
        total_credits += credit_unit
    if not total_credits:
        return 0.0
    return total_points / total_credits


def performance_level(gpa):
    if gpa >= 4.5:
        return {'level': 'Excellent', 'description': 'Outstanding academic performance'}
    if gpa >= 3.5:
        return {'level': 'Very Good', 'description': 'Above average performance'}
    if gpa >= 2.5:
        return {'level': 'Good', 'description': 'Satisfactory performance'}
    if gpa >= 1.5:
        return {'level': 'Fair', 'description': 'Below average performance'}
    return {'level': 'Poor', 'description': 'Requires significant improvement'}


def recommendation_for(grade):
    if grade not in PERFORMANCE_RECOMMENDATIONS:
        raise ValidationError(f"Unknown grade: {grade!r}.", 'grade')
    item = PERFORMANCE_RECOMMENDATIONS[grade]
    return {'message': item['message'], 'suggestions': list(item['suggestions'])}


def grade_distribution(scores):
    """Count scores per grade; every grade is present in the result."""
    counts = {grade: 0 for grade in GRADES}
    for score in scores:
        counts[grade_for(score)] += 1
    return counts
