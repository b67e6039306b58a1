"""
Result Engine Service

Flask application exposing score computation, result entry and approval,
class rankings and session broadsheets as JSON for the school dashboards.
"""

from flask import Flask, request, jsonify
from flask_wtf import FlaskForm
from wtforms import StringField, FloatField, IntegerField, SelectField, validators
from flask_wtf.csrf import CSRFProtect, CSRFError

import os
import logging

from dotenv import load_dotenv

from broadsheet import build_broadsheet, search_rows, subject_analytics
from grading import (
    GRADING_SCALE, grade_details, compute_result, recommendation_for,
    calculate_gpa, performance_level, pass_status,
)
from ranking import rank_results, class_positions, subject_positions_for_student
from records import (
    STATUSES, TEST_MAX, EXAM_MAX,
    AssessmentScore, Student, Subject,
    ResultLockedError, ResultNotFoundError, StatusTransitionError, ValidationError,
    check_component, normalize_term, term_sort_value,
)
from store import ResultStore

load_dotenv()

ALLOW_INSECURE_DEFAULTS = os.environ.get('ALLOW_INSECURE_DEFAULTS', '').strip().lower() in ('1', 'true', 'yes')
LOG_FILE = os.environ.get('LOG_FILE', 'app.log').strip() or 'app.log'
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').strip().upper() or 'INFO'

# Set up logging
logging.basicConfig(filename=LOG_FILE, level=getattr(logging, LOG_LEVEL, logging.INFO),
                    format='%(asctime)s - %(levelname)s - %(message)s')
if ALLOW_INSECURE_DEFAULTS:
    logging.warning("ALLOW_INSECURE_DEFAULTS is enabled. Development-only fallbacks may be active.")

csrf = CSRFProtect()


def load_secret_key():
    secret_key = os.environ.get('SECRET_KEY')
    if not secret_key:
        if ALLOW_INSECURE_DEFAULTS:
            # Explicitly opt-in fallback for local/dev only.
            secret_key = 'dev-secret-key-change-me'
        else:
            raise RuntimeError("SECRET_KEY is required in production. Set SECRET_KEY or enable ALLOW_INSECURE_DEFAULTS for local development.")
    if not ALLOW_INSECURE_DEFAULTS and len(secret_key) < 32:
        raise RuntimeError("SECRET_KEY is too short. Use at least 32 characters in production.")
    return secret_key


def ordinal(value):
    """Return ordinal string for an integer (e.g., 1 -> 1st)."""
    try:
        n = int(value)
    except (TypeError, ValueError):
        return str(value)
    abs_n = abs(n)
    if 10 <= (abs_n % 100) <= 20:
        suffix = 'th'
    else:
        suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(abs_n % 10, 'th')
    return f"{n}{suffix}"


# ==================== FORMS ====================

class ScoreForm(FlaskForm):
    test1 = FloatField('Test 1', [validators.InputRequired(), validators.NumberRange(min=0, max=TEST_MAX)])
    test2 = FloatField('Test 2', [validators.InputRequired(), validators.NumberRange(min=0, max=TEST_MAX)])
    exam = FloatField('Exam', [validators.InputRequired(), validators.NumberRange(min=0, max=EXAM_MAX)])


class AssessmentForm(ScoreForm):
    student_id = StringField('Student', [validators.InputRequired(), validators.Length(max=64)])
    subject_id = StringField('Subject', [validators.InputRequired(), validators.Length(max=64)])
    class_id = StringField('Class', [validators.InputRequired(), validators.Length(max=64)])
    term = StringField('Term', [validators.InputRequired()])
    session = StringField('Session', [validators.InputRequired(), validators.Length(max=20)])


class StatusForm(FlaskForm):
    student_id = StringField('Student', [validators.InputRequired()])
    subject_id = StringField('Subject', [validators.InputRequired()])
    term = StringField('Term', [validators.InputRequired()])
    session = StringField('Session', [validators.InputRequired()])
    status = SelectField('Status', choices=[(s, s.title()) for s in STATUSES])


class StudentForm(FlaskForm):
    id = StringField('Student ID', [validators.InputRequired(), validators.Length(max=64)])
    name = StringField('Name', [validators.InputRequired(), validators.Length(max=120)])
    admission_number = StringField('Admission Number', [validators.InputRequired(), validators.Length(max=64)])
    class_id = StringField('Class', [validators.InputRequired(), validators.Length(max=64)])


class SubjectForm(FlaskForm):
    id = StringField('Subject ID', [validators.InputRequired(), validators.Length(max=64)])
    code = StringField('Code', [validators.InputRequired(), validators.Length(max=16)])
    name = StringField('Name', [validators.InputRequired(), validators.Length(max=120)])
    credit_unit = IntegerField('Credit Unit', [validators.Optional(), validators.NumberRange(min=1, max=10)], default=1)


def form_errors_response(form):
    logging.warning("Rejected %s: %s", request.path, form.errors)
    return jsonify({'error': 'Invalid input.', 'fields': form.errors}), 400


def band_to_dict(band):
    return {
        'grade': band.grade,
        'min': band.min,
        'max': band.max,
        'point': band.point,
        'description': band.description,
    }


# ==================== APP ====================

def create_app(store=None):
    app = Flask(__name__)
    app.secret_key = load_secret_key()
    app.config['WTF_CSRF_TIME_LIMIT'] = None
    csrf.init_app(app)

    store = store if store is not None else ResultStore()

    @app.errorhandler(CSRFError)
    def csrf_error(error):
        logging.warning("CSRF validation failed on %s: %s", request.path, error.description)
        return jsonify({'error': 'Your session expired or the form is invalid. Please retry.'}), 400

    @app.errorhandler(ValidationError)
    def validation_error(error):
        return jsonify({'error': str(error), 'field': error.field_name}), 400

    @app.errorhandler(ResultNotFoundError)
    def result_not_found(error):
        return jsonify({'error': 'Result not found.'}), 404

    @app.errorhandler(ResultLockedError)
    def result_locked(error):
        return jsonify({'error': str(error)}), 409

    @app.errorhandler(StatusTransitionError)
    def status_transition(error):
        return jsonify({'error': str(error)}), 409

    @app.route('/grading-scale')
    def grading_scale():
        return jsonify([band_to_dict(band) for band in GRADING_SCALE])

    @app.route('/results/compute', methods=['POST'])
    def results_compute():
        form = ScoreForm()
        if not form.validate_on_submit():
            return form_errors_response(form)
        computed = compute_result(
            check_component(form.test1.data, 'test1', TEST_MAX),
            check_component(form.test2.data, 'test2', TEST_MAX),
            check_component(form.exam.data, 'exam', EXAM_MAX),
        )
        band = grade_details(computed['total'])
        return jsonify({
            'total': computed['total'],
            'grade': computed['grade'],
            'point': band.point,
            'description': band.description,
        })

    @app.route('/results', methods=['POST'])
    def results_save():
        form = AssessmentForm()
        if not form.validate_on_submit():
            return form_errors_response(form)
        result = store.save_assessment(AssessmentScore(
            student_id=form.student_id.data.strip(),
            subject_id=form.subject_id.data.strip(),
            class_id=form.class_id.data.strip(),
            term=form.term.data,
            session=form.session.data.strip(),
            test1=form.test1.data,
            test2=form.test2.data,
            exam=form.exam.data,
        ))
        return jsonify(result.to_dict()), 201

    @app.route('/results/status', methods=['POST'])
    def results_status():
        form = StatusForm()
        if not form.validate_on_submit():
            return form_errors_response(form)
        key = (
            form.student_id.data.strip(),
            form.subject_id.data.strip(),
            form.term.data,
            form.session.data.strip(),
        )
        result = store.advance_status(key, form.status.data)
        return jsonify(result.to_dict())

    @app.route('/students', methods=['POST'])
    def students_add():
        form = StudentForm()
        if not form.validate_on_submit():
            return form_errors_response(form)
        student = store.add_student(Student(
            id=form.id.data.strip(),
            name=' '.join(form.name.data.split()),
            admission_number=form.admission_number.data.strip(),
            class_id=form.class_id.data.strip(),
            is_active=request.form.get('is_active', 'yes').strip().lower() not in ('0', 'false', 'no', 'off'),
        ))
        logging.info("Student registered: %s (%s)", student.id, student.class_id)
        return jsonify({'id': student.id, 'class_id': student.class_id}), 201

    @app.route('/subjects', methods=['POST'])
    def subjects_add():
        form = SubjectForm()
        if not form.validate_on_submit():
            return form_errors_response(form)
        subject = store.add_subject(Subject(
            id=form.id.data.strip(),
            code=form.code.data.strip().upper(),
            name=form.name.data.strip(),
            credit_unit=form.credit_unit.data or 1,
        ))
        return jsonify({'id': subject.id, 'code': subject.code}), 201

    @app.route('/classes/<class_id>/rankings')
    def class_rankings(class_id):
        term = request.args.get('term', '').strip()
        results = store.results(
            class_id=class_id,
            subject_id=request.args.get('subject_id', '').strip() or None,
            term=normalize_term(term) if term else None,
            session=request.args.get('session', '').strip() or None,
        )
        entries = sorted(
            rank_results(results),
            key=lambda e: (e.result.session, term_sort_value(e.result.term), e.result.subject_id, e.position),
        )
        out = []
        for entry in entries:
            data = entry.to_dict()
            data['position_label'] = ordinal(entry.position)
            out.append(data)
        return jsonify(out)

    @app.route('/students/<student_id>/report-card')
    def student_report_card(student_id):
        term = normalize_term(request.args.get('term', ''))
        session_name = request.args.get('session', '').strip()
        if not session_name:
            raise ValidationError("session is required.", 'session')
        mine = store.results(student_id=student_id, term=term, session=session_name)
        if not mine:
            raise ResultNotFoundError(student_id)
        class_id = mine[0].class_id
        class_results = store.results(class_id=class_id, term=term, session=session_name)
        subject_positions = subject_positions_for_student(class_results, student_id, term, session_name)
        position = class_positions(class_results).get(((class_id, term, session_name), student_id))

        subjects = []
        gpa_entries = []
        for result in sorted(mine, key=lambda r: r.subject_id):
            subject = store.get_subject(result.subject_id)
            credit_unit = subject.credit_unit if subject else 1
            gpa_entries.append((result.total_score, credit_unit))
            sp = subject_positions.get(result.subject_id, {})
            subjects.append({
                'subject_id': result.subject_id,
                'subject_name': subject.name if subject else result.subject_id,
                'total_score': result.total_score,
                'grade': result.grade,
                'remark': grade_details(result.total_score).description,
                'status': pass_status(result.total_score),
                'position': ordinal(sp['pos']) if sp else '',
                'class_size': sp.get('size', 0),
            })
        gpa = calculate_gpa(gpa_entries)
        overall_grade = grade_details(position['average']).grade
        return jsonify({
            'student_id': student_id,
            'class_id': class_id,
            'term': term,
            'session': session_name,
            'subjects': subjects,
            'average': position['average'],
            'grade': overall_grade,
            'position': ordinal(position['pos']),
            'class_size': position['size'],
            'gpa': round(gpa, 2),
            'performance': performance_level(gpa),
            'recommendation': recommendation_for(overall_grade),
        })

    @app.route('/classes/<class_id>/broadsheet')
    def class_broadsheet(class_id):
        session_name = request.args.get('session', '').strip()
        if not session_name:
            raise ValidationError("session is required.", 'session')
        rows = build_broadsheet(store.students(), store.results(), store.subjects(), class_id, session_name)
        rows = search_rows(rows, request.args.get('q', ''))
        out = []
        for row in rows:
            data = row.to_dict()
            data['position_label'] = ordinal(row.position)
            data['remark'] = recommendation_for(row.grade)['message']
            out.append(data)
        return jsonify(out)

    @app.route('/classes/<class_id>/broadsheet/subjects/<subject_id>')
    def class_subject_analytics(class_id, subject_id):
        session_name = request.args.get('session', '').strip()
        if not session_name:
            raise ValidationError("session is required.", 'session')
        subject = store.get_subject(subject_id)
        if subject is None:
            return jsonify({'error': 'Subject not found.'}), 404
        rows = build_broadsheet(store.students(), store.results(), store.subjects(), class_id, session_name)
        return jsonify(subject_analytics(rows, subject))

    return app


app = create_app()

if __name__ == '__main__':
    app.run(debug=ALLOW_INSECURE_DEFAULTS)
