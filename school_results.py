"""
School Results Service

JSON endpoints through which teachers enter subject scores, view class and
student rankings, and approve a class's term results.

Version: 1.0.0
"""

import logging
import os
from datetime import date, datetime
from decimal import Decimal

from dotenv import load_dotenv
from flask import Flask, jsonify, request, session
from flask_wtf.csrf import CSRFError, CSRFProtect, generate_csrf
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash

import aggregation
import result_approval
import score_entry
from db import db_connection, db_execute, init_db, verify_required_db_guards
from rosters import Caller
from score_errors import ScoreError
from scoring import SCORE_COMPONENTS

load_dotenv()


def _env_flag(name, default):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes')


ALLOW_INSECURE_DEFAULTS = _env_flag('ALLOW_INSECURE_DEFAULTS', '')
secret_key = os.environ.get('SECRET_KEY')
if not secret_key:
    if ALLOW_INSECURE_DEFAULTS:
        # Explicitly opt-in fallback for local/dev only.
        secret_key = 'dev-secret-key-change-me'
    else:
        raise RuntimeError("SECRET_KEY is required in production. Set SECRET_KEY or enable ALLOW_INSECURE_DEFAULTS for local development.")
if not ALLOW_INSECURE_DEFAULTS and len(secret_key) < 32:
    raise RuntimeError("SECRET_KEY is too short. Use at least 32 characters in production.")

# Set up logging
LOG_FILE = os.environ.get('LOG_FILE', 'app.log').strip()
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').strip().upper() or 'INFO'
logging.basicConfig(filename=LOG_FILE or None, level=getattr(logging, LOG_LEVEL, logging.INFO),
                    format='%(asctime)s - %(levelname)s - %(message)s')
if ALLOW_INSECURE_DEFAULTS:
    logging.warning("ALLOW_INSECURE_DEFAULTS is enabled. Development-only fallbacks may be active.")

app = Flask(__name__)
app.secret_key = secret_key
app.config['WTF_CSRF_TIME_LIMIT'] = None

# Initialize CSRF Protection
csrf = CSRFProtect(app)

# Initialize database (can be disabled when schema is managed by migrations).
RUN_STARTUP_DDL = _env_flag('RUN_STARTUP_DDL', '1')
if RUN_STARTUP_DDL:
    init_db()
else:
    logging.warning("RUN_STARTUP_DDL is disabled. Ensure schema is already migrated before startup.")
if _env_flag('VERIFY_DB_GUARDS', '1'):
    verify_required_db_guards()

# Per-request statement timeout passed to the core; unset keeps DB_STATEMENT_TIMEOUT_MS.
REQUEST_TIMEOUT_MS = int(os.environ.get('REQUEST_TIMEOUT_MS', '0') or 0) or None


class Unauthenticated(ScoreError):
    kind = 'unauthenticated'
    status_code = 401
    default_message = 'Unauthorized.'


def resolve_caller():
    """Identity of the logged-in user from the session, or raise Unauthenticated."""
    user_id = session.get('user_id')
    if not user_id:
        raise Unauthenticated()
    return Caller(id=user_id, role=session.get('role'), school=session.get('school_id'))


def to_json_value(value):
    """Decimals become numbers rounded to 2 places; dates become ISO strings."""
    if isinstance(value, Decimal):
        return float(round(value, 2))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    return value


def ok_response(payload=None, status=200):
    body = {'ok': True}
    body.update(to_json_value(payload or {}))
    return jsonify(body), status


def request_data():
    return request.get_json(silent=True) or request.form.to_dict()


def score_components(data):
    return {name: data.get(name) for name in SCORE_COMPONENTS}


def get_user(email):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(
            c,
            '''SELECT id, password_hash, user_role, school
               FROM users
               WHERE LOWER(email) = LOWER(?) AND status = 'active'
               LIMIT 1''',
            (email,),
        )
        row = c.fetchone()
    if not row:
        return None
    return {'id': row[0], 'password_hash': row[1], 'role': row[2], 'school': row[3]}


@app.errorhandler(ScoreError)
def score_error(error):
    return jsonify({'ok': False, 'error': error.kind, 'message': error.message}), error.status_code


@app.errorhandler(CSRFError)
def csrf_error(error):
    """Handle CSRF token errors."""
    return jsonify({'ok': False, 'error': 'csrf', 'message': 'Form token expired/invalid. Please retry.'}), 400


@app.errorhandler(Exception)
def unexpected_error(error):
    if isinstance(error, HTTPException):
        return jsonify({'ok': False, 'message': error.description}), error.code
    logging.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({'ok': False, 'message': 'Unable to process request.'}), 500


@app.route('/')
def home():
    return jsonify({'ok': True, 'message': 'School Results Service'})


@app.route('/health')
def health_check():
    return jsonify({'status': 'ok'})


@app.route('/csrf-token')
def csrf_token():
    return jsonify({'ok': True, 'csrf_token': generate_csrf()})


@app.route('/login', methods=['POST'])
def login():
    data = request_data()
    email = str(data.get('email', '')).strip().lower()
    password = str(data.get('password', ''))
    if not email or not password:
        return jsonify({'ok': False, 'message': 'Email and password are required.'}), 400
    user = get_user(email)
    if not user or not check_password_hash(user['password_hash'], password):
        logging.warning("Failed login for %s", email)
        return jsonify({'ok': False, 'message': 'Invalid email or password.'}), 401
    session.clear()
    session['user_id'] = user['id']
    session['role'] = user['role']
    session['school_id'] = user['school']
    return ok_response({'user': {'id': user['id'], 'role': user['role'], 'school': user['school']}})


@app.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return ok_response()


@app.route('/teacher/student-scores', methods=['POST'])
def teacher_save_score():
    caller = resolve_caller()
    data = request_data()
    result = score_entry.save_score(
        caller,
        data.get('student_id'),
        data.get('class_id'),
        data.get('subject_id'),
        data.get('school_session'),
        data.get('school_term'),
        score_components(data),
        timeout_ms=REQUEST_TIMEOUT_MS,
    )
    return ok_response(result)


@app.route('/teacher/student-scores', methods=['PATCH'])
def teacher_update_score():
    caller = resolve_caller()
    data = request_data()
    result = score_entry.update_score(
        data.get('score_id'), score_components(data), caller=caller, timeout_ms=REQUEST_TIMEOUT_MS
    )
    return ok_response(result)


@app.route('/teacher/student-scores', methods=['DELETE'])
def teacher_remove_score():
    caller = resolve_caller()
    data = request_data()
    score_id = data.get('score_id') or request.args.get('score_id')
    result = score_entry.remove_score(score_id, caller=caller, timeout_ms=REQUEST_TIMEOUT_MS)
    return ok_response(result)


@app.route('/teacher/class-subject-students')
def teacher_class_subject_students():
    caller = resolve_caller()
    class_id = request.args.get('class_id', '').strip()
    subject_id = request.args.get('subject_id', '').strip()
    school_session = request.args.get('school_session', '').strip() or None
    school_term = request.args.get('school_term', '').strip() or None
    students = aggregation.get_cohort_view(
        class_id, subject_id, school_session, school_term, caller=caller, timeout_ms=REQUEST_TIMEOUT_MS
    )
    return ok_response({
        'students': students,
        'school_session': school_session,
        'school_term': school_term,
    })


@app.route('/teacher/student-subjects')
def teacher_student_subjects():
    caller = resolve_caller()
    sheet = aggregation.get_student_score_sheet(
        request.args.get('student_id', '').strip(),
        request.args.get('class_id', '').strip(),
        request.args.get('school_session', '').strip() or None,
        request.args.get('school_term', '').strip() or None,
        caller=caller,
        timeout_ms=REQUEST_TIMEOUT_MS,
    )
    return ok_response(sheet)


@app.route('/teacher/result-approval', methods=['GET'])
def teacher_check_approval():
    caller = resolve_caller()
    status = result_approval.check_approval(
        request.args.get('class_id', ''),
        request.args.get('school_session', ''),
        request.args.get('school_term', ''),
        caller,
        timeout_ms=REQUEST_TIMEOUT_MS,
    )
    return ok_response(status)


@app.route('/teacher/result-approval', methods=['POST'])
def teacher_approve_results():
    caller = resolve_caller()
    data = request_data()
    result = result_approval.approve(
        data.get('class_id'),
        data.get('school_session'),
        data.get('school_term'),
        caller,
        timeout_ms=REQUEST_TIMEOUT_MS,
    )
    return ok_response(result)


if __name__ == '__main__':
    app.run(debug=_env_flag('FLASK_DEBUG', ''))
