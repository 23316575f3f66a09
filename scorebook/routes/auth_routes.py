"""
Auth Routes for Scorebook.
Student registration and login (display-name and passcode schemes), the
fixed teacher login, logout, and the session check the frontend uses to
decide where to send the user.
"""
import logging
from flask import Blueprint, request, jsonify

from scorebook.auth import (
    STUDENT_LOGIN_PAGE, TEACHER_LOGIN_PAGE, end_session, home_page, session_is_valid,
)
from scorebook.config import GENDERS, SUBJECTS, TERMS, TESTS, config
from scorebook.errors import ScorebookError, ValidationError
from scorebook.services import get_dashboards, get_identity, get_store
from scorebook.services.accounts import (
    birth_days, birth_months, birth_years, format_birth_date, login_passcode,
    login_student, login_teacher, register_passcode, register_student,
)
from scorebook.session import session_store

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


def _payload():
    return request.get_json(silent=True) or {}


def _error(e):
    return jsonify(e.to_dict()), e.status_code


def _start_session(result, status=200):
    """Replace any existing session with the one just proven."""
    previous = session_store.read()
    if previous is not None:
        get_dashboards().close(previous.sid)
    current = session_store.write(result.principal_id, result.credential, result.scheme)
    return jsonify({
        "success": True,
        "session": current.to_dict(),
        "redirect": home_page(current),
    }), status


def _birth_date(data):
    """birth_date from the three selects, or a ready YYYY-MM-DD string."""
    year, month, day = data.get('birth_year'), data.get('birth_month'), data.get('birth_day')
    if year and month and day:
        try:
            return format_birth_date(year, month, day)
        except (TypeError, ValueError):
            raise ValidationError("Please choose a valid birth date.")
    return data.get('birth_date') or None


@auth_bp.route('/api/auth/register', methods=['POST'])
def register():
    """Register with display name, password, birth date and gender."""
    data = _payload()
    try:
        result = register_student(
            get_store(), get_identity(),
            name=data.get('name', '').strip(),
            password=data.get('password', ''),
            birth_year=data.get('birth_year'),
            birth_month=data.get('birth_month'),
            birth_day=data.get('birth_day'),
            gender=data.get('gender'),
        )
    except ScorebookError as e:
        return _error(e)
    return _start_session(result, status=201)


@auth_bp.route('/api/auth/login', methods=['POST'])
def login():
    """
    Log in with display name and password.
    Birth date and gender narrow the candidate profiles when given.
    """
    data = _payload()
    try:
        result = login_student(
            get_store(), get_identity(),
            name=data.get('name', '').strip(),
            password=data.get('password', ''),
            birth_date=_birth_date(data),
            gender=data.get('gender') or None,
        )
    except ScorebookError as e:
        return _error(e)
    return _start_session(result)


@auth_bp.route('/api/auth/passcode/register', methods=['POST'])
def passcode_register():
    """Register with a chosen user ID and passcode."""
    data = _payload()
    try:
        result = register_passcode(
            get_store(),
            user_id=data.get('user_id', ''),
            name=data.get('name', '').strip(),
            passcode=data.get('passcode', ''),
        )
    except ScorebookError as e:
        return _error(e)
    return _start_session(result, status=201)


@auth_bp.route('/api/auth/passcode/login', methods=['POST'])
def passcode_login():
    data = _payload()
    try:
        result = login_passcode(get_store(), data.get('user_id', ''), data.get('passcode', ''))
    except ScorebookError as e:
        return _error(e)
    return _start_session(result)


@auth_bp.route('/api/auth/teacher/login', methods=['POST'])
def teacher_login():
    """Teacher login. The user name field is fixed on the form."""
    data = _payload()
    try:
        result = login_teacher(
            get_identity(),
            data.get('username', config.teacher_user_name),
            data.get('password', ''),
        )
    except ScorebookError as e:
        return _error(e)
    return _start_session(result)


@auth_bp.route('/api/auth/logout', methods=['POST'])
def logout():
    """Tear down the dashboard, sign out of the identity service, drop the session."""
    current = session_store.read()
    redirect_to = STUDENT_LOGIN_PAGE
    if current is not None:
        redirect_to = TEACHER_LOGIN_PAGE if current.is_teacher else STUDENT_LOGIN_PAGE
        if current.uses_token:
            get_identity().sign_out({
                "uid": current.principal_id,
                "access_token": current.credential_proof,
            })
        logger.info("Signed out: %s", current.principal_id)
    end_session(current)
    return jsonify({"success": True, "redirect": redirect_to})


@auth_bp.route('/api/auth/session', methods=['GET'])
def session_status():
    """Who is signed in, and which dashboard they belong on."""
    current = session_store.read()
    if not session_is_valid(current):
        if current is not None:
            end_session(current)
        return jsonify({"authenticated": False, "session": None, "redirect": None})
    return jsonify({
        "authenticated": True,
        "session": current.to_dict(),
        "redirect": home_page(current),
    })


@auth_bp.route('/api/auth/form-options', methods=['GET'])
def form_options():
    """Select options for the login/register and grade forms."""
    year = request.args.get('birth_year')
    month = request.args.get('birth_month')
    try:
        days = birth_days(year, month)
    except ValueError:
        return jsonify({"error": "Invalid birth year or month"}), 400
    return jsonify({
        "years": birth_years(),
        "months": birth_months(),
        "days": days,
        "genders": GENDERS,
        "tests": TESTS,
        "subjects": SUBJECTS,
        "terms": TERMS,
    })
