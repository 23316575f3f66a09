"""
Session gate for Scorebook.
Reads the session on every /api/student/ and /api/teacher/ request and
answers 401 with a redirect hint when the caller may not be there.
"""
import os
import jwt
from flask import current_app, request, jsonify, g

from scorebook.config import config
from scorebook.session import session_store


STUDENT_PREFIX = '/api/student/'
TEACHER_PREFIX = '/api/teacher/'

STUDENT_LOGIN_PAGE = '/'
TEACHER_LOGIN_PAGE = '/teacher-admin'
STUDENT_HOME_PAGE = '/dashboard'
TEACHER_HOME_PAGE = '/teacher-dashboard'


def get_jwt_secret():
    """Get the Supabase JWT secret from environment."""
    secret = os.getenv('SUPABASE_JWT_SECRET')
    if not secret:
        raise RuntimeError('SUPABASE_JWT_SECRET not configured')
    return secret


def validate_token(token):
    """
    Validate a Supabase JWT and return the decoded payload.
    Returns None if invalid.
    """
    try:
        payload = jwt.decode(
            token,
            get_jwt_secret(),
            algorithms=['HS256'],
            audience='authenticated',
        )
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def session_is_valid(current):
    """
    Check a session without calling the backend.

    Token-backed sessions must carry a live access token for the same
    principal. Passcode sessions are trusted as stored.
    """
    if current is None:
        return False
    if not current.uses_token:
        return True
    payload = validate_token(current.credential_proof)
    if payload is None or payload.get('sub') != current.principal_id:
        return False
    if current.is_teacher:
        return payload.get('email', '').lower() == config.teacher_email.lower()
    return True


def home_page(current):
    """Where an authenticated session belongs."""
    return TEACHER_HOME_PAGE if current.is_teacher else STUDENT_HOME_PAGE


def end_session(current):
    """Close the dashboard bound to a session, then drop the cookie."""
    if current is not None:
        current_app.extensions['scorebook']['dashboards'].close(current.sid)
    session_store.clear()


def _unauthorized(message, redirect_to):
    return jsonify({'error': message, 'redirect': redirect_to}), 401


def init_auth(app):
    """
    Register the before_request session hook on the Flask app.
    Call this BEFORE registering blueprints.
    """
    @app.before_request
    def check_session():
        g.session = None

        is_student_route = request.path.startswith(STUDENT_PREFIX)
        is_teacher_route = request.path.startswith(TEACHER_PREFIX)
        if not is_student_route and not is_teacher_route:
            g.session = session_store.read()
            return None

        current = session_store.read()
        login_page = TEACHER_LOGIN_PAGE if is_teacher_route else STUDENT_LOGIN_PAGE

        if not session_is_valid(current):
            if current is not None:
                end_session(current)
            return _unauthorized('Authentication required', login_page)

        if is_teacher_route and not current.is_teacher:
            # a student session on the teacher board is logged out
            end_session(current)
            return _unauthorized('Teacher account required', STUDENT_LOGIN_PAGE)

        if is_student_route and not current.is_student:
            return _unauthorized('Student account required', TEACHER_HOME_PAGE)

        # Attach the session to Flask's g object for use in route handlers
        g.session = current
        return None
