"""
CSRF Protection
Double-submit token pattern: header, cookie and server-side session copy must
all match. Enforcement is behind CSRF_ENFORCE; otherwise failures are only logged.
"""

import os
import secrets
import logging
from functools import wraps
from flask import request, jsonify, session, make_response

from cookies import CSRF_COOKIE, set_csrf_cookie

CSRF_HEADER = 'X-CSRF-Token'
MUTATION_METHODS = ('POST', 'PUT', 'PATCH', 'DELETE')

def generate_csrf_token():
    """256-bit URL-safe token"""
    return secrets.token_urlsafe(32)

def get_csrf_enforcement():
    return os.environ.get('CSRF_ENFORCE', 'false').lower() == 'true'

def validate_csrf_token(session_store, logger):
    """
    Validate the request against the stored token.
    Returns (is_valid, error_code, error_message)
    """
    csrf_header = request.headers.get(CSRF_HEADER)
    csrf_cookie = request.cookies.get(CSRF_COOKIE)

    session_id = session.get('session_id')
    session_data = session_store.get_session(session_id) if session_id else None
    stored_csrf = session_data.get('csrf') if session_data else None

    logger.info(
        f"csrf_validate session_id={session_id} header_present={bool(csrf_header)} "
        f"cookie_present={bool(csrf_cookie)} store_present={bool(stored_csrf)}"
    )

    if not csrf_header:
        return False, 'CSRF_MISSING', 'CSRF token missing'
    if not csrf_cookie:
        return False, 'CSRF_COOKIE_MISSING', 'CSRF cookie missing'
    if not secrets.compare_digest(csrf_header, csrf_cookie):
        return False, 'CSRF_INVALID', 'CSRF validation failed'
    if not stored_csrf or not secrets.compare_digest(csrf_header, stored_csrf):
        return False, 'CSRF_INVALID', 'CSRF validation failed'

    return True, None, None

def csrf_protect(session_store, validate_auth_session_func):
    """
    Decorator for authenticated mutations. Unauthenticated requests pass
    through so the route can answer 401 itself.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            logger = logging.getLogger(__name__)

            if request.method not in MUTATION_METHODS:
                return f(*args, **kwargs)

            user_id, _ = validate_auth_session_func()
            if not user_id:
                return f(*args, **kwargs)

            is_valid, error_code, error_message = validate_csrf_token(session_store, logger)
            if is_valid:
                return f(*args, **kwargs)

            session_id = session.get('session_id', 'unknown')
            if get_csrf_enforcement():
                logger.warning(f"csrf_fail session_id={session_id} reason={error_code}")
                response = jsonify({'ok': False, 'code': error_code, 'error': error_message})
                response.headers['Cache-Control'] = 'no-store'
                return response, 403

            logger.info(f"csrf_shadow_mode would_block=true reason={error_code} session_id={session_id}")
            return f(*args, **kwargs)

        return decorated_function
    return decorator

def issue_csrf_token(session_store, session_id, response):
    """Mint a token, store it with the session and set the cookie"""
    csrf_token = store_csrf_token(session_store, session_id)
    set_csrf_cookie(response, csrf_token)
    return csrf_token

def store_csrf_token(session_store, session_id):
    csrf_token = generate_csrf_token()
    session_data = session_store.get_session(session_id) if session_id else None
    if session_data is not None:
        session_data['csrf'] = csrf_token
        session_store.update_session(session_id, session_data)
    return csrf_token

def create_csrf_endpoints(app, session_store, validate_auth_session):
    """Register GET /api/auth/csrf for token rotation"""

    @app.route('/api/auth/csrf', methods=['GET'])
    def rotate_csrf_token():
        try:
            user_id, error_code = validate_auth_session()
            if not user_id:
                return jsonify({
                    'ok': False,
                    'error': 'Authentication required',
                    'code': error_code or 'AUTH_REQUIRED'
                }), 401

            csrf_token = store_csrf_token(session_store, session.get('session_id'))
            response = make_response(jsonify({'ok': True, 'csrf': csrf_token}))
            set_csrf_cookie(response, csrf_token)
            response.headers['Cache-Control'] = 'no-store'

            app.logger.info(f"csrf_rotate user_id={user_id} token_length={len(csrf_token)}")
            return response, 200

        except Exception as e:
            app.logger.error(f"CSRF token rotation error: {e}")
            return jsonify({
                'ok': False,
                'error': 'CSRF token rotation failed',
                'code': 'INTERNAL_ERROR'
            }), 500

    return rotate_csrf_token
