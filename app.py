"""
CoachFit Backend
Fitness-coaching platform API: session auth, onboarding routing, cohort invites and admin console
Single-application-module layout; helper modules receive db/models as arguments
"""

# ============================================================================
# IMPORTS AND CONFIGURATION
# ============================================================================
import os
import hashlib
import logging
import requests
from datetime import datetime, timedelta
from flask import Flask, request, jsonify, session, make_response, redirect, g
from flask_sqlalchemy import SQLAlchemy
from flask_session import Session
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_cors import CORS
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash
from werkzeug.middleware.proxy_fix import ProxyFix
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, InvalidHashError
from pydantic import ValidationError

from rate_limit import login_rate_limiter
from cookies import set_session_cookie, clear_all_auth_cookies
from redis_session_store import get_session_store
from csrf_protection import csrf_protect, create_csrf_endpoints, issue_csrf_token
from permissions import Role, is_admin, is_client, dashboard_route_for
from onboarding import (
    DASHBOARD_ROUTE, UserNotFoundError, resolve_onboarding,
    read_onboarding_facts, account_origin
)
from audit_log import log_audit_action, list_audit_actions
from schemas import SignupSchema, LoginSchema, UpdateRolesSchema
from backend.env_config import get_env_config

# ============================================================================
# APPLICATION SETUP
# ============================================================================
app = Flask(__name__)

# Correct scheme/host behind the hosting proxy
app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)


class Config:
    """Environment-driven configuration"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'coachfit-dev-secret-key-change-in-production'

    DATABASE_URL = os.environ.get('DATABASE_URL')
    if DATABASE_URL and DATABASE_URL.startswith('postgres://'):
        DATABASE_URL = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = DATABASE_URL or 'sqlite:///coachfit_dev.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Flask-Session only carries the server-side session id
    SESSION_TYPE = os.environ.get('SESSION_TYPE', 'filesystem')
    SESSION_PERMANENT = True
    SESSION_USE_SIGNER = True
    SESSION_KEY_PREFIX = 'coachfit:'
    SESSION_FILE_DIR = os.environ.get('SESSION_FILE_DIR', '/tmp/coachfit_flask_sessions')
    SESSION_COOKIE_NAME = 'flask_session'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = os.environ.get('SESSION_SECURE', 'true').lower() == 'true'
    PERMANENT_SESSION_LIFETIME = timedelta(minutes=30)

    SESSION_IDLE_MIN = int(os.environ.get('SESSION_IDLE_MIN', '30'))
    SESSION_RENEWAL_ENABLED = os.environ.get('SESSION_RENEWAL_ENABLED', '1') == '1'

    RATELIMIT_ENABLED = os.environ.get('RATELIMIT_ENABLED', '1') == '1'
    AUTH_RATE_LIMIT_PER_IP = "10 per minute"

    MAILGUN_API_KEY = os.environ.get('MAILGUN_API_KEY')
    MAILGUN_DOMAIN = os.environ.get('MAILGUN_DOMAIN')
    MAILGUN_BASE_URL = os.environ.get('MAILGUN_BASE_URL', 'https://api.mailgun.net/v3')
    FROM_EMAIL = os.environ.get('FROM_EMAIL', 'noreply@coachfit.app')

    APP_URL = os.environ.get('APP_URL', 'http://localhost:3000')
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:3000')
    CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', FRONTEND_URL).split(',') if o.strip()]

    AUTO_CREATE_TABLES = os.environ.get('AUTO_CREATE_TABLES', '1') == '1'


app.config.from_object(Config)

db = SQLAlchemy()
db.init_app(app)

sess = Session()
sess.init_app(app)

limiter = Limiter(
    key_func=get_remote_address,
    app=app,
    default_limits=["1000 per hour"]
)

ph = PasswordHasher()

session_store = get_session_store()
app.logger.info(f"Session store initialized: {type(session_store).__name__}")

CORS(
    app,
    resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}},
    supports_credentials=True,
    allow_headers=["Content-Type", "X-CSRF-Token"],
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)


@app.after_request
def add_security_headers(resp):
    """Standard security headers on every API response"""
    if request.path.startswith('/api/'):
        resp.headers['X-Content-Type-Options'] = 'nosniff'
        resp.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        resp.headers['X-Frame-Options'] = 'DENY'
        resp.headers['Cache-Control'] = 'no-store'
        resp.headers['Pragma'] = 'no-cache'
    return resp


@app.after_request
def handle_session_renewal(resp):
    """Reissue the session cookie when validation flagged a rolling refresh"""
    if getattr(g, 'session_needs_refresh', False):
        session_id = getattr(g, 'session_id', None)
        if session_id:
            set_session_cookie(resp, session_id)
            app.logger.info(f"Session cookie renewed in response: {session_id}")
    return resp


# ============================================================================
# DATABASE MODELS
# ============================================================================

def _default_roles():
    return [Role.CLIENT.value]


class User(db.Model):
    """Account with one or more roles; roles stored as a JSON list of role names"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120))
    password_hash = db.Column(db.String(255))
    roles = db.Column(db.JSON, nullable=False, default=_default_roles)
    onboarding_complete = db.Column(db.Boolean, nullable=False, default=False)
    invited_by_coach_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    must_change_password = db.Column(db.Boolean, nullable=False, default=False)
    is_test_user = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'roles': list(self.roles or []),
            'onboarding_complete': self.onboarding_complete,
            'must_change_password': self.must_change_password,
            'is_test_user': self.is_test_user,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Cohort(db.Model):
    __tablename__ = 'cohorts'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(120), nullable=False)
    coach_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class CohortMembership(db.Model):
    __tablename__ = 'cohort_memberships'
    __table_args__ = (db.UniqueConstraint('user_id', 'cohort_id', name='uq_membership_user_cohort'),)

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    cohort_id = db.Column(db.Integer, db.ForeignKey('cohorts.id'), nullable=False)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)


class CoachInvite(db.Model):
    """Invite from a coach to an email that has no account yet"""
    __tablename__ = 'coach_invites'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    coach_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class CohortInvite(db.Model):
    __tablename__ = 'cohort_invites'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    cohort_id = db.Column(db.Integer, db.ForeignKey('cohorts.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class UserGoals(db.Model):
    """Goals captured during client onboarding"""
    __tablename__ = 'user_goals'

    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), primary_key=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserPreference(db.Model):
    __tablename__ = 'user_preferences'

    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), primary_key=True)
    weight_unit = db.Column(db.String(10), nullable=False, default='kg')
    measurement_unit = db.Column(db.String(10), nullable=False, default='cm')


class AdminAction(db.Model):
    """Admin audit trail"""
    __tablename__ = 'admin_actions'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    admin_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    action_type = db.Column(db.String(64), nullable=False, index=True)
    target_type = db.Column(db.String(32), nullable=False)
    target_id = db.Column(db.String(64))
    details = db.Column(db.JSON)
    reason = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'admin_id': self.admin_id,
            'action_type': self.action_type,
            'target_type': self.target_type,
            'target_id': self.target_id,
            'details': self.details or {},
            'reason': self.reason,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


# ============================================================================
# AUTHENTICATION SYSTEM
# ============================================================================

def email_hash(email):
    """Short stable hash so logs never carry raw email addresses"""
    return hashlib.sha256(email.encode()).hexdigest()[:8]


def hash_password(password):
    return ph.hash(password)


def verify_password(password, password_hash):
    """Argon2 verification; legacy Werkzeug hashes are still accepted"""
    if not password_hash:
        return False
    if not password_hash.startswith('$argon2'):
        return check_password_hash(password_hash, password)
    try:
        return ph.verify(password_hash, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def create_auth_session(user_id):
    """Create a server-side session and bind its id to the Flask session"""
    session_data = session_store.create_session(user_id)

    session.permanent = True
    session['session_id'] = session_data['session_id']
    session['user_id'] = user_id

    app.logger.info(f"Session created for user {user_id}: {session_data['session_id']}")
    return session_data['session_id']


def validate_auth_session():
    """
    Validate the current session with sliding idle expiry.
    Returns (user_id, None) or (None, error_code).
    """
    try:
        session_id = session.get('session_id')
        if not session_id:
            return None, "AUTH_REQUIRED"

        session_data = session_store.get_session(session_id)
        if not session_data:
            session.clear()
            return None, "SESSION_EXPIRED"

        if not app.config['SESSION_RENEWAL_ENABLED']:
            return session_data['user_id'], None

        now = datetime.utcnow()
        last_seen = datetime.fromisoformat(session_data.get('last_seen', session_data['created_at']).replace('Z', ''))
        idle_seconds = (now - last_seen).total_seconds()
        idle_limit_seconds = app.config['SESSION_IDLE_MIN'] * 60

        if idle_seconds >= idle_limit_seconds:
            session_store.destroy_session(session_id)
            session.clear()
            app.logger.info(f"Session expired (idle {idle_seconds:.0f}s >= {idle_limit_seconds}s): {session_id}")
            return None, "SESSION_EXPIRED"

        session_data['last_seen'] = now.isoformat() + 'Z'
        session_store.update_session(session_id, session_data)

        # Reissue the cookie once half the idle window has passed
        if idle_seconds >= idle_limit_seconds / 2:
            g.session_needs_refresh = True
            g.session_id = session_id

        return session_data['user_id'], None

    except Exception as e:
        app.logger.error(f"Session validation error: {e}")
        session.clear()
        return None, "SESSION_EXPIRED"


def clear_auth_session():
    session_id = session.get('session_id')
    user_id = session.get('user_id')
    if session_id:
        session_store.destroy_session(session_id)
    session.clear()
    app.logger.info(f"Session cleared for user {user_id or 'unknown'}")
    return session_id is not None


def _auth_error(error_code):
    if error_code == "SESSION_EXPIRED":
        return jsonify({'ok': False, 'error': 'session_expired', 'code': 'SESSION_EXPIRED'}), 401
    return jsonify({'ok': False, 'error': 'Authentication required', 'code': 'AUTH_REQUIRED'}), 401


def require_auth(f):
    """Require a valid session; puts the user id on g.user_id"""
    def decorated_function(*args, **kwargs):
        user_id, error_code = validate_auth_session()
        if not user_id:
            return _auth_error(error_code)

        g.user_id = user_id
        return f(*args, **kwargs)

    decorated_function.__name__ = f.__name__
    return decorated_function


def require_admin(f):
    """Require a valid session whose user holds the ADMIN role; puts the user on g.user"""
    def decorated_function(*args, **kwargs):
        user_id, error_code = validate_auth_session()
        if not user_id:
            return _auth_error(error_code)

        user = db.session.get(User, user_id)
        if not user:
            session.clear()
            return _auth_error("AUTH_REQUIRED")

        if not is_admin(user):
            return jsonify({'ok': False, 'error': 'Forbidden: Admin access required', 'code': 'ADMIN_REQUIRED'}), 403

        g.user_id = user_id
        g.user = user
        return f(*args, **kwargs)

    decorated_function.__name__ = f.__name__
    return decorated_function


# ============================================================================
# EXTERNAL API INTEGRATIONS
# ============================================================================

def send_email_via_mailgun(to_email, subject, content, content_type='text'):
    """Send email via Mailgun; returns a status dict and never raises"""
    if not app.config['MAILGUN_API_KEY'] or not app.config['MAILGUN_DOMAIN']:
        app.logger.info("Mailgun not configured, skipping email")
        return {'status': 'skipped', 'message': 'Email service not configured'}

    url = f"{app.config['MAILGUN_BASE_URL']}/{app.config['MAILGUN_DOMAIN']}/messages"
    data = {
        'from': app.config['FROM_EMAIL'],
        'to': to_email,
        'subject': subject,
        'html' if content_type == 'html' else 'text': content,
    }

    try:
        response = requests.post(
            url,
            auth=('api', app.config['MAILGUN_API_KEY']),
            data=data,
            timeout=10
        )
    except requests.RequestException as e:
        app.logger.error(f"Mailgun request error: {e}")
        return {'status': 'failed', 'message': 'Email service unavailable'}

    if response.status_code == 200:
        return {'status': 'sent', 'message': 'Email sent successfully'}

    app.logger.error(f"Mailgun error: {response.status_code} - {response.text}")
    return {'status': 'failed', 'message': 'Email delivery failed'}


def send_welcome_email(user):
    subject = "Welcome to CoachFit"
    login_url = f"{app.config['APP_URL']}/login"
    content = (
        f"Welcome to CoachFit!\n\n"
        f"Hi{' ' + user.name if user.name else ''},\n\n"
        f"Welcome to CoachFit! We're excited to have you on board.\n\n"
        f"You're all set. Your coach will guide you next.\n\n"
        f"Sign in to your dashboard: {login_url}\n\n"
        f"If you have any questions, please contact your coach."
    )
    result = send_email_via_mailgun(user.email, subject, content)
    app.logger.info(f"welcome_email user_id={user.id} status={result['status']}")
    return result


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def ensure_database():
    """Create missing tables once per process"""
    if getattr(ensure_database, 'initialized', False):
        return
    try:
        db.create_all()
        ensure_database.initialized = True
        app.logger.info("Database initialized - all tables created")
    except SQLAlchemyError as e:
        app.logger.error(f"Database initialization error: {e}")


def process_pending_invites(user):
    """
    Turn invites addressed to this email into account links.

    The first coach invite sets invited_by_coach_id (one coach per client) and
    all coach invites for the email are consumed; every cohort invite becomes
    a membership. Failures are logged and never block sign-in.
    """
    try:
        coach_invites = CoachInvite.query.filter_by(email=user.email).order_by(CoachInvite.created_at, CoachInvite.id).all()
        if coach_invites:
            if user.invited_by_coach_id is None:
                user.invited_by_coach_id = coach_invites[0].coach_id
            CoachInvite.query.filter_by(email=user.email).delete()

        cohort_invites = CohortInvite.query.filter_by(email=user.email).all()
        for invite in cohort_invites:
            existing = CohortMembership.query.filter_by(user_id=user.id, cohort_id=invite.cohort_id).first()
            if not existing:
                db.session.add(CohortMembership(user_id=user.id, cohort_id=invite.cohort_id))
            db.session.delete(invite)

        db.session.commit()
        if coach_invites or cohort_invites:
            app.logger.info(f"invites_processed user_id={user.id} coach_invites={len(coach_invites)} cohort_invites={len(cohort_invites)}")
    except SQLAlchemyError as e:
        db.session.rollback()
        app.logger.error(f"Error processing invites on sign-in for user {user.id}: {e}")


def validation_error_response(e):
    return jsonify({
        'ok': False,
        'error': 'Invalid request',
        'code': 'INVALID_REQUEST',
        'details': [
            {'field': '.'.join(str(p) for p in err['loc']), 'message': err['msg']}
            for err in e.errors()
        ]
    }), 400


# ============================================================================
# HEALTH CHECK
# ============================================================================

@app.route('/api/health', methods=['GET'])
def health_check():
    env_config = get_env_config()
    try:
        db.session.execute(text('SELECT 1'))
        return jsonify({
            'status': 'healthy',
            'database': 'connected',
            'config': env_config,
            'timestamp': datetime.utcnow().isoformat(),
        })
    except Exception as e:
        app.logger.error(f"Health check failed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'database': 'unreachable',
            'config': env_config,
            'timestamp': datetime.utcnow().isoformat(),
        }), 500


# ============================================================================
# PAGE REDIRECTS
# ============================================================================

@app.route('/', methods=['GET'])
def home():
    """
    Send a signed-in user to the next onboarding step.

    Any failure while detecting the state (missing user, database outage,
    bugs) falls through to the dashboard so an onboarded user is never locked
    out of the app by a broken check.
    """
    user_id, _ = validate_auth_session()
    if not user_id:
        return redirect('/login')

    try:
        _, route = resolve_onboarding(db, User, CohortMembership, user_id)
    except Exception as e:
        db.session.rollback()
        app.logger.warning(f"home_onboarding_fallback user_id={user_id} reason={type(e).__name__}: {e}")
        route = DASHBOARD_ROUTE

    return redirect(route)


@app.route('/dashboard', methods=['GET'])
def dashboard():
    """Role dashboard redirect: ADMIN > COACH > CLIENT"""
    user_id, _ = validate_auth_session()
    if not user_id:
        return redirect('/login')

    user = db.session.get(User, user_id)
    if not user:
        clear_auth_session()
        return redirect('/login')

    return redirect(dashboard_route_for(user))


# ============================================================================
# API ROUTES - AUTHENTICATION
# ============================================================================

@app.route('/api/auth/signup', methods=['POST'])
def signup():
    """Self-service client signup"""
    try:
        payload = SignupSchema.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return validation_error_response(e)

    try:
        if User.query.filter_by(email=payload.email).first():
            return jsonify({
                'ok': False,
                'error': 'An account with this email already exists',
                'code': 'EMAIL_TAKEN'
            }), 409

        has_invite = (
            CoachInvite.query.filter_by(email=payload.email).first() is not None
            or CohortInvite.query.filter_by(email=payload.email).first() is not None
        )

        user = User(
            email=payload.email,
            name=payload.name,
            password_hash=hash_password(payload.password),
            roles=[Role.CLIENT.value],
            must_change_password=has_invite,
        )
        db.session.add(user)
        db.session.commit()

        app.logger.info(f"signup user_id={user.id} email_hash={email_hash(user.email)} has_invite={has_invite}")
        send_welcome_email(user)

        return jsonify({
            'ok': True,
            'message': 'Account created successfully',
            'user': {'id': user.id, 'email': user.email, 'name': user.name}
        }), 201

    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Signup error: {e}")
        return jsonify({'ok': False, 'error': 'Internal server error', 'code': 'INTERNAL_ERROR'}), 500


@app.route('/api/auth/login', methods=['POST'])
@limiter.limit(Config.AUTH_RATE_LIMIT_PER_IP)
def login():
    """Cookie-based session login"""
    try:
        payload = LoginSchema.model_validate(request.get_json(silent=True) or {})
    except ValidationError:
        return jsonify({'ok': False, 'error': 'Email and password required', 'code': 'INVALID_REQUEST'}), 400

    try:
        email = payload.email

        retry_after = login_rate_limiter.check_rate_limit(request, email)
        if retry_after is not None:
            response = make_response(jsonify({
                'ok': False,
                'error': 'rate_limited',
                'code': 'RATE_LIMIT_LOGIN',
                'retry_after': retry_after
            }), 429)
            response.headers['Retry-After'] = str(retry_after)
            return response

        user = User.query.filter_by(email=email).first()
        if not user or not verify_password(payload.password, user.password_hash):
            app.logger.info(f"Login failed for email hash {email_hash(email)}")
            login_rate_limiter.record_failed_attempt(request, email)
            return jsonify({'ok': False, 'error': 'Invalid credentials', 'code': 'INVALID_CREDENTIALS'}), 401

        if not user.password_hash.startswith('$argon2'):
            user.password_hash = hash_password(payload.password)
            db.session.commit()
            app.logger.info(f"Password upgraded to Argon2 for user {user.id}")

        login_rate_limiter.clear_user_bucket(request, email)
        process_pending_invites(user)

        session_id = create_auth_session(user.id)
        response = make_response(jsonify({'ok': True, 'user': user.to_dict()}))
        set_session_cookie(response, session_id)
        issue_csrf_token(session_store, session_id, response)

        app.logger.info(f"Login successful for user {user.id}")
        return response, 200

    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Login error: {e}")
        return jsonify({'ok': False, 'error': 'Login failed', 'code': 'INTERNAL_ERROR'}), 500


@app.route('/api/auth/me', methods=['GET'])
@require_auth
def me():
    try:
        user = db.session.get(User, g.user_id)
        if not user:
            clear_auth_session()
            return jsonify({'ok': False, 'error': 'User not found', 'code': 'USER_NOT_FOUND'}), 404

        facts = read_onboarding_facts(db, User, CohortMembership, user.id)
        data = user.to_dict()
        data['account_origin'] = account_origin(facts) if facts else None

        return jsonify({'ok': True, 'user': data})

    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Me endpoint error: {e}")
        return jsonify({'ok': False, 'error': 'Authentication check failed', 'code': 'INTERNAL_ERROR'}), 500


@app.route('/api/auth/logout', methods=['POST'])
@csrf_protect(session_store, validate_auth_session)
def logout():
    """Idempotent: answers 200 with or without an active session"""
    had_session = clear_auth_session()
    response = make_response(jsonify({
        'ok': True,
        'message': 'Logged out' if had_session else 'No active session'
    }))
    clear_all_auth_cookies(response)
    return response, 200


@app.route('/api/auth/logout-all', methods=['POST'])
@require_auth
@csrf_protect(session_store, validate_auth_session)
def logout_all():
    """Revoke every session of the current user, including this one"""
    revoked = session_store.destroy_all_user_sessions(g.user_id)
    session.clear()
    response = make_response(jsonify({'ok': True, 'revoked': revoked}))
    clear_all_auth_cookies(response)
    app.logger.info(f"logout_all user_id={g.user_id} revoked={revoked}")
    return response, 200


# ============================================================================
# API ROUTES - ONBOARDING
# ============================================================================

@app.route('/api/onboarding/detect-state', methods=['GET'])
@require_auth
def detect_state():
    """Onboarding route for the current user: {route, state}"""
    try:
        state, route = resolve_onboarding(db, User, CohortMembership, g.user_id)
        return jsonify({'route': route, 'state': state.value})

    except UserNotFoundError:
        return jsonify({'ok': False, 'error': 'User not found', 'code': 'USER_NOT_FOUND'}), 404

    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Error detecting onboarding state for user {g.user_id}: {e}")
        return jsonify({'ok': False, 'error': 'Failed to detect onboarding state', 'code': 'INTERNAL_ERROR'}), 500


@app.route('/api/onboarding/status', methods=['GET'])
@require_auth
def onboarding_status():
    try:
        user = db.session.get(User, g.user_id)
        if not user:
            return jsonify({'ok': False, 'error': 'User not found', 'code': 'USER_NOT_FOUND'}), 404

        if not is_client(user):
            return jsonify({'ok': False, 'error': 'Only clients can check onboarding status', 'code': 'FORBIDDEN'}), 403

        return jsonify({
            'data': {
                'onboarding_complete': user.onboarding_complete,
                'has_goals': db.session.get(UserGoals, user.id) is not None,
                'has_preference': db.session.get(UserPreference, user.id) is not None,
            }
        })

    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Error fetching onboarding status: {e}")
        return jsonify({'ok': False, 'error': 'Failed to fetch status', 'code': 'INTERNAL_ERROR'}), 500


@app.route('/api/onboarding/complete', methods=['POST'])
@require_auth
@csrf_protect(session_store, validate_auth_session)
def complete_onboarding():
    try:
        user = db.session.get(User, g.user_id)
        if not user:
            return jsonify({'ok': False, 'error': 'User not found', 'code': 'USER_NOT_FOUND'}), 404

        user.onboarding_complete = True
        db.session.commit()
        app.logger.info(f"onboarding_complete user_id={user.id}")

        return jsonify({'ok': True, 'message': 'Onboarding completed successfully'})

    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Error completing onboarding: {e}")
        return jsonify({'ok': False, 'error': 'Internal server error', 'code': 'INTERNAL_ERROR'}), 500


@app.route('/api/onboarding/reset', methods=['POST'])
@require_auth
@csrf_protect(session_store, validate_auth_session)
def reset_onboarding():
    """Restart client onboarding; goals are dropped, unit preference is kept"""
    try:
        user = db.session.get(User, g.user_id)
        if not user:
            return jsonify({'ok': False, 'error': 'User not found', 'code': 'USER_NOT_FOUND'}), 404

        if not is_client(user):
            return jsonify({'ok': False, 'error': 'Only clients can reset onboarding', 'code': 'FORBIDDEN'}), 403

        user.onboarding_complete = False
        UserGoals.query.filter_by(user_id=user.id).delete()
        preference = db.session.get(UserPreference, user.id)
        db.session.commit()

        app.logger.info(f"onboarding_reset user_id={user.id}")
        return jsonify({
            'data': {
                'message': 'Onboarding reset successfully',
                'onboarding_complete': False,
                'unit_preference_preserved': preference is not None,
            }
        })

    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Error resetting onboarding: {e}")
        return jsonify({'ok': False, 'error': 'Failed to reset onboarding', 'code': 'INTERNAL_ERROR'}), 500


# ============================================================================
# API ROUTES - ADMIN CONSOLE
# ============================================================================

@app.route('/api/admin/users/<int:user_id>/roles', methods=['PATCH'])
@require_admin
@csrf_protect(session_store, validate_auth_session)
def admin_update_user_roles(user_id):
    try:
        payload = UpdateRolesSchema.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return validation_error_response(e)

    try:
        user = db.session.get(User, user_id)
        if not user:
            return jsonify({'ok': False, 'error': 'User not found', 'code': 'USER_NOT_FOUND'}), 404

        action, role = payload.action, payload.role
        current_roles = list(user.roles or [])

        if action == 'remove' and role == Role.ADMIN.value and user.id == g.user.id:
            return jsonify({'ok': False, 'error': 'Cannot remove your own admin role', 'code': 'INVALID_REQUEST'}), 400

        if action == 'add':
            if role in current_roles:
                return jsonify({'ok': False, 'error': f'User already has {role} role', 'code': 'INVALID_REQUEST'}), 400
            # Only staff can become admins
            if role == Role.ADMIN.value and Role.COACH.value not in current_roles:
                return jsonify({
                    'ok': False,
                    'error': 'Only coaches can be made admin. This user is not a coach.',
                    'code': 'INVALID_REQUEST'
                }), 400
            new_roles = current_roles + [role]
        else:
            if role not in current_roles:
                return jsonify({'ok': False, 'error': f'User does not have {role} role', 'code': 'INVALID_REQUEST'}), 400
            if role == Role.COACH.value and Role.ADMIN.value in current_roles:
                return jsonify({
                    'ok': False,
                    'error': 'Cannot remove COACH role from an admin. Remove ADMIN role first.',
                    'code': 'INVALID_REQUEST'
                }), 400
            new_roles = [r for r in current_roles if r != role] or [Role.CLIENT.value]

        user.roles = new_roles
        db.session.commit()

        log_audit_action(
            db, AdminAction, g.user,
            action_type='ADMIN_UPDATE_USER_ROLES',
            target_type='user',
            target_id=user.id,
            details={'action': action, 'role': role, 'roles': new_roles},
        )

        return jsonify({
            'ok': True,
            'user': user.to_dict(),
            'message': f"{'Added' if action == 'add' else 'Removed'} {role} role"
        })

    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Error updating user roles: {e}")
        return jsonify({'ok': False, 'error': 'Internal server error', 'code': 'INTERNAL_ERROR'}), 500


@app.route('/api/admin/audit-log', methods=['GET'])
@require_admin
def admin_audit_log():
    try:
        limit = min(max(request.args.get('limit', 50, type=int), 1), 200)
        action_type = request.args.get('action_type') or None
        actions = list_audit_actions(AdminAction, limit=limit, action_type=action_type)
        return jsonify({'ok': True, 'actions': [a.to_dict() for a in actions], 'limit': limit})

    except Exception as e:
        app.logger.error(f"Admin audit log error: {e}")
        return jsonify({'ok': False, 'error': 'Failed to get audit log', 'code': 'INTERNAL_ERROR'}), 500


# ============================================================================
# GLOBAL JSON ERROR HANDLERS
# ============================================================================

@app.errorhandler(404)
def not_found_error(error):
    if request.path.startswith('/api/'):
        return jsonify({'ok': False, 'error': 'Endpoint not found', 'code': 'NOT_FOUND'}), 404
    return error


@app.errorhandler(405)
def method_not_allowed_error(error):
    if request.path.startswith('/api/'):
        return jsonify({'ok': False, 'error': 'Method not allowed', 'code': 'METHOD_NOT_ALLOWED'}), 405
    return error


@app.errorhandler(500)
def internal_error(error):
    db.session.rollback()
    if request.path.startswith('/api/'):
        return jsonify({'ok': False, 'error': 'Internal server error', 'code': 'INTERNAL_ERROR'}), 500
    return error


# ============================================================================
# APPLICATION INITIALIZATION
# ============================================================================

create_csrf_endpoints(app, session_store, validate_auth_session)

if app.config['AUTO_CREATE_TABLES']:
    with app.app_context():
        ensure_database()


if __name__ == '__main__':
    # Local development only
    port = int(os.environ.get('PORT', 5000))
    app.run(debug=True, host='0.0.0.0', port=port)
