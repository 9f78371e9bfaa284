"""
Centralized Cookie Management for CoachFit
Shared by app.py and csrf_protection.py so neither imports the other.
"""

import os
import logging
from flask import request, has_request_context

logger = logging.getLogger(__name__)

SESSION_COOKIE = 'coachfit_session'
CSRF_COOKIE = 'coachfit_csrf'

# Empty domain means host-only cookies
SESSION_COOKIE_DOMAIN = os.getenv("SESSION_COOKIE_DOMAIN") or None
SESSION_SAMESITE = os.getenv("SESSION_SAMESITE", "Lax")
SESSION_SECURE = os.getenv("SESSION_SECURE", "true").lower() == "true"

DEFAULT_MAX_AGE = 1800


def get_cookie_options(domain=SESSION_COOKIE_DOMAIN):
    return {
        'domain': domain,
        'path': '/',
        'httponly': True,
        'secure': SESSION_SECURE,
        'samesite': SESSION_SAMESITE,
    }


def _domain_for_request():
    """
    Configured cookie domain, or None (host-only) when the request host is
    outside it, e.g. preview deployments on a different domain.
    """
    configured = SESSION_COOKIE_DOMAIN
    if not configured or not has_request_context():
        return configured

    host = request.host.split(':')[0]
    if not host.endswith(configured.lstrip('.')):
        logger.info(f"cookie_domain_fallback host={host} configured={configured}")
        return None
    return configured


def set_cookie(response, name, value, max_age=None, httponly=True):
    cookie_opts = get_cookie_options(_domain_for_request())
    cookie_opts['httponly'] = httponly
    response.set_cookie(name, value, max_age=max_age, **cookie_opts)
    return response


def clear_cookie(response, name):
    cookie_opts = get_cookie_options(_domain_for_request())
    response.set_cookie(name, "", max_age=0, expires=0, **cookie_opts)
    return response


def set_session_cookie(response, session_id, max_age=DEFAULT_MAX_AGE):
    """Session cookie is HttpOnly; the frontend never reads it"""
    return set_cookie(response, SESSION_COOKIE, session_id, max_age=max_age, httponly=True)


def set_csrf_cookie(response, csrf_token, max_age=DEFAULT_MAX_AGE):
    """CSRF cookie must be JS-readable for the double-submit pattern"""
    return set_cookie(response, CSRF_COOKIE, csrf_token, max_age=max_age, httponly=False)


def clear_all_auth_cookies(response):
    clear_cookie(response, SESSION_COOKIE)
    clear_cookie(response, CSRF_COOKIE)
    return response
