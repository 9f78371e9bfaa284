"""
Role model and permission helpers for CoachFit
Users can hold several roles at once (e.g. COACH + ADMIN); ADMIN does not imply COACH.
"""

import logging
from enum import Enum
from typing import FrozenSet, Iterable, Optional

logger = logging.getLogger(__name__)


class Role(str, Enum):
    CLIENT = 'CLIENT'
    COACH = 'COACH'
    ADMIN = 'ADMIN'


# Highest first: an admin who is also a client is treated as an admin
ROLE_PRECEDENCE = (Role.ADMIN, Role.COACH, Role.CLIENT)

DASHBOARD_ROUTES = {
    Role.ADMIN: '/admin',
    Role.COACH: '/coach-dashboard',
    Role.CLIENT: '/client-dashboard',
}


def parse_roles(raw_roles: Optional[Iterable[str]]) -> FrozenSet[Role]:
    """Convert stored role strings to Role members, skipping unknown values"""
    roles = set()
    for value in raw_roles or ():
        try:
            roles.add(Role(str(value).upper()))
        except ValueError:
            logger.warning(f"role_parse_skipped value={value!r}")
    return frozenset(roles)


def primary_role(roles: Iterable[Role]) -> Role:
    """
    Pick the single role that drives routing decisions.

    A user with no roles is treated as a CLIENT, matching the role editor,
    which never leaves a user with an empty role list.
    """
    held = set(roles)
    for role in ROLE_PRECEDENCE:
        if role in held:
            return role
    return Role.CLIENT


def _roles_of(user) -> FrozenSet[Role]:
    return parse_roles(getattr(user, 'roles', None))


def is_admin(user) -> bool:
    return Role.ADMIN in _roles_of(user)


def is_coach(user) -> bool:
    return Role.COACH in _roles_of(user)


def is_client(user) -> bool:
    return Role.CLIENT in _roles_of(user)


def is_admin_or_coach(user) -> bool:
    return is_admin(user) or is_coach(user)


def dashboard_route_for(user) -> str:
    """Role dashboard for a signed-in user; users without roles count as clients, as in onboarding"""
    return DASHBOARD_ROUTES[primary_role(_roles_of(user))]
