"""
Onboarding State Detection and Routing
Reads a user's account facts, classifies them into one onboarding state and
maps that state to the page the frontend should open next.

Reader -> Classifier -> Router. Only the reader touches the database; the
classifier and router are pure and never swallow errors.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from permissions import Role, parse_roles, primary_role

logger = logging.getLogger(__name__)

DASHBOARD_ROUTE = '/dashboard'


class OnboardingState(str, Enum):
    NOT_FOUND = 'NOT_FOUND'
    ONBOARDING_COMPLETE = 'ONBOARDING_COMPLETE'
    INVITED_CLIENT_PENDING = 'INVITED_CLIENT_PENDING'
    SELF_SIGNUP_CLIENT_PENDING = 'SELF_SIGNUP_CLIENT_PENDING'
    COACH_PENDING = 'COACH_PENDING'
    ADMIN_PENDING = 'ADMIN_PENDING'


ONBOARDING_ROUTES = {
    OnboardingState.ONBOARDING_COMPLETE: DASHBOARD_ROUTE,
    OnboardingState.INVITED_CLIENT_PENDING: '/onboarding/client/invited',
    OnboardingState.SELF_SIGNUP_CLIENT_PENDING: '/onboarding/client/self-signup',
    OnboardingState.COACH_PENDING: '/onboarding/coach',
    OnboardingState.ADMIN_PENDING: '/onboarding/admin',
}


# ============================================================================
# ERRORS
# ============================================================================

class OnboardingError(Exception):
    """Base class for onboarding detection failures"""


class UserNotFoundError(OnboardingError):
    """The identifier does not resolve to a user (stale session, deleted account)"""


class DataAccessError(OnboardingError):
    """The underlying read failed (connectivity, schema mismatch)"""


class UnclassifiedStateError(OnboardingError):
    """Facts or a state tag fell outside the defined combinations; always a bug"""


# ============================================================================
# STATE READER
# ============================================================================

@dataclass(frozen=True)
class OnboardingFacts:
    user_id: int
    onboarding_complete: bool
    roles: FrozenSet[Role]
    invited_by_coach_id: Optional[int] = None
    has_cohort_membership: bool = False

    @property
    def invited(self) -> bool:
        """Coach invites and cohort invites both count as invitation-based origin"""
        return self.invited_by_coach_id is not None or self.has_cohort_membership


def read_onboarding_facts(db, User, CohortMembership, user_id) -> Optional[OnboardingFacts]:
    """
    Load the facts needed for classification, or None when the user does not exist.

    Every call goes to the database: the user row is re-populated even if the
    session already holds it, since a coach can invite the user between two
    checks in the same session.
    """
    try:
        user = db.session.get(User, user_id, populate_existing=True)
        if user is None:
            return None

        membership = (
            db.session.query(CohortMembership.id)
            .filter(CohortMembership.user_id == user_id)
            .first()
        )
    except SQLAlchemyError as e:
        logger.error(f"onboarding_read_failed user_id={user_id} error={e}")
        raise DataAccessError(f"Failed to read onboarding facts for user {user_id}") from e

    return OnboardingFacts(
        user_id=user.id,
        onboarding_complete=bool(user.onboarding_complete),
        roles=parse_roles(user.roles),
        invited_by_coach_id=user.invited_by_coach_id,
        has_cohort_membership=membership is not None,
    )


# ============================================================================
# STATE CLASSIFIER
# ============================================================================

def detect_onboarding_state(facts: Optional[OnboardingFacts]) -> OnboardingState:
    if facts is None:
        return OnboardingState.NOT_FOUND

    # Completion wins over everything else
    if facts.onboarding_complete:
        return OnboardingState.ONBOARDING_COMPLETE

    role = primary_role(facts.roles)
    if role is Role.ADMIN:
        return OnboardingState.ADMIN_PENDING
    if role is Role.COACH:
        return OnboardingState.COACH_PENDING
    if role is Role.CLIENT:
        if facts.invited:
            return OnboardingState.INVITED_CLIENT_PENDING
        return OnboardingState.SELF_SIGNUP_CLIENT_PENDING

    logger.error(f"onboarding_unclassified user_id={facts.user_id} role={role!r}")
    raise UnclassifiedStateError(f"No onboarding state for role {role!r}")


def account_origin(facts: OnboardingFacts) -> str:
    """How the account entered the system, for display in /api/auth/me"""
    role = primary_role(facts.roles)
    if role is not Role.CLIENT:
        # Staff accounts are always created by an admin
        return 'admin-created'
    if facts.invited_by_coach_id is not None:
        return 'coach-invited'
    if facts.has_cohort_membership:
        return 'client-invited'
    return 'client-self-signup'


# ============================================================================
# ROUTER
# ============================================================================

def get_onboarding_route(state: OnboardingState) -> str:
    """
    Destination path for a state.

    NOT_FOUND has no path: UserNotFoundError is raised so callers answer 404
    (or fall back) instead of redirecting. Unknown tags raise
    UnclassifiedStateError rather than defaulting to the dashboard.
    """
    if state == OnboardingState.NOT_FOUND:
        raise UserNotFoundError('User not found')

    try:
        return ONBOARDING_ROUTES[state]
    except (KeyError, TypeError):
        logger.error(f"onboarding_route_unknown_state state={state!r}")
        raise UnclassifiedStateError(f"Unknown onboarding state: {state!r}")


def resolve_onboarding(db, User, CohortMembership, user_id) -> Tuple[OnboardingState, str]:
    """Run reader, classifier and router for one user; returns (state, route)"""
    facts = read_onboarding_facts(db, User, CohortMembership, user_id)
    state = detect_onboarding_state(facts)
    route = get_onboarding_route(state)
    logger.info(f"onboarding_detect user_id={user_id} state={state.value} route={route}")
    return state, route
