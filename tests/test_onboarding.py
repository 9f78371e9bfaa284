#!/usr/bin/env python3
"""Unit tests for onboarding state detection and routing"""
import itertools
import unittest
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from permissions import Role
from onboarding import (
    DASHBOARD_ROUTE, ONBOARDING_ROUTES, OnboardingFacts, OnboardingState,
    UserNotFoundError, DataAccessError, UnclassifiedStateError,
    read_onboarding_facts, detect_onboarding_state, get_onboarding_route,
    account_origin
)

ROLE_SETS = [
    frozenset(combo)
    for size in range(len(Role) + 1)
    for combo in itertools.combinations(list(Role), size)
]


def facts(complete=False, roles=(Role.CLIENT,), coach_id=None, membership=False):
    return OnboardingFacts(
        user_id=1,
        onboarding_complete=complete,
        roles=frozenset(roles),
        invited_by_coach_id=coach_id,
        has_cohort_membership=membership,
    )


class TestDetectOnboardingState(unittest.TestCase):
    """Classifier over every combination of facts"""

    def test_missing_user_is_not_found(self):
        self.assertEqual(detect_onboarding_state(None), OnboardingState.NOT_FOUND)

    def test_complete_wins_over_everything(self):
        for roles in ROLE_SETS:
            for coach_id in (None, 7):
                for membership in (False, True):
                    with self.subTest(roles=roles, coach_id=coach_id, membership=membership):
                        state = detect_onboarding_state(facts(True, roles, coach_id, membership))
                        self.assertEqual(state, OnboardingState.ONBOARDING_COMPLETE)

    def test_admin_precedence(self):
        for roles in ([Role.ADMIN], [Role.ADMIN, Role.COACH], [Role.ADMIN, Role.CLIENT],
                      [Role.ADMIN, Role.COACH, Role.CLIENT]):
            with self.subTest(roles=roles):
                state = detect_onboarding_state(facts(roles=roles, coach_id=3, membership=True))
                self.assertEqual(state, OnboardingState.ADMIN_PENDING)

    def test_coach_precedence_over_client(self):
        for roles in ([Role.COACH], [Role.COACH, Role.CLIENT]):
            with self.subTest(roles=roles):
                state = detect_onboarding_state(facts(roles=roles, coach_id=3))
                self.assertEqual(state, OnboardingState.COACH_PENDING)

    def test_self_signup_client(self):
        state = detect_onboarding_state(facts())
        self.assertEqual(state, OnboardingState.SELF_SIGNUP_CLIENT_PENDING)

    def test_coach_invited_client(self):
        state = detect_onboarding_state(facts(coach_id=42))
        self.assertEqual(state, OnboardingState.INVITED_CLIENT_PENDING)

    def test_cohort_invited_client(self):
        state = detect_onboarding_state(facts(membership=True))
        self.assertEqual(state, OnboardingState.INVITED_CLIENT_PENDING)

    def test_no_roles_treated_as_client(self):
        self.assertEqual(detect_onboarding_state(facts(roles=())), OnboardingState.SELF_SIGNUP_CLIENT_PENDING)
        self.assertEqual(detect_onboarding_state(facts(roles=(), coach_id=1)), OnboardingState.INVITED_CLIENT_PENDING)

    def test_every_combination_yields_exactly_one_known_state(self):
        for complete, roles, coach_id, membership in itertools.product(
                (False, True), ROLE_SETS, (None, 5), (False, True)):
            with self.subTest(complete=complete, roles=roles, coach_id=coach_id, membership=membership):
                state = detect_onboarding_state(facts(complete, roles, coach_id, membership))
                self.assertIn(state, ONBOARDING_ROUTES)

    def test_deterministic(self):
        sample = facts(roles=(Role.COACH, Role.CLIENT), membership=True)
        self.assertEqual(
            {detect_onboarding_state(sample) for _ in range(10)},
            {OnboardingState.COACH_PENDING}
        )


class TestGetOnboardingRoute(unittest.TestCase):

    def test_route_table(self):
        self.assertEqual(get_onboarding_route(OnboardingState.ONBOARDING_COMPLETE), DASHBOARD_ROUTE)
        self.assertEqual(get_onboarding_route(OnboardingState.ADMIN_PENDING), '/onboarding/admin')
        self.assertEqual(get_onboarding_route(OnboardingState.COACH_PENDING), '/onboarding/coach')
        self.assertEqual(get_onboarding_route(OnboardingState.INVITED_CLIENT_PENDING), '/onboarding/client/invited')
        self.assertEqual(get_onboarding_route(OnboardingState.SELF_SIGNUP_CLIENT_PENDING), '/onboarding/client/self-signup')

    def test_not_found_raises(self):
        with self.assertRaises(UserNotFoundError):
            get_onboarding_route(OnboardingState.NOT_FOUND)

    def test_every_state_tag_is_routed(self):
        """A new OnboardingState member without a route entry fails here"""
        for state in OnboardingState:
            with self.subTest(state=state):
                if state is OnboardingState.NOT_FOUND:
                    with self.assertRaises(UserNotFoundError):
                        get_onboarding_route(state)
                    continue
                route = get_onboarding_route(state)
                self.assertEqual(route, get_onboarding_route(state))
                self.assertIn(route, ONBOARDING_ROUTES.values())
                self.assertTrue(route.startswith('/'))

    def test_unknown_state_raises(self):
        for bogus in ('SOMETHING_ELSE', None, 3):
            with self.subTest(state=bogus):
                with self.assertRaises(UnclassifiedStateError):
                    get_onboarding_route(bogus)

    def test_raw_string_tag_accepted(self):
        self.assertEqual(get_onboarding_route('COACH_PENDING'), '/onboarding/coach')


class TestAccountOrigin(unittest.TestCase):

    def test_origins(self):
        self.assertEqual(account_origin(facts(roles=(Role.COACH,))), 'admin-created')
        self.assertEqual(account_origin(facts(coach_id=9, membership=True)), 'coach-invited')
        self.assertEqual(account_origin(facts(membership=True)), 'client-invited')
        self.assertEqual(account_origin(facts()), 'client-self-signup')


class TestReadOnboardingFacts(unittest.TestCase):
    """Reader against a mocked db handle"""

    def setUp(self):
        self.User = MagicMock(name='User')
        self.CohortMembership = MagicMock(name='CohortMembership')
        self.db = MagicMock(name='db')

    def test_missing_user_returns_none(self):
        self.db.session.get.return_value = None
        self.assertIsNone(read_onboarding_facts(self.db, self.User, self.CohortMembership, 99))
        self.db.session.query.assert_not_called()

    def test_always_refreshes_user_row(self):
        self.db.session.get.return_value = None
        read_onboarding_facts(self.db, self.User, self.CohortMembership, 5)
        self.db.session.get.assert_called_once_with(self.User, 5, populate_existing=True)

    def test_builds_facts(self):
        user = MagicMock(id=5, onboarding_complete=False, roles=['CLIENT', 'bogus'], invited_by_coach_id=None)
        self.db.session.get.return_value = user
        self.db.session.query.return_value.filter.return_value.first.return_value = (17,)

        result = read_onboarding_facts(self.db, self.User, self.CohortMembership, 5)

        self.assertEqual(result.user_id, 5)
        self.assertFalse(result.onboarding_complete)
        self.assertEqual(result.roles, frozenset({Role.CLIENT}))
        self.assertTrue(result.has_cohort_membership)
        self.assertTrue(result.invited)

    def test_database_failure_becomes_data_access_error(self):
        self.db.session.get.side_effect = OperationalError('SELECT', {}, Exception('connection refused'))
        with self.assertRaises(DataAccessError):
            read_onboarding_facts(self.db, self.User, self.CohortMembership, 5)


if __name__ == '__main__':
    unittest.main()
