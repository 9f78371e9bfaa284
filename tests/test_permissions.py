#!/usr/bin/env python3
"""Unit tests for role parsing and permission helpers"""
import unittest
from types import SimpleNamespace

from permissions import (
    Role, parse_roles, primary_role, is_admin, is_coach, is_client,
    is_admin_or_coach, dashboard_route_for
)


class TestRoles(unittest.TestCase):

    def test_parse_roles_skips_unknown(self):
        self.assertEqual(parse_roles(['CLIENT', 'SUPERUSER', 'coach']), frozenset({Role.CLIENT, Role.COACH}))

    def test_parse_roles_handles_none(self):
        self.assertEqual(parse_roles(None), frozenset())

    def test_primary_role_precedence(self):
        self.assertIs(primary_role([Role.CLIENT, Role.ADMIN]), Role.ADMIN)
        self.assertIs(primary_role([Role.CLIENT, Role.COACH]), Role.COACH)
        self.assertIs(primary_role([Role.CLIENT]), Role.CLIENT)
        self.assertIs(primary_role([]), Role.CLIENT)

    def test_predicates(self):
        user = SimpleNamespace(roles=['COACH', 'ADMIN'])
        self.assertTrue(is_admin(user))
        self.assertTrue(is_coach(user))
        self.assertFalse(is_client(user))
        self.assertTrue(is_admin_or_coach(user))
        self.assertFalse(is_admin_or_coach(SimpleNamespace(roles=['CLIENT'])))

    def test_dashboard_route(self):
        self.assertEqual(dashboard_route_for(SimpleNamespace(roles=['ADMIN', 'COACH'])), '/admin')
        self.assertEqual(dashboard_route_for(SimpleNamespace(roles=['COACH'])), '/coach-dashboard')
        self.assertEqual(dashboard_route_for(SimpleNamespace(roles=['CLIENT'])), '/client-dashboard')

    def test_dashboard_route_without_known_roles_matches_onboarding(self):
        for roles in ([], None, ['SUPERUSER']):
            with self.subTest(roles=roles):
                user = SimpleNamespace(roles=roles)
                self.assertIs(primary_role(parse_roles(roles)), Role.CLIENT)
                self.assertEqual(dashboard_route_for(user), '/client-dashboard')


if __name__ == '__main__':
    unittest.main()
