import os
import sys
import unittest
from types import SimpleNamespace

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from contexts.guard import (  # noqa: E402
    LOADING,
    RENDER,
    GuardDecision,
    guard,
    guard_auth_route,
    role_home,
)
from db.models import AuthUser  # noqa: E402


def auth_state(loading=False, signed_in=True, active=None):
    return SimpleNamespace(
        loading=loading,
        user=AuthUser("u1", "u1@example.com") if signed_in else None,
        active_view_role=active,
    )


class GuardTestCase(unittest.TestCase):
    def test_loading_wins(self):
        self.assertEqual(guard(auth_state(loading=True, signed_in=False)), LOADING)
        self.assertEqual(guard(auth_state(loading=True, active="admin"), ["admin"]), LOADING)

    def test_signed_out_goes_to_sign_in(self):
        self.assertEqual(guard(auth_state(signed_in=False)), GuardDecision("redirect", "/auth"))
        self.assertEqual(
            guard(auth_state(signed_in=False), ["admin"]), GuardDecision("redirect", "/auth")
        )

    def test_any_role_renders(self):
        self.assertEqual(guard(auth_state(active="customer")), RENDER)
        self.assertEqual(guard(auth_state(active="vendor"), ["any"]), RENDER)

    def test_only_active_view_role_counts(self):
        self.assertEqual(guard(auth_state(active="admin"), ["admin"]), RENDER)
        # an admin currently viewing as customer is sent to the customer home
        self.assertEqual(
            guard(auth_state(active="customer"), ["admin"]),
            GuardDecision("redirect", "/dashboard"),
        )
        self.assertEqual(
            guard(auth_state(active="vendor"), ("admin",)), GuardDecision("redirect", "/vendor")
        )
        self.assertEqual(
            guard(auth_state(active="admin"), ["vendor"]), GuardDecision("redirect", "/admin")
        )
        self.assertEqual(guard(auth_state(active="vendor"), ["vendor", "admin"]), RENDER)

    def test_role_home(self):
        self.assertEqual(role_home("admin"), "/admin")
        self.assertEqual(role_home("vendor"), "/vendor")
        self.assertEqual(role_home("customer"), "/dashboard")
        self.assertEqual(role_home(None), "/dashboard")

    def test_auth_route(self):
        self.assertEqual(guard_auth_route(auth_state(loading=True)), LOADING)
        self.assertEqual(guard_auth_route(auth_state(signed_in=False)), RENDER)
        self.assertEqual(
            guard_auth_route(auth_state(active="customer")), GuardDecision("redirect", "/")
        )


if __name__ == "__main__":
    unittest.main()
