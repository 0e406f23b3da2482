import asyncio
import os
import sys
import unittest
from datetime import datetime, timedelta

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from contexts.auth import ACTIVE_ROLE_KEY, AuthContext, primary_role  # noqa: E402
from db.auth import AuthError  # noqa: E402
from db.models import AuthUser, Session  # noqa: E402
from utils.storage import LocalStorage  # noqa: E402


def make_session(user_id, email=None):
    return Session(
        access_token=f"token-{user_id}",
        user=AuthUser(id=user_id, email=email or f"{user_id}@example.com"),
        expires_at=datetime(2030, 1, 1) + timedelta(hours=1),
    )


class FakeSubscription:
    def __init__(self, client, callback):
        self._client = client
        self._callback = callback

    def unsubscribe(self):
        if self._callback in self._client.listeners:
            self._client.listeners.remove(self._callback)


class FakeAuthClient:
    """Emits synchronously to listeners, like the real client does under its lock."""

    def __init__(self, session=None, passwords=None):
        self.session = session
        self.passwords = passwords or {}
        self.listeners = []

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        return FakeSubscription(self, callback)

    async def get_session(self):
        return self.session

    async def emit(self, event, session):
        self.session = session
        for callback in list(self.listeners):
            callback(event, session)

    async def sign_in_with_password(self, email, password):
        if self.passwords.get(email) != password:
            raise AuthError("Invalid login credentials.")
        session = make_session(email.split("@")[0], email)
        await self.emit("SIGNED_IN", session)
        return session

    async def sign_up(self, email, password, full_name, country):
        if email in self.passwords:
            raise AuthError("User already registered.")
        self.passwords[email] = password
        return AuthUser(id=email.split("@")[0], email=email)

    async def sign_out(self):
        await self.emit("SIGNED_OUT", None)


class RoleTable:
    """Role fetcher with per-user results, failures and optional gates."""

    def __init__(self, roles=None):
        self.roles = roles or {}
        self.gates = {}
        self.calls = []

    async def __call__(self, user_id):
        self.calls.append(user_id)
        if user_id in self.gates:
            await self.gates[user_id].wait()
        result = self.roles.get(user_id, [])
        if isinstance(result, Exception):
            raise result
        return result


class PrimaryRoleTestCase(unittest.TestCase):
    def test_precedence(self):
        self.assertEqual(primary_role(["customer", "vendor", "admin"]), "admin")
        self.assertEqual(primary_role(["customer", "vendor"]), "vendor")
        self.assertEqual(primary_role(["customer"]), "customer")
        self.assertEqual(primary_role([]), "customer")
        self.assertEqual(primary_role(["superuser"]), "customer")


class AuthContextTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.storage = LocalStorage()
        self.roles = RoleTable()

    def make_context(self, session=None, passwords=None):
        self.client = FakeAuthClient(session, passwords)
        self.ctx = AuthContext(self.client, self.storage, fetch_roles=self.roles)
        self.changes = 0

        def on_change():
            self.changes += 1

        self.ctx.subscribe(on_change)
        return self.ctx

    # ---------- Initialisation ----------

    async def test_initialize_without_session(self):
        ctx = self.make_context()
        self.assertTrue(ctx.loading)
        await ctx.initialize()
        self.assertFalse(ctx.loading)
        self.assertIsNone(ctx.user)
        self.assertIsNone(ctx.user_role)
        self.assertEqual(ctx.user_roles, [])
        self.assertIsNone(ctx.active_view_role)
        self.assertEqual(self.roles.calls, [])
        self.assertEqual(len(self.client.listeners), 1)

    async def test_initialize_with_session_loads_roles(self):
        self.roles.roles["u1"] = ["customer", "vendor", "admin"]
        ctx = self.make_context(make_session("u1"))
        await ctx.initialize()
        # roles are fetched in the background
        self.assertTrue(ctx.loading)
        self.assertEqual(ctx.user.id, "u1")

        await ctx.settled()
        self.assertFalse(ctx.loading)
        self.assertEqual(ctx.user_roles, ["customer", "vendor", "admin"])
        self.assertEqual(ctx.user_role, "admin")
        self.assertEqual(ctx.active_view_role, "admin")
        self.assertTrue(ctx.is_admin)
        self.assertFalse(ctx.is_vendor)
        self.assertTrue(ctx.has_multiple_roles)
        self.assertIn(ctx.active_view_role, ctx.user_roles)

    async def test_failed_role_fetch_means_customer(self):
        self.roles.roles["u1"] = RuntimeError("backend down")
        ctx = self.make_context(make_session("u1"))
        await ctx.initialize()
        await ctx.settled()
        self.assertEqual(ctx.user_roles, ["customer"])
        self.assertEqual(ctx.user_role, "customer")
        self.assertTrue(ctx.is_customer)
        self.assertFalse(ctx.has_multiple_roles)

    async def test_empty_or_unknown_roles_mean_customer(self):
        self.roles.roles["u1"] = ["superuser"]
        ctx = self.make_context(make_session("u1"))
        await ctx.initialize()
        await ctx.settled()
        self.assertEqual(ctx.user_roles, ["customer"])
        self.assertEqual(ctx.active_view_role, "customer")

    async def test_stored_active_role_is_restored_when_held(self):
        self.roles.roles["u1"] = ["admin", "vendor", "customer"]
        self.storage.set_item(ACTIVE_ROLE_KEY.format(user_id="u1"), "vendor")
        ctx = self.make_context(make_session("u1"))
        await ctx.initialize()
        await ctx.settled()
        self.assertEqual(ctx.user_role, "admin")
        self.assertEqual(ctx.active_view_role, "vendor")

    async def test_stored_active_role_is_ignored_when_not_held(self):
        self.roles.roles["u1"] = ["vendor", "customer"]
        self.storage.set_item(ACTIVE_ROLE_KEY.format(user_id="u1"), "admin")
        ctx = self.make_context(make_session("u1"))
        await ctx.initialize()
        await ctx.settled()
        self.assertEqual(ctx.active_view_role, "vendor")

    # ---------- Sign in / out ----------

    async def test_sign_in_and_out(self):
        self.roles.roles["devi"] = ["customer"]
        ctx = self.make_context(passwords={"devi@example.com": "secret1"})
        await ctx.initialize()

        error = await ctx.sign_in("devi@example.com", "wrong")
        self.assertIsInstance(error, AuthError)
        self.assertIsNone(ctx.user)

        self.assertIsNone(await ctx.sign_in("devi@example.com", "secret1"))
        await ctx.settled()
        self.assertEqual(ctx.user.id, "devi")
        self.assertEqual(ctx.active_view_role, "customer")

        before = self.changes
        await ctx.sign_out()
        self.assertGreater(self.changes, before)
        self.assertIsNone(ctx.session)
        self.assertIsNone(ctx.user)
        self.assertEqual(ctx.user_roles, [])
        self.assertIsNone(ctx.active_view_role)

    async def test_sign_up_returns_error(self):
        ctx = self.make_context(passwords={"devi@example.com": "secret1"})
        await ctx.initialize()
        self.assertIsInstance(await ctx.sign_up("devi@example.com", "x", "Devi"), AuthError)
        self.assertIsNone(await ctx.sign_up("new@example.com", "secret1", "New"))
        # sign up does not sign in
        self.assertIsNone(ctx.user)

    async def test_roles_for_previous_user_are_dropped(self):
        self.roles.roles["devi"] = ["admin", "customer"]
        self.roles.gates["devi"] = asyncio.Event()
        ctx = self.make_context(passwords={"devi@example.com": "secret1"})
        await ctx.initialize()

        await ctx.sign_in("devi@example.com", "secret1")
        self.assertTrue(ctx.loading)
        await ctx.sign_out()

        self.roles.gates["devi"].set()
        await ctx.settled()
        self.assertIsNone(ctx.user)
        self.assertIsNone(ctx.user_role)
        self.assertEqual(ctx.user_roles, [])
        self.assertFalse(ctx.loading)

    async def test_close_unsubscribes(self):
        ctx = self.make_context()
        await ctx.initialize()
        ctx.close()
        self.assertEqual(self.client.listeners, [])
        await self.client.emit("SIGNED_IN", make_session("u1"))
        self.assertIsNone(ctx.user)

    # ---------- Role switching ----------

    async def test_switch_role(self):
        self.roles.roles["u1"] = ["admin", "customer"]
        ctx = self.make_context(make_session("u1"))
        await ctx.initialize()
        await ctx.settled()

        self.assertFalse(ctx.switch_role("vendor"))
        self.assertEqual(ctx.active_view_role, "admin")

        before = self.changes
        self.assertTrue(ctx.switch_role("customer"))
        self.assertEqual(ctx.active_view_role, "customer")
        self.assertEqual(ctx.user_role, "admin")
        self.assertTrue(ctx.is_customer)
        self.assertEqual(self.changes, before + 1)
        self.assertEqual(self.storage.get_item(ACTIVE_ROLE_KEY.format(user_id="u1")), "customer")

    async def test_switch_role_when_signed_out(self):
        ctx = self.make_context()
        await ctx.initialize()
        self.assertFalse(ctx.switch_role("customer"))
        self.assertIsNone(ctx.active_view_role)

    async def test_subscribe_returns_unsubscribe(self):
        ctx = self.make_context()
        calls = []
        unsubscribe = ctx.subscribe(lambda: calls.append(1))
        await ctx.initialize()
        unsubscribe()
        unsubscribe()
        await ctx.sign_out()
        self.assertEqual(calls, [1])


if __name__ == "__main__":
    unittest.main()
