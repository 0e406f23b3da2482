"""
Auth/Role context: who is signed in, which roles they hold and which role they
are currently viewing the app as.

Roles are never fetched on the auth client's callback stack: the client emits
while holding its lock, so the callback only records the user and schedules the
fetch as a task. Any fetch failure resolves to the customer role.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional, Set

import db.crud as crud
from db.auth import AuthClient, AuthEvent, Subscription
from db.models import AuthUser, Role, Session
from utils import config
from utils.logger import get_logger
from utils.storage import LocalStorage

_logger = get_logger(__name__)

ROLE_PRECEDENCE: tuple = ("admin", "vendor", "customer")
ACTIVE_ROLE_KEY = "activeViewRole_{user_id}"

RoleFetcher = Callable[[str], Awaitable[List[str]]]


def primary_role(roles: Iterable[str]) -> Role:
    """Highest role by fixed precedence admin > vendor > customer."""
    held = set(roles)
    for role in ROLE_PRECEDENCE:
        if role in held:
            return role
    return "customer"


class AuthContext:
    def __init__(
        self,
        client: AuthClient,
        storage: LocalStorage,
        fetch_roles: Optional[RoleFetcher] = None,
    ) -> None:
        self.client = client
        self.storage = storage
        self._fetch_roles = fetch_roles or crud.get_user_roles

        self.session: Optional[Session] = None
        self.user: Optional[AuthUser] = None
        self.user_role: Optional[Role] = None
        self.user_roles: List[Role] = []
        self.active_view_role: Optional[Role] = None

        self._initializing = True
        self._pending: Set[asyncio.Task] = set()
        self._listeners: List[Callable[[], None]] = []
        self._subscription: Optional[Subscription] = None

    # ---------------------------
    # Lifecycle
    # ---------------------------

    async def initialize(self) -> None:
        """Subscribe to session changes first, then read the stored session."""
        self._subscription = self.client.on_auth_state_change(self._on_auth_event)
        try:
            session = await self.client.get_session()
        except Exception as e:
            _logger.error(f"Could not restore session: {e}")
            session = None
        if session is None or self.user is None or self.user.id != session.user.id:
            self._apply_session(session)
        self._initializing = False
        self._changed()

    async def settled(self) -> None:
        """Wait for outstanding role fetches."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def close(self) -> None:
        if self._subscription:
            self._subscription.unsubscribe()
            self._subscription = None

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    @property
    def loading(self) -> bool:
        return self._initializing or bool(self._pending)

    # ---------------------------
    # Session handling
    # ---------------------------

    def _on_auth_event(self, event: AuthEvent, session: Optional[Session]) -> None:
        # runs under the client's lock: record and schedule, never await here
        _logger.debug(f"Auth context saw {event}")
        self._apply_session(session)
        self._changed()

    def _apply_session(self, session: Optional[Session]) -> None:
        self.session = session
        if session is None:
            self.user = None
            self._clear_roles()
            return
        self.user = session.user
        self._schedule_role_fetch(session.user.id)

    def _schedule_role_fetch(self, user_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self._load_roles(user_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _load_roles(self, user_id: str) -> None:
        try:
            roles = await self._fetch_roles(user_id)
        except Exception as e:
            _logger.warning(f"Role fetch failed for {user_id}, using customer: {e}")
            roles = []
        finally:
            self._pending.discard(asyncio.current_task())

        if self.user is None or self.user.id != user_id:
            _logger.debug(f"Dropping roles fetched for signed-out user {user_id}")
            self._changed()
            return

        granted = [r for r in dict.fromkeys(roles or []) if r in ROLE_PRECEDENCE]
        if not granted:
            granted = ["customer"]
        self.user_roles = granted
        self.user_role = primary_role(granted)

        stored = self.storage.get_item(ACTIVE_ROLE_KEY.format(user_id=user_id))
        self.active_view_role = stored if stored in granted else self.user_role
        self._changed()

    def _clear_roles(self) -> None:
        self.user_role = None
        self.user_roles = []
        self.active_view_role = None

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener()

    # ---------------------------
    # Operations
    # ---------------------------

    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: str,
        country: str = config.DEFAULT_COUNTRY,
    ) -> Optional[Exception]:
        try:
            await self.client.sign_up(email, password, full_name, country)
        except Exception as e:
            _logger.info(f"Sign up failed for {email}: {e}")
            return e
        return None

    async def sign_in(self, email: str, password: str) -> Optional[Exception]:
        try:
            await self.client.sign_in_with_password(email, password)
        except Exception as e:
            _logger.info(f"Sign in failed for {email}: {e}")
            return e
        return None

    async def sign_out(self) -> None:
        await self.client.sign_out()
        self.session = None
        self.user = None
        self._clear_roles()
        self._changed()

    def switch_role(self, role: str) -> bool:
        """View the app as another held role. Unheld roles are ignored."""
        if self.user is None or role not in self.user_roles:
            _logger.debug(f"Ignoring switch to unheld role {role}")
            return False
        self.active_view_role = role
        self.storage.set_item(ACTIVE_ROLE_KEY.format(user_id=self.user.id), role)
        self._changed()
        return True

    @property
    def is_admin(self) -> bool:
        return self.active_view_role == "admin"

    @property
    def is_vendor(self) -> bool:
        return self.active_view_role == "vendor"

    @property
    def is_customer(self) -> bool:
        return self.active_view_role == "customer"

    @property
    def has_multiple_roles(self) -> bool:
        return len(self.user_roles) > 1
