"""
Auth service used by the client tier: account creation, password sign-in, sessions
with refresh, a session-change listener and password reset.

Listeners are invoked while the client holds its internal lock. A listener that
awaits another client call which emits (``get_session`` refreshing a token, for
instance) will deadlock; listeners should schedule such work instead of awaiting it.
"""

from __future__ import annotations

import asyncio
import inspect
import secrets
import sqlite3
import uuid
from datetime import datetime
from typing import Awaitable, Callable, List, Literal, Optional, Union

from db.database import connect
from db.models import AuthUser, Session
from utils import config
from utils.logger import get_logger
from utils.pure import check_password, generate_booking_code, hash_password
from utils.storage import LocalStorage

_logger = get_logger(__name__)

AuthEvent = Literal["SIGNED_IN", "SIGNED_OUT", "TOKEN_REFRESHED", "USER_UPDATED"]
AuthListener = Callable[[AuthEvent, Optional[Session]], Union[None, Awaitable[None]]]

SESSION_STORAGE_KEY = "auth-session"
MIN_PASSWORD_LENGTH = 6


class AuthError(Exception):
    pass


class Subscription:
    def __init__(self, client: "AuthClient", listener: AuthListener) -> None:
        self._client = client
        self._listener = listener

    def unsubscribe(self) -> None:
        if self._listener in self._client._listeners:
            self._client._listeners.remove(self._listener)


def _ts(value: datetime) -> str:
    return value.isoformat(sep=" ", timespec="seconds")


class AuthClient:
    def __init__(
        self,
        storage: LocalStorage,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.storage = storage
        self._clock = clock
        self._listeners: List[AuthListener] = []
        self._lock = asyncio.Lock()

    # ---------------------------
    # Listener
    # ---------------------------

    def on_auth_state_change(self, callback: AuthListener) -> Subscription:
        self._listeners.append(callback)
        return Subscription(self, callback)

    async def _emit(self, event: AuthEvent, session: Optional[Session]) -> None:
        _logger.debug(f"Auth event {event}")
        async with self._lock:
            for listener in list(self._listeners):
                result = listener(event, session)
                if inspect.isawaitable(result):
                    await result

    # ---------------------------
    # Accounts
    # ---------------------------

    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: str,
        country: str = config.DEFAULT_COUNTRY,
    ) -> AuthUser:
        """Create an account. Does not sign in; the customer role comes from the store."""
        email = (email or "").strip().lower()
        if "@" not in email:
            raise AuthError("Invalid email address.")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters.")

        user_id = str(uuid.uuid4())
        async with connect() as conn:
            try:
                await conn.execute(
                    "INSERT INTO users(id, email, password_hash) VALUES (?, ?, ?);",
                    (user_id, email, hash_password(password)),
                )
            except sqlite3.IntegrityError as e:
                raise AuthError("User already registered.") from e
            await conn.execute(
                "INSERT INTO profiles(user_id, full_name, country) VALUES (?, ?, ?);",
                (user_id, (full_name or "").strip(), country or config.DEFAULT_COUNTRY),
            )
            await conn.commit()
        _logger.info(f"New account {email}")
        return AuthUser(id=user_id, email=email)

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        email = (email or "").strip().lower()
        async with connect() as conn:
            cur = await conn.execute(
                "SELECT id, email, password_hash FROM users WHERE email = ?;", (email,)
            )
            row = await cur.fetchone()
            await cur.close()
        if not row or not check_password(password or "", row[2]):
            raise AuthError("Invalid login credentials.")

        session = await self._create_session(AuthUser(id=row[0], email=row[1]))
        await self._emit("SIGNED_IN", session)
        return session

    async def sign_out(self) -> None:
        token = self.storage.get_item(SESSION_STORAGE_KEY)
        if token:
            async with connect() as conn:
                await conn.execute(
                    "DELETE FROM auth_sessions WHERE access_token = ?;", (token,)
                )
                await conn.commit()
            self.storage.remove_item(SESSION_STORAGE_KEY)
        await self._emit("SIGNED_OUT", None)

    # ---------------------------
    # Sessions
    # ---------------------------

    async def _create_session(self, user: AuthUser) -> Session:
        now = self._clock()
        access_token = secrets.token_urlsafe(32)
        expires_at = now + config.SESSION_TTL
        async with connect() as conn:
            await conn.execute(
                """
                INSERT INTO auth_sessions(access_token, refresh_token, user_id,
                                          expires_at, refresh_expires_at)
                VALUES (?, ?, ?, ?, ?);
                """,
                (
                    access_token,
                    secrets.token_urlsafe(32),
                    user.id,
                    _ts(expires_at),
                    _ts(now + config.REFRESH_TTL),
                ),
            )
            await conn.commit()
        self.storage.set_item(SESSION_STORAGE_KEY, access_token)
        return Session(access_token=access_token, user=user, expires_at=expires_at)

    async def get_session(self) -> Optional[Session]:
        """
        The stored session, if any. An expired access token is rotated while its
        refresh token is still valid (emitting TOKEN_REFRESHED); otherwise the
        stored token is dropped.
        """
        token = self.storage.get_item(SESSION_STORAGE_KEY)
        if not token:
            return None

        async with connect() as conn:
            cur = await conn.execute(
                """
                SELECT s.user_id, u.email, s.expires_at, s.refresh_expires_at
                FROM auth_sessions s JOIN users u ON u.id = s.user_id
                WHERE s.access_token = ?;
                """,
                (token,),
            )
            row = await cur.fetchone()
            await cur.close()
        if not row:
            self.storage.remove_item(SESSION_STORAGE_KEY)
            return None

        now = self._clock()
        user = AuthUser(id=row[0], email=row[1])
        expires_at = datetime.fromisoformat(str(row[2]))
        if expires_at > now:
            return Session(access_token=token, user=user, expires_at=expires_at)

        async with connect() as conn:
            await conn.execute("DELETE FROM auth_sessions WHERE access_token = ?;", (token,))
            await conn.commit()
        if datetime.fromisoformat(str(row[3])) <= now:
            _logger.info(f"Session for {user.email} expired.")
            self.storage.remove_item(SESSION_STORAGE_KEY)
            return None

        session = await self._create_session(user)
        await self._emit("TOKEN_REFRESHED", session)
        return session

    # ---------------------------
    # Password reset
    # ---------------------------

    async def reset_password_for_email(self, email: str, mailer) -> None:
        """Mail a one-time reset code. Unknown addresses are ignored without error."""
        email = (email or "").strip().lower()
        async with connect() as conn:
            cur = await conn.execute("SELECT id FROM users WHERE email = ?;", (email,))
            row = await cur.fetchone()
            await cur.close()
            if not row:
                _logger.info(f"Password reset requested for unknown address {email}")
                return
            token = generate_booking_code(10)
            await conn.execute(
                "INSERT INTO password_resets(token, user_id, expires_at) VALUES (?, ?, ?);",
                (token, row[0], _ts(self._clock() + config.PASSWORD_RESET_TTL)),
            )
            await conn.commit()
        await mailer.send(
            email,
            "Reset your password",
            f"<p>Your password reset code is <strong>{token}</strong>.</p>"
            f"<p>It is valid for one hour.</p>",
        )

    async def update_password(self, token: str, new_password: str) -> None:
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters.")
        token = (token or "").strip().upper()
        async with connect() as conn:
            cur = await conn.execute(
                "SELECT user_id, expires_at, used FROM password_resets WHERE token = ?;",
                (token,),
            )
            row = await cur.fetchone()
            await cur.close()
            if not row or row[2] or datetime.fromisoformat(str(row[1])) <= self._clock():
                raise AuthError("Reset code is invalid or has expired.")
            await conn.execute(
                "UPDATE users SET password_hash = ? WHERE id = ?;",
                (hash_password(new_password), row[0]),
            )
            await conn.execute(
                "UPDATE password_resets SET used = 1 WHERE token = ?;", (token,)
            )
            await conn.commit()
        _logger.info(f"Password updated for user {row[0]}")
        await self._emit("USER_UPDATED", await self._current_session_without_refresh())

    async def _current_session_without_refresh(self) -> Optional[Session]:
        token = self.storage.get_item(SESSION_STORAGE_KEY)
        if not token:
            return None
        async with connect() as conn:
            cur = await conn.execute(
                """
                SELECT s.user_id, u.email, s.expires_at
                FROM auth_sessions s JOIN users u ON u.id = s.user_id
                WHERE s.access_token = ?;
                """,
                (token,),
            )
            row = await cur.fetchone()
            await cur.close()
        if not row:
            return None
        return Session(
            access_token=token,
            user=AuthUser(id=row[0], email=row[1]),
            expires_at=datetime.fromisoformat(str(row[2])),
        )
