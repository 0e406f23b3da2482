from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from contexts.auth import AuthContext
from contexts.cart import CartContext
from contexts.site_settings import SiteSettingsContext
from db.auth import AuthClient
from utils import config
from utils.storage import LocalStorage


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Built in dependency order: local storage, then the auth client, then the
    contexts that read from them. Nothing here is a module-level singleton, so
    tests build their own instance.

    Fields:
      - storage: device-local key/value store (session token, cart, role choice)
      - auth_client: the auth service
      - auth: signed-in user, granted roles and the active view role
      - cart: cart lines with stock reconciliation
      - site: site settings and the maintenance gate
    """

    storage_path: Optional[str] = config.STORAGE_PATH
    storage: LocalStorage = field(init=False)
    auth_client: AuthClient = field(init=False)
    auth: AuthContext = field(init=False)
    cart: CartContext = field(init=False)
    site: SiteSettingsContext = field(init=False)

    def __post_init__(self) -> None:
        self.storage = LocalStorage(self.storage_path)
        self.auth_client = AuthClient(self.storage)
        self.auth = AuthContext(self.auth_client, self.storage)
        self.cart = CartContext(self.storage)
        self.site = SiteSettingsContext()

    @property
    def uid(self) -> Optional[str]:
        return self.auth.user.id if self.auth.user else None

    async def start(self) -> None:
        """Load settings and restore the session; roles may still be arriving after."""
        await self.site.load()
        await self.auth.initialize()

    async def end_session(self) -> None:
        if self.auth.user is not None:
            await self.auth.sign_out()
