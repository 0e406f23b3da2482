from typing import Dict, Optional, Tuple

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.color import Color, ColorParseError
from textual.theme import Theme
from textual.widgets import LoadingIndicator

from contexts.guard import GuardDecision, guard, guard_auth_route
from db.models import SiteSettings
from db.realtime import RealtimeSubscription, get_channel
from utils.logger import get_logger
from utils.messages import (
    AuthChangedMessage,
    CartChangedMessage,
    NavigateMessage,
    NewOrderMessage,
    NotificationReceivedMessage,
    QuitRequestedMessage,
    SettingsChangedMessage,
)
from utils.pure import hsl_triplet_to_css
from utils.state import GlobalState
from views.base_screen import BaseScreen
from views.scr_admin import AdminSettingsScreen
from views.scr_admin_users import AdminUsersScreen
from views.scr_auth import AuthScreen
from views.scr_become_vendor import BecomeVendorScreen
from views.scr_cart import CartScreen
from views.scr_loading import LoadingScreen
from views.scr_maintenance import MaintenanceScreen
from views.scr_orders import OrdersScreen
from views.scr_products import ProductsScreen
from views.scr_support import SupportScreen
from views.scr_temples import TemplesScreen
from views.scr_vendor import VendorScreen

_logger = get_logger(__name__)

DARK_THEME = "temple-connect"
LIGHT_THEME = "temple-connect-light"


class TempleConnectApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "/loading": LoadingScreen,
        "/products": ProductsScreen,
        "/temples": TemplesScreen,
        "/cart": CartScreen,
        "/auth": AuthScreen,
        "/dashboard": OrdersScreen,
        "/become-vendor": BecomeVendorScreen,
        "/vendor": VendorScreen,
        "/admin": AdminSettingsScreen,
        "/admin/users": AdminUsersScreen,
        "/support": SupportScreen,
        "/maintenance": MaintenanceScreen,
    }

    ROUTE_ALIASES = {"/": "/products"}

    # routes missing here are public
    PROTECTED_ROUTES: Dict[str, Tuple[str, ...]] = {
        "/dashboard": ("customer",),
        "/become-vendor": ("any",),
        "/vendor": ("vendor",),
        "/admin": ("admin",),
        "/admin/users": ("admin",),
        "/support": ("any",),
    }

    ROUTE_TITLES = {
        "/products": "Products",
        "/temples": "Temples",
        "/cart": "Cart",
        "/auth": "Sign in",
        "/dashboard": "My Orders",
        "/become-vendor": "Become a Vendor",
        "/vendor": "Vendor Dashboard",
        "/admin": "Site Settings",
        "/admin/users": "Users & Applications",
        "/support": "Support",
        "/maintenance": "Maintenance",
    }

    CSS_PATH = "styles/app.tcss"

    state: GlobalState

    def __init__(self, state: Optional[GlobalState] = None):
        super().__init__()
        self.state = state or GlobalState()
        self.current_path: Optional[str] = None
        self._pending_path: Optional[str] = None
        self._realtime: Optional[RealtimeSubscription] = None
        self._realtime_uid: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.state.cart.set_notifier(lambda msg, severity: self.notify(msg, severity=severity))
        self.state.cart.subscribe(lambda: self.post_message(CartChangedMessage()))
        self.state.auth.subscribe(lambda: self.post_message(AuthChangedMessage()))
        self.state.site.subscribe(lambda: self.post_message(SettingsChangedMessage()))
        self.apply_branding(self.state.site.settings)
        self.main_flow()

    @work
    async def main_flow(self):
        await self.state.start()
        await self.navigate("/")

    # ---------------------------
    # Routing
    # ---------------------------

    def decide(self, path: str) -> GuardDecision:
        """Maintenance gate first, then the route guard."""
        if path in ("/maintenance", "/loading"):
            return GuardDecision("render")
        if self.state.site.maintenance_blocks(path):
            return GuardDecision("redirect", "/maintenance")
        if path == "/auth":
            return guard_auth_route(self.state.auth)
        if path in self.PROTECTED_ROUTES:
            return guard(self.state.auth, self.PROTECTED_ROUTES[path])
        return GuardDecision("render")

    async def navigate(self, path: str) -> None:
        path = self.ROUTE_ALIASES.get(path, path)
        if path not in self.MODES:
            _logger.warning(f"Unknown route {path}, going home.")
            path = "/products"

        seen = {path}
        decision = self.decide(path)
        while decision.action == "redirect" and decision.target not in seen:
            seen.add(decision.target)
            _logger.debug(f"Redirect {path} -> {decision.target}")
            path = self.ROUTE_ALIASES.get(decision.target, decision.target)
            decision = self.decide(path)

        if decision.action == "loading":
            self._pending_path = path
            if self.current_mode != "/loading":
                await self.switch_mode("/loading")
            return

        self._pending_path = None
        self.current_path = path
        self.sub_title = self.ROUTE_TITLES.get(path, "")
        if self.current_mode != path:
            await self.switch_mode(path)

    @on(NavigateMessage)
    async def handle_navigate(self, message: NavigateMessage) -> None:
        await self.navigate(message.path)

    # ---------------------------
    # Context changes
    # ---------------------------

    @on(AuthChangedMessage)
    async def handle_auth_changed(self) -> None:
        self._sync_realtime()
        self._refresh_current_screen()
        target = self._pending_path or self.current_path
        if target and not (self._pending_path and self.state.auth.loading):
            await self.navigate(target)

    @on(CartChangedMessage)
    def handle_cart_changed(self) -> None:
        self._refresh_current_screen()

    @on(SettingsChangedMessage)
    async def handle_settings_changed(self) -> None:
        self.apply_branding(self.state.site.settings)
        if self.current_path == "/maintenance" and not self.state.site.settings.maintenance_mode:
            await self.navigate("/")
        elif self.current_path:
            await self.navigate(self.current_path)

    @on(NewOrderMessage)
    async def handle_new_order(self) -> None:
        await self.navigate("/dashboard")

    @on(NotificationReceivedMessage)
    def handle_notification(self, message: NotificationReceivedMessage) -> None:
        text = message.title if not message.message else f"{message.title}\n{message.message}"
        self.notify(text, title="Notification")

    def _refresh_current_screen(self) -> None:
        for screen in self.screen_stack:
            if isinstance(screen, BaseScreen):
                screen.refresh_sidebar()

    def _sync_realtime(self) -> None:
        uid = self.state.uid
        if uid == self._realtime_uid:
            return
        if self._realtime:
            self._realtime.unsubscribe()
            self._realtime = None
        self._realtime_uid = uid
        if uid:
            self._realtime = get_channel().on_insert(
                "notifications",
                lambda row: self.post_message(
                    NotificationReceivedMessage(row.get("title", ""), row.get("message"))
                ),
                user_id=uid,
            )

    # ---------------------------
    # Branding
    # ---------------------------

    def apply_branding(self, settings: SiteSettings) -> None:
        document = self.state.site.document
        self.title = document.title

        defaults = SiteSettings()
        primary = self._theme_color(settings.primary_color, defaults.primary_color)
        accent = self._theme_color(settings.accent_color, defaults.accent_color)
        self.register_theme(Theme(name=DARK_THEME, primary=primary, accent=accent, dark=True))
        self.register_theme(Theme(name=LIGHT_THEME, primary=primary, accent=accent, dark=False))
        if self.theme in (DARK_THEME, LIGHT_THEME):
            self.refresh_css()
        else:
            self.theme = DARK_THEME

    @staticmethod
    def _theme_color(value: str, fallback: str) -> str:
        css = hsl_triplet_to_css(value)
        try:
            Color.parse(css)
        except ColorParseError:
            _logger.warning(f"Ignoring unparseable colour {value!r}")
            return hsl_triplet_to_css(fallback)
        return css

    def action_switch_light(self):
        if self.theme == DARK_THEME:
            self.theme = LIGHT_THEME
        else:
            self.theme = DARK_THEME
        self.notify(f"Theme changed to {self.theme}")

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        if self._realtime:
            self._realtime.unsubscribe()
        self.state.auth.close()
        self.exit()


def run():
    app = TempleConnectApp()
    app.run()


if __name__ == "__main__":
    run()
