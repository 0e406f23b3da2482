from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label, Select, TabbedContent, TabPane

from db.auth import AuthError
from db.providers import ProviderError, get_mailer
from utils import config
from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal, SimpleDialogModal

COUNTRIES = [
    ("Sri Lanka", "LK"),
    ("India", "IN"),
    ("Malaysia", "MY"),
    ("Singapore", "SG"),
    ("United Kingdom", "GB"),
    ("Canada", "CA"),
    ("Australia", "AU"),
]


class AuthScreen(BaseScreen):
    """
    Sign in, sign up and password reset. Successful sign-in needs no navigation
    here: the app re-runs the guard when the session changes.
    """

    ROUTE = "/auth"

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="super-tab-authscr"):
            with TabPane("Sign in", id="tab-login"):
                with Vertical(id="div-login"):
                    yield Label("Email")
                    yield Input(placeholder="you@example.com", id="input-login-email")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-login-pwd"
                    )
                    with Horizontal(id="div-login-btns"):
                        yield Button("Quit", id="btn-quit")
                        yield Button("Sign in", id="btn-login", variant="primary")

            with TabPane("Sign up", id="tab-signup"):
                with Vertical(id="div-reg"):
                    yield Label("Full name")
                    yield Input(placeholder="Devi Raman", id="input-reg-name")
                    yield Label("Email")
                    yield Input(placeholder="you@example.com", id="input-reg-email")
                    yield Label("Country")
                    yield Select(
                        COUNTRIES,
                        value=config.DEFAULT_COUNTRY,
                        allow_blank=False,
                        id="select-reg-country",
                    )
                    yield Label("Password")
                    yield Input(
                        placeholder="at least 6 characters",
                        password=True,
                        id="input-reg-pwd",
                    )
                    with Container(id="div-reg-btns"):
                        yield Button("Create account", id="btn-reg", variant="primary")

            with TabPane("Forgot password", id="tab-reset"):
                with Vertical(id="div-reset"):
                    yield Label("Email")
                    yield Input(placeholder="you@example.com", id="input-reset-email")
                    yield Button("Send reset code", id="btn-reset-send")
                    yield Label("Reset code")
                    yield Input(placeholder="code from the e-mail", id="input-reset-code")
                    yield Label("New password")
                    yield Input(password=True, id="input-reset-pwd")
                    yield Button("Update password", id="btn-reset-update", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-email").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()
        if event.key == "enter" and self.focused == self.query_one("#input-reg-pwd"):
            self.handle_registration_submit()

    def _mark_invalid(self, selector: str) -> None:
        widget = self.query_one(selector, Input)
        widget.add_class("-invalid")
        widget.focus()

    @on(Input.Changed)
    def clear_invalid(self, message: Input.Changed) -> None:
        message.input.remove_class("-invalid")

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        email = self.query_one("#input-login-email", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value

        if not email or not pwd:
            self.notify("Email or password cannot be empty!", severity="error")
            self._mark_invalid("#input-login-email" if not email else "#input-login-pwd")
            return

        error = await self.app.state.auth.sign_in(email, pwd)
        if error:
            self.notify(str(error), severity="error")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            self._mark_invalid("#input-login-pwd")
            return

        self.query_one("#input-login-pwd", Input).value = ""
        self.notify(f"Welcome back, {email}!")

    @on(Button.Pressed, "#btn-reg")
    @work(exclusive=True)
    async def handle_registration_submit(self) -> None:
        name = self.query_one("#input-reg-name", Input).value.strip()
        email = self.query_one("#input-reg-email", Input).value.strip()
        pwd = self.query_one("#input-reg-pwd", Input).value
        country = self.query_one("#select-reg-country", Select).value

        if not name or not email or not pwd:
            self.notify("Make sure all inputs are filled.", severity="error")
            return

        error = await self.app.state.auth.sign_up(email, pwd, name, country)
        if error:
            self.notify(str(error), severity="error")
            self._mark_invalid("#input-reg-email" if "registered" in str(error) else "#input-reg-pwd")
            return

        await self.app.push_screen_wait(
            SimpleDialogModal("Account created. You can sign in now.", tone="positive")
        )
        self.query_one(TabbedContent).active = "tab-login"
        self.query_one("#input-login-email", Input).value = email
        self.query_one("#input-login-pwd", Input).focus()

    @on(Button.Pressed, "#btn-reset-send")
    @work(exclusive=True)
    async def handle_reset_send(self) -> None:
        email = self.query_one("#input-reset-email", Input).value.strip()
        if "@" not in email:
            self.notify("Enter the e-mail address of your account.", severity="error")
            self._mark_invalid("#input-reset-email")
            return
        try:
            await self.app.state.auth_client.reset_password_for_email(email, get_mailer())
        except ProviderError as e:
            self.notify(f"Could not send the reset e-mail: {e}", severity="error")
            return
        self.notify("If an account exists for that address, a reset code is on its way.")
        self.query_one("#input-reset-code", Input).focus()

    @on(Button.Pressed, "#btn-reset-update")
    @work(exclusive=True)
    async def handle_reset_update(self) -> None:
        code = self.query_one("#input-reset-code", Input).value
        pwd = self.query_one("#input-reset-pwd", Input).value
        try:
            await self.app.state.auth_client.update_password(code, pwd)
        except AuthError as e:
            self.notify(str(e), severity="error")
            return
        self.notify("Password updated. Please sign in.")
        self.query_one(TabbedContent).active = "tab-login"

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
