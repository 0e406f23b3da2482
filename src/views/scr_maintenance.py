from textual import on
from textual.app import ComposeResult
from textual.containers import Center, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, Label

from utils.messages import NavigateMessage
from views.base_screen import BaseScreen


class MaintenanceScreen(BaseScreen):
    """
    Replaces every route except the admin and sign-in ones while maintenance
    mode is on. The administrator button is always available.
    """

    ROUTE = "/maintenance"

    def __init__(self):
        super().__init__()
        self.configure(show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Center():
            with Vertical(id="div-maintenance"):
                yield Label("", id="label-maintenance-site")
                yield Label("Under Maintenance", id="label-maintenance-title")
                yield Label("", id="label-maintenance-message")
                yield Button("Administrator access", id="btn-admin-access", variant="primary")

    def on_mount(self) -> None:
        self.render_message()

    @on(ScreenResume)
    def render_message(self) -> None:
        settings = self.app.state.site.settings
        self.query_one("#label-maintenance-site", Label).update(settings.site_name)
        self.query_one("#label-maintenance-message", Label).update(
            settings.maintenance_message
        )

    @on(Button.Pressed, "#btn-admin-access")
    def handle_admin_access(self) -> None:
        # the guard sends signed-out visitors to sign in first
        self.post_message(NavigateMessage("/admin"))
