import re
from typing import Dict

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, VerticalScroll
from textual.events import ScreenResume
from textual.validation import Number, Regex
from textual.widgets import Button, Input, Label, Switch

import db.crud as crud
from views.base_screen import BaseScreen

HSL_TRIPLET = r"^\d{1,3}(\.\d+)?\s+\d{1,3}(\.\d+)?%\s+\d{1,3}(\.\d+)?%$"

# (column, label, validators)
TEXT_FIELDS = [
    ("site_name", "Site name", []),
    ("logo_url", "Logo URL", []),
    ("favicon_url", "Favicon URL", []),
    ("primary_color", "Primary colour (HSL, e.g. 217 91% 60%)", [Regex(HSL_TRIPLET)]),
    ("accent_color", "Accent colour (HSL)", [Regex(HSL_TRIPLET)]),
    ("primary_font", "Primary font", []),
    ("display_font", "Display font", []),
    ("hero_title", "Hero title", []),
    ("hero_subtitle", "Hero subtitle", []),
    ("footer_tagline", "Footer tagline", []),
    ("commission_rate", "Commission rate (%)", [Number(minimum=0, maximum=100)]),
    ("maintenance_message", "Maintenance message", []),
    ("otp_email_subject", "OTP e-mail subject ({code} is replaced)", []),
    ("otp_email_template", "OTP e-mail body, HTML ({code}, {site_name})", []),
    ("booking_email_subject", "Booking e-mail subject ({booking_code})", []),
]

OPTIONAL_FIELDS = {"logo_url", "favicon_url"}


class AdminSettingsScreen(BaseScreen):
    """
    Site settings editor: branding, commission, e-mail templates and the
    maintenance switch.
    """

    ROUTE = "/admin"

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with VerticalScroll(id="div-settings"):
            with Horizontal(id="hort-maintenance"):
                yield Label("Maintenance mode", id="label-maintenance-switch")
                yield Switch(id="switch-maintenance")
            for column, label, validators in TEXT_FIELDS:
                yield Label(label)
                yield Input(id=f"input-setting-{column}", validators=validators)
            with Horizontal(id="hort-settings-btns"):
                yield Button("Reset", id="btn-settings-reset")
                yield Button("Save", id="btn-settings-save", variant="primary")

    def on_mount(self) -> None:
        self.fill_form()

    @on(ScreenResume)
    @on(Button.Pressed, "#btn-settings-reset")
    def fill_form(self) -> None:
        settings = self.app.state.site.settings
        for column, _, _ in TEXT_FIELDS:
            value = getattr(settings, column)
            if column == "commission_rate":
                value = f"{value:g}"
            widget = self.query_one(f"#input-setting-{column}", Input)
            widget.value = "" if value is None else str(value)
            widget.remove_class("-invalid")
        self.query_one("#switch-maintenance", Switch).value = settings.maintenance_mode

    def _collect(self) -> Dict[str, object]:
        values: Dict[str, object] = {}
        for column, label, _ in TEXT_FIELDS:
            widget = self.query_one(f"#input-setting-{column}", Input)
            text = widget.value.strip()
            if not text and column not in OPTIONAL_FIELDS:
                raise ValueError(f"{label} cannot be empty.", widget)
            if text and not widget.is_valid:
                raise ValueError(f"{label} is not valid.", widget)
            values[column] = text or None
        values["commission_rate"] = float(values["commission_rate"])
        values["primary_color"] = re.sub(r"\s+", " ", values["primary_color"])
        values["accent_color"] = re.sub(r"\s+", " ", values["accent_color"])
        values["maintenance_mode"] = self.query_one("#switch-maintenance", Switch).value
        return values

    @on(Button.Pressed, "#btn-settings-save")
    @work(exclusive=True)
    async def handle_save(self) -> None:
        try:
            values = self._collect()
        except ValueError as e:
            message, widget = e.args
            widget.add_class("-invalid")
            widget.focus()
            self.notify(message, severity="error")
            return

        try:
            await crud.update_site_settings(**values)
        except Exception as e:
            self.notify(f"Could not save settings: {e}", severity="error")
            return
        await self.app.state.site.reload()
        self.notify("Settings saved.")
