from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.events import ScreenResume
from textual.widgets import Button, Input, Label, Markdown, Select, TextArea

import db.crud as crud
from db.functions import OtpError, send_otp
from db.providers import ProviderError
from views.base_screen import BaseScreen
from views.modal_otp import OtpModal

DIAL_CODES = [
    ("Sri Lanka (+94)", "+94"),
    ("India (+91)", "+91"),
    ("Malaysia (+60)", "+60"),
    ("Singapore (+65)", "+65"),
    ("United Kingdom (+44)", "+44"),
    ("Canada (+1)", "+1"),
    ("Australia (+61)", "+61"),
]


class BecomeVendorScreen(BaseScreen):
    """
    Vendor application. The form unlocks once the account e-mail is verified
    with a one-time code; phone verification is optional.
    """

    ROUTE = "/become-vendor"

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with VerticalScroll(id="div-become-vendor"):
            yield Markdown("", id="md-application-status")
            with Vertical(id="div-verify-email"):
                yield Label("1. Verify your e-mail", classes="step-title")
                yield Button("Send code", id="btn-send-email-otp", variant="primary")
            with Vertical(id="div-verify-phone"):
                yield Label("2. Verify your phone (optional)", classes="step-title")
                with Horizontal():
                    yield Select(DIAL_CODES, value="+94", allow_blank=False, id="select-dial-code")
                    yield Input(placeholder="771234567", id="input-phone", type="integer")
                    yield Button("Send code", id="btn-send-phone-otp")
            with Vertical(id="div-application-form"):
                yield Label("3. Tell us about your business", classes="step-title")
                yield Label("Business name")
                yield Input(placeholder="Nallur Pooja Stores", id="input-business-name")
                yield Label("Description")
                yield TextArea(id="textarea-description")
                yield Button("Submit application", id="btn-submit-application", variant="success")

    def on_mount(self) -> None:
        self.refresh_status()

    @on(ScreenResume)
    @work(exclusive=True, group="status")
    async def refresh_status(self) -> None:
        auth = self.app.state.auth
        if not auth.user:
            return
        status_md = self.query_one("#md-application-status", Markdown)
        forms = ["#div-verify-email", "#div-verify-phone", "#div-application-form"]

        if "vendor" in auth.user_roles:
            await status_md.update("### You are already a vendor.\n\nSwitch to the vendor view from the sidebar.")
            for selector in forms:
                self.query_one(selector).display = False
            return

        application = await crud.get_vendor_application(auth.user.id)
        verification = await crud.get_verification(auth.user.id, "pre_submission")
        email_ok = bool(verification and verification.email_verified)
        phone_ok = bool(verification and verification.phone_verified)

        if application and application.status in ("pending", "approved"):
            await status_md.update(
                f"### Application for {application.business_name}\n\n"
                f"Status: **{application.status}**"
            )
            for selector in forms:
                self.query_one(selector).display = False
            return

        lines = ["### Become a vendor\n"]
        if application and application.status == "rejected":
            lines.append(f"Your previous application for {application.business_name} was rejected. You may apply again.\n")
        lines.append(f"- E-mail ({auth.user.email}): {'verified' if email_ok else 'not verified'}")
        lines.append(f"- Phone: {'verified' if phone_ok else 'not verified'}")
        await status_md.update("\n".join(lines))

        for selector in forms:
            self.query_one(selector).display = True
        self.query_one("#btn-send-email-otp", Button).disabled = email_ok
        self.query_one("#btn-send-phone-otp", Button).disabled = phone_ok
        self.query_one("#btn-submit-application", Button).disabled = not email_ok

    @on(Button.Pressed, "#btn-send-email-otp")
    @work(exclusive=True, group="otp")
    async def handle_send_email_otp(self) -> None:
        user = self.app.state.auth.user
        try:
            await send_otp(user, "email", "pre_submission")
        except (OtpError, ProviderError) as e:
            self.notify(f"Could not send the code: {e}", severity="error")
            return
        if await self.app.push_screen_wait(OtpModal(user, "email", "pre_submission")):
            self.refresh_status()

    @on(Button.Pressed, "#btn-send-phone-otp")
    @work(exclusive=True, group="otp")
    async def handle_send_phone_otp(self) -> None:
        user = self.app.state.auth.user
        phone_input = self.query_one("#input-phone", Input)
        phone = phone_input.value.strip()
        dial_code = self.query_one("#select-dial-code", Select).value
        if len(phone) < 7:
            phone_input.add_class("-invalid")
            phone_input.focus()
            self.notify("Enter a valid phone number.", severity="error")
            return
        phone_input.remove_class("-invalid")
        try:
            await send_otp(user, "phone", "pre_submission", phone=phone, country_code=dial_code)
        except (OtpError, ProviderError) as e:
            self.notify(f"Could not send the code: {e}", severity="error")
            return
        if await self.app.push_screen_wait(
            OtpModal(
                user,
                "phone",
                "pre_submission",
                destination=f"{dial_code} {phone}",
                phone=phone,
                country_code=dial_code,
            )
        ):
            self.refresh_status()

    @on(Button.Pressed, "#btn-submit-application")
    @work(exclusive=True)
    async def handle_submit(self) -> None:
        name_input = self.query_one("#input-business-name", Input)
        if not name_input.value.strip():
            name_input.add_class("-invalid")
            name_input.focus()
            self.notify("Business name is required.", severity="error")
            return
        name_input.remove_class("-invalid")

        phone = self.query_one("#input-phone", Input).value.strip() or None
        try:
            await crud.submit_vendor_application(
                self.app.state.auth.user.id,
                name_input.value,
                phone=phone,
                description=self.query_one("#textarea-description", TextArea).text.strip(),
            )
        except ValueError as e:
            self.notify(str(e), severity="error")
            return
        self.notify("Application submitted. An administrator will review it shortly.")
        self.refresh_status()
