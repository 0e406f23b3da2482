from typing import Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.timer import Timer
from textual.validation import Regex
from textual.widgets import Button, Input, Label

from db.functions import OtpError, send_otp, verify_otp
from db.models import AuthUser, OtpChannel, VerificationStage
from db.providers import ProviderError
from utils import config


class OtpModal(ModalScreen[bool]):
    """
    Ask for the 6-digit code just sent on one channel.
    Resending is locked for a minute after each send. Returns True once verified.
    """

    def __init__(
        self,
        user: AuthUser,
        channel: OtpChannel,
        stage: VerificationStage = "pre_submission",
        destination: str = "",
        phone: Optional[str] = None,
        country_code: Optional[str] = None,
    ) -> None:
        super().__init__()
        self._user = user
        self._channel = channel
        self._stage = stage
        self._destination = destination or user.email
        self._phone = phone
        self._country_code = country_code
        self._countdown = config.OTP_RESEND_SECONDS
        self._timer: Optional[Timer] = None

    def compose(self) -> ComposeResult:
        with Vertical(id="div-otp"):
            yield Label(f"Enter the code sent to {self._destination}", id="label-otp-caption")
            yield Input(
                placeholder="000000",
                id="input-otp",
                max_length=6,
                validators=[Regex(r"^\d{6}$")],
            )
            with Horizontal():
                yield Button("Cancel", id="btn-otp-cancel")
                yield Button("Resend", id="btn-otp-resend", disabled=True)
                yield Button("Verify", id="btn-otp-verify", variant="primary")

    def on_mount(self) -> None:
        self._start_countdown()
        self.query_one("#input-otp").focus()

    def _start_countdown(self) -> None:
        self._countdown = config.OTP_RESEND_SECONDS
        if self._timer:
            self._timer.stop()
        self._timer = self.set_interval(1.0, self._tick)
        self._tick_label()

    def _tick(self) -> None:
        self._countdown -= 1
        if self._countdown <= 0 and self._timer:
            self._timer.stop()
            self._timer = None
        self._tick_label()

    def _tick_label(self) -> None:
        btn = self.query_one("#btn-otp-resend", Button)
        if self._countdown > 0:
            btn.label = f"Resend ({self._countdown}s)"
            btn.disabled = True
        else:
            btn.label = "Resend"
            btn.disabled = False

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-otp-cancel")
    def handle_cancel(self) -> None:
        self.dismiss(False)

    @on(Button.Pressed, "#btn-otp-verify")
    @on(Input.Submitted, "#input-otp")
    @work(exclusive=True, group="verify")
    async def handle_verify(self) -> None:
        otp_input = self.query_one("#input-otp", Input)
        if not otp_input.is_valid:
            otp_input.add_class("-invalid")
            self.notify("Enter the 6-digit code.", severity="error")
            return
        try:
            result = await verify_otp(self._user, self._channel, otp_input.value, self._stage)
        except OtpError as e:
            otp_input.add_class("-invalid")
            self.notify(str(e), severity="error")
            return
        self.notify(result.message)
        self.dismiss(True)

    @on(Button.Pressed, "#btn-otp-resend")
    @work(exclusive=True, group="resend")
    async def handle_resend(self) -> None:
        try:
            await send_otp(
                self._user,
                self._channel,
                self._stage,
                phone=self._phone,
                country_code=self._country_code,
            )
        except (OtpError, ProviderError) as e:
            self.notify(f"Could not send a new code: {e}", severity="error")
            return
        self.notify("A new code has been sent.")
        self._start_countdown()
