from datetime import date
from typing import List, Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, VerticalScroll
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label

import db.crud as crud
from db.functions import send_booking_email
from db.models import Temple, TempleTicket, TicketSelection
from db.providers import ProviderError
from utils.logger import get_logger
from utils.pure import format_price
from views.modal_dialog import SimpleDialogModal

_logger = get_logger(__name__)

MAX_TICKETS_PER_TYPE = 20


class BookingModal(ModalScreen[Optional[str]]):
    """
    Book a temple visit. Returns the booking code, or None if cancelled.
    """

    def __init__(self, temple: Temple) -> None:
        super().__init__()
        self._temple = temple
        self._tickets: List[TempleTicket] = []

    def compose(self) -> ComposeResult:
        with VerticalScroll(id="div-booking"):
            yield Label(f"Book a visit: {self._temple.name}", id="label-booking-title")
            yield Label("Full name")
            yield Input(id="input-booking-name")
            yield Label("Email")
            yield Input(id="input-booking-email")
            yield Label("Phone (optional)")
            yield Input(id="input-booking-phone")
            yield Label("Visit date (YYYY-MM-DD)")
            yield Input(placeholder=date.today().isoformat(), id="input-booking-date")
            yield Label("Tickets", classes="step-title")
            yield VerticalScroll(id="div-ticket-rows")
            yield Label("Total: LKR 0.00", id="label-booking-total")
            yield Label("Notes (optional)")
            yield Input(id="input-booking-notes")
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Book", id="btn-book", variant="primary")

    async def on_mount(self) -> None:
        auth = self.app.state.auth
        if auth.user:
            self.query_one("#input-booking-email", Input).value = auth.user.email
            profile = await crud.get_profile(auth.user.id)
            if profile:
                self.query_one("#input-booking-name", Input).value = profile.full_name
                self.query_one("#input-booking-phone", Input).value = profile.phone or ""

        self._tickets = await crud.list_temple_tickets(self._temple.id)
        rows = self.query_one("#div-ticket-rows")
        for ticket in self._tickets:
            await rows.mount(
                Horizontal(
                    Label(f"{ticket.name} ({format_price(ticket.price)})", classes="ticket-name"),
                    Input(
                        "0",
                        id=f"input-ticket-{ticket.id}",
                        type="integer",
                        classes="ticket-qty",
                        validators=[Number(minimum=0, maximum=MAX_TICKETS_PER_TYPE)],
                    ),
                    classes="ticket-row",
                )
            )
        if not self._tickets:
            await rows.mount(Label("No tickets are offered for this temple yet."))
        self.query_one("#input-booking-name").focus()

    def _selection(self) -> Optional[List[TicketSelection]]:
        """Selected tickets, or None if any quantity is invalid."""
        selected = []
        for ticket in self._tickets:
            qty_input = self.query_one(f"#input-ticket-{ticket.id}", Input)
            if qty_input.value and not qty_input.is_valid:
                return None
            qty = int(qty_input.value or 0)
            if qty > 0:
                selected.append(TicketSelection(ticket.id, ticket.name, qty, ticket.price))
        return selected

    @on(Input.Changed, ".ticket-qty")
    def handle_ticket_change(self) -> None:
        selection = self._selection() or []
        total = sum(t.subtotal for t in selection)
        count = sum(t.quantity for t in selection)
        self.query_one("#label-booking-total", Label).update(
            f"Total ({count} tickets): {format_price(total)}"
        )

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self) -> None:
        self.dismiss(None)

    def _invalid(self, selector: str, message: str) -> None:
        widget = self.query_one(selector, Input)
        widget.add_class("-invalid")
        widget.focus()
        self.notify(message, severity="error")

    @on(Button.Pressed, "#btn-book")
    @work(exclusive=True)
    async def handle_book(self) -> None:
        for widget in self.query(Input):
            widget.remove_class("-invalid")

        name = self.query_one("#input-booking-name", Input).value.strip()
        email = self.query_one("#input-booking-email", Input).value.strip()
        if not name:
            return self._invalid("#input-booking-name", "Name is required.")
        if "@" not in email:
            return self._invalid("#input-booking-email", "A valid e-mail is required.")
        try:
            visit_date = date.fromisoformat(self.query_one("#input-booking-date", Input).value.strip())
        except ValueError:
            return self._invalid("#input-booking-date", "Use the date format YYYY-MM-DD.")
        if visit_date < date.today():
            return self._invalid("#input-booking-date", "Visit date cannot be in the past.")

        selection = self._selection()
        if selection is None:
            self.notify(
                f"Ticket quantities must be between 0 and {MAX_TICKETS_PER_TYPE}.",
                severity="error",
            )
            return
        if not selection:
            self.notify("Please select at least one ticket.", severity="error")
            return

        try:
            booking = await crud.create_booking(
                self._temple.id,
                name,
                email,
                visit_date,
                selection,
                customer_phone=self.query_one("#input-booking-phone", Input).value.strip() or None,
                notes=self.query_one("#input-booking-notes", Input).value.strip() or None,
            )
        except Exception as e:
            _logger.exception("Booking failed")
            self.notify(f"Could not create the booking: {e}", severity="error")
            return

        try:
            await send_booking_email(booking, self._temple)
        except ProviderError as e:
            self.notify(f"Booking saved, but the confirmation e-mail failed: {e}", severity="warning")

        await self.app.push_screen_wait(
            SimpleDialogModal(
                "Booking confirmed!",
                detail=f"Your booking code is **{booking.booking_code}**.\n\n"
                f"Keep it to look up your booking later.",
                tone="positive",
            )
        )
        self.dismiss(booking.booking_code)
