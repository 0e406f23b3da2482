from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.widgets import Button, DataTable, Input, Label, Markdown, MarkdownViewer

import db.crud as crud
from db.models import Temple, TempleBooking
from utils.pure import format_price, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_booking import BookingModal
from views.modal_review import ReviewModal, reviews_markdown


class TemplesScreen(BaseScreen):
    """
    Temple directory with visit booking and booking lookup by code.
    """

    ROUTE = "/temples"

    BINDINGS = [
        Binding("fn+shift+1", "noop", "Book a Visit", show=True, key_display="⏎"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._temples: Dict[str, Temple] = {}
        self.current_temple: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield DataTable(id="table-temples")
        with Horizontal(id="hort-temple-reviews"):
            yield Markdown("", id="md-temple-reviews")
            yield Button("Write a review", id="btn-temple-review")
        yield Label("Find a booking", classes="step-title")
        with Horizontal(id="hort-lookup"):
            yield Input(placeholder="Booking code, e.g. K7MZQ2PA", id="input-booking-code")
            yield Button("Look up", id="btn-lookup", variant="primary")
        yield MarkdownViewer("", id="md-booking", show_table_of_contents=False)

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Temple", "Location", "About")
        self.query_one("#md-booking").display = False
        self.load_temples()

    @work(exclusive=True)
    async def load_temples(self) -> None:
        temples = await crud.list_temples()
        self._temples = {t.id: t for t in temples}
        table = self.query_one(DataTable)
        table.clear()
        for t in temples:
            table.add_row(t.name, t.location or "-", t.description or "", key=t.id)

    @on(DataTable.RowHighlighted)
    def handle_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None:
            self.current_temple = event.row_key.value
            self.load_reviews()

    @work(exclusive=True, group="reviews")
    async def load_reviews(self) -> None:
        if self.current_temple is None:
            return
        reviews = await crud.list_reviews("temple", self.current_temple)
        await self.query_one("#md-temple-reviews", Markdown).update(reviews_markdown(reviews))

    @on(Button.Pressed, "#btn-temple-review")
    @work(group="write-review")
    async def handle_write_review(self) -> None:
        temple = self._temples.get(self.current_temple)
        if temple is None:
            return
        if not self.app.state.uid:
            self.notify("Sign in to write a review.", severity="warning")
            return
        if await self.app.push_screen_wait(ReviewModal("temple", temple.id, temple.name)):
            self.load_reviews()

    @on(DataTable.RowSelected)
    @work()
    async def handle_row_selected(self, event: DataTable.RowSelected) -> None:
        temple = self._temples.get(event.row_key.value)
        if temple is None:
            return
        code = await self.app.push_screen_wait(BookingModal(temple))
        if code:
            self.query_one("#input-booking-code", Input).value = code
            self.handle_lookup()

    @on(Input.Submitted, "#input-booking-code")
    @on(Button.Pressed, "#btn-lookup")
    @work(exclusive=True, group="lookup")
    async def handle_lookup(self) -> None:
        code_input = self.query_one("#input-booking-code", Input)
        code = code_input.value.strip().upper()
        if not code:
            code_input.add_class("-invalid")
            self.notify("Enter a booking code.", severity="error")
            return
        code_input.remove_class("-invalid")

        booking = await crud.get_booking_by_code(code)
        viewer = self.query_one("#md-booking", MarkdownViewer)
        viewer.display = True
        if booking is None:
            await viewer.document.update(f"### No booking found for `{code}`.")
            return
        temple = self._temples.get(booking.temple_id) or await crud.get_temple(booking.temple_id)
        await viewer.document.update(self._render_booking(booking, temple))

    @staticmethod
    def _render_booking(booking: TempleBooking, temple: Temple) -> str:
        rows = [[t.name, t.quantity, format_price(t.subtotal)] for t in booking.tickets]
        total = sum(t.subtotal for t in booking.tickets)
        return (
            f"### Booking {booking.booking_code}\n\n"
            f"Temple: {temple.name if temple else booking.temple_id}  \n"
            f"Visit date: {booking.visit_date.isoformat()}  \n"
            f"Name: {booking.customer_name}  \n"
            f"Status: **{booking.status}**\n\n"
            + generate_markdown_table(["Ticket", "Qty", "Subtotal"], rows, ["l", "r", "r"])
            + f"\n\n**Total:** {format_price(total)}"
        )
