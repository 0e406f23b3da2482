from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.validation import Number
from textual.widgets import (
    Button,
    DataTable,
    Input,
    Label,
    Markdown,
    Select,
    TabbedContent,
    TabPane,
)

import db.crud as crud
from db.functions import send_status_update_email
from db.models import Order, Product, TempleBooking, TempleTicket
from db.providers import ProviderError
from utils.pure import format_price, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal

ORDER_STATUSES = ["pending", "processing", "shipped", "delivered", "cancelled"]


class VendorScreen(BaseScreen):
    """
    Vendor dashboard: earnings summary, own inventory (price/stock),
    incoming orders, temple bookings and ticket types.
    """

    ROUTE = "/vendor"

    def __init__(self) -> None:
        super().__init__()
        self._products: Dict[str, Product] = {}
        self._orders: Dict[str, Order] = {}
        self._bookings: Dict[str, TempleBooking] = {}
        self._tickets: Dict[str, TempleTicket] = {}
        self.current_pid: Optional[str] = None
        self.current_order: Optional[str] = None
        self.current_booking: Optional[str] = None
        self.current_ticket: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Markdown("", id="md-vendor-summary")
        with TabbedContent(id="tabs-vendor"):
            with TabPane("Inventory", id="tab-inventory"):
                yield DataTable(id="table-products")
                with Horizontal(id="hort-controls"):
                    with Vertical():
                        yield Label("New Price (LKR):")
                        yield Input(
                            placeholder="leave blank to keep",
                            id="input-price",
                            type="number",
                            validators=[Number(minimum=0.0)],
                        )
                    with Vertical():
                        yield Label("New Stock:")
                        yield Input(
                            placeholder="leave blank to keep",
                            id="input-stock",
                            type="integer",
                            validators=[Number(minimum=0)],
                        )
                    yield Button("Update", id="btn-update", variant="success")
            with TabPane("Orders", id="tab-vendor-orders"):
                yield DataTable(id="table-vendor-orders")
                with Horizontal(id="hort-order-controls"):
                    yield Select(
                        [(s.capitalize(), s) for s in ORDER_STATUSES],
                        prompt="Set status",
                        id="select-order-status",
                    )
                    yield Button("Update status", id="btn-order-status", variant="primary")
            with TabPane("Bookings", id="tab-vendor-bookings"):
                yield DataTable(id="table-vendor-bookings")
                with Horizontal(id="hort-booking-controls"):
                    yield Button("Confirm", id="btn-booking-confirm", variant="success")
                    yield Button("Cancel booking", id="btn-booking-cancel", variant="error")
            with TabPane("Tickets", id="tab-vendor-tickets"):
                yield Select([], prompt="Choose a temple", id="select-ticket-temple")
                yield DataTable(id="table-vendor-tickets")
                with Horizontal(id="hort-ticket-inputs"):
                    with Vertical():
                        yield Label("Name:")
                        yield Input(id="input-ticket-name", max_length=60)
                    with Vertical():
                        yield Label("Price (LKR):")
                        yield Input(
                            id="input-ticket-price",
                            type="number",
                            validators=[Number(minimum=0.0)],
                        )
                    with Vertical():
                        yield Label("Order:")
                        yield Input("0", id="input-ticket-order", type="integer")
                yield Input(placeholder="Description (optional)", id="input-ticket-desc")
                with Horizontal(id="hort-ticket-controls"):
                    yield Button("Add", id="btn-ticket-add", variant="success")
                    yield Button("Update", id="btn-ticket-update", variant="primary")
                    yield Button("Toggle active", id="btn-ticket-toggle")
                    yield Button("Delete", id="btn-ticket-delete", variant="error")

    def on_mount(self) -> None:
        products = self.query_one("#table-products", DataTable)
        products.cursor_type = "row"
        products.zebra_stripes = True
        products.add_columns("ID", "Name", "Category", "Price", "Stock")

        orders = self.query_one("#table-vendor-orders", DataTable)
        orders.cursor_type = "row"
        orders.zebra_stripes = True
        orders.add_columns("Order", "Date", "Ship To", "Status", "Total")

        bookings = self.query_one("#table-vendor-bookings", DataTable)
        bookings.cursor_type = "row"
        bookings.zebra_stripes = True
        bookings.add_columns("Code", "Visit", "Name", "Tickets", "Status")

        tickets = self.query_one("#table-vendor-tickets", DataTable)
        tickets.cursor_type = "row"
        tickets.zebra_stripes = True
        tickets.add_columns("Order", "Name", "Price", "Active", "Description")

        self.handle_reload()

    @on(ScreenResume)
    @work(exclusive=True, group="reload")
    async def handle_reload(self) -> None:
        uid = self.app.state.uid
        if not uid:
            return
        products = await crud.list_vendor_products(uid)
        orders = await crud.list_vendor_orders(uid)
        bookings = await crud.list_vendor_bookings(uid)
        self._products = {p.id: p for p in products}
        self._orders = {o.id: o for o in orders}
        self._bookings = {b.booking_code: b for b in bookings}

        table = self.query_one("#table-products", DataTable)
        table.clear()
        for p in products:
            table.add_row(p.id, p.name, p.category or "-", format_price(p.price), p.stock, key=p.id)

        table = self.query_one("#table-vendor-orders", DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                o.id,
                f"{o.created_at:%Y-%m-%d}",
                o.shipping_address,
                o.status,
                format_price(o.total_amount),
                key=o.id,
            )

        table = self.query_one("#table-vendor-bookings", DataTable)
        table.clear()
        for b in bookings:
            table.add_row(
                b.booking_code,
                b.visit_date.isoformat(),
                b.customer_name,
                b.num_tickets,
                b.status,
                key=b.booking_code,
            )

        self.render_summary(orders)

        temples = await crud.list_vendor_temples(uid)
        select = self.query_one("#select-ticket-temple", Select)
        selected = select.value
        select.set_options([(t.name, t.id) for t in temples])
        if selected is not Select.BLANK and any(t.id == selected for t in temples):
            select.value = selected
        elif temples:
            select.value = temples[0].id
        self.load_tickets()

    def render_summary(self, orders: List[Order]) -> None:
        commission = self.app.state.site.settings.commission_rate
        live = [o for o in orders if o.status != "cancelled"]
        gross = sum(o.total_amount for o in live)
        net = gross * (1 - commission / 100)
        rows = [
            ["Orders", len(live)],
            ["Gross sales", format_price(gross)],
            [f"Commission ({commission:g}%)", format_price(gross - net)],
            ["Net earnings", format_price(net)],
        ]
        self.query_one("#md-vendor-summary", Markdown).update(
            generate_markdown_table(None, rows, ["l", "r"])
        )

    # ---------------------------
    # Inventory
    # ---------------------------

    @on(DataTable.RowHighlighted, "#table-products")
    def handle_product_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is None:
            return
        self.current_pid = event.row_key.value
        prod = self._products.get(self.current_pid)
        if prod:
            # prefill inputs with current values for convenience
            self.query_one("#input-price", Input).value = f"{prod.price:.2f}"
            self.query_one("#input-stock", Input).value = str(prod.stock)

    @on(Button.Pressed, "#btn-update")
    @work(exclusive=True, group="update")
    async def handle_update(self) -> None:
        prod = self._products.get(self.current_pid)
        if prod is None:
            self.notify("Select a product first.", severity="warning")
            return

        price_input = self.query_one("#input-price", Input)
        stock_input = self.query_one("#input-stock", Input)
        for widget in (price_input, stock_input):
            if widget.value and not widget.is_valid:
                widget.focus()
                widget.add_class("-invalid")
                self.notify("Price and stock must be non-negative numbers.", severity="error")
                return
            widget.remove_class("-invalid")

        new_price = float(price_input.value) if price_input.value else None
        new_stock = int(stock_input.value) if stock_input.value else None

        if (new_price is None or new_price == prod.price) and (
            new_stock is None or new_stock == prod.stock
        ):
            self.notify("Nothing to update.", severity="warning")
            return

        if await crud.update_product_price_stock(self.app.state.uid, prod.id, new_price, new_stock):
            self.notify("Product updated successfully.")
        else:
            self.notify("Update failed.", severity="error")
        self.handle_reload()

    # ---------------------------
    # Orders
    # ---------------------------

    @on(DataTable.RowHighlighted, "#table-vendor-orders")
    def handle_order_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None:
            self.current_order = event.row_key.value

    @on(Button.Pressed, "#btn-order-status")
    @work(exclusive=True, group="order-status")
    async def handle_order_status(self) -> None:
        status = self.query_one("#select-order-status", Select).value
        if not self.current_order or status is Select.BLANK:
            self.notify("Select an order and a status.", severity="warning")
            return
        if await crud.update_order_status(self.app.state.uid, self.current_order, status):
            order = self._orders[self.current_order]
            await crud.create_notification(
                order.customer_id, "Order update", f"Order {order.id} is now {status}."
            )
            self.notify(f"Order marked {status}.")
        else:
            self.notify("Update failed.", severity="error")
        self.handle_reload()

    # ---------------------------
    # Bookings
    # ---------------------------

    @on(DataTable.RowHighlighted, "#table-vendor-bookings")
    def handle_booking_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None:
            self.current_booking = event.row_key.value

    @on(Button.Pressed, "#btn-booking-confirm")
    def handle_booking_confirm(self) -> None:
        self.set_booking_status("confirmed")

    @on(Button.Pressed, "#btn-booking-cancel")
    def handle_booking_cancel(self) -> None:
        self.set_booking_status("cancelled")

    @work(exclusive=True, group="booking-status")
    async def set_booking_status(self, status: str) -> None:
        booking = self._bookings.get(self.current_booking)
        if booking is None:
            self.notify("Select a booking first.", severity="warning")
            return
        if not await crud.update_booking_status(booking.id, status):
            self.notify("Update failed.", severity="error")
            return

        temple = await crud.get_temple(booking.temple_id)
        updated = await crud.get_booking_by_code(booking.booking_code)
        try:
            await send_status_update_email(updated, temple.name if temple else "the temple")
        except ProviderError as e:
            self.notify(f"Status saved, but the e-mail failed: {e}", severity="warning")
        else:
            self.notify(f"Booking {booking.booking_code} {status}.")
        self.handle_reload()

    # ---------------------------
    # Tickets
    # ---------------------------

    @on(Select.Changed, "#select-ticket-temple")
    @work(exclusive=True, group="tickets")
    async def load_tickets(self) -> None:
        temple_id = self.query_one("#select-ticket-temple", Select).value
        table = self.query_one("#table-vendor-tickets", DataTable)
        if temple_id is Select.BLANK:
            table.clear()
            self._tickets = {}
            return
        tickets = await crud.list_temple_tickets(temple_id, include_inactive=True)
        self._tickets = {t.id: t for t in tickets}
        table.clear()
        for t in tickets:
            table.add_row(
                t.display_order,
                t.name,
                format_price(t.price),
                "yes" if t.is_active else "no",
                t.description or "-",
                key=t.id,
            )

    @on(DataTable.RowHighlighted, "#table-vendor-tickets")
    def handle_ticket_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is None:
            return
        self.current_ticket = event.row_key.value
        ticket = self._tickets.get(self.current_ticket)
        if ticket:
            self.query_one("#input-ticket-name", Input).value = ticket.name
            self.query_one("#input-ticket-price", Input).value = f"{ticket.price:.2f}"
            self.query_one("#input-ticket-order", Input).value = str(ticket.display_order)
            self.query_one("#input-ticket-desc", Input).value = ticket.description or ""

    def _ticket_inputs(self) -> Optional[Tuple[str, float, Optional[str], int]]:
        name = self.query_one("#input-ticket-name", Input).value.strip()
        price_input = self.query_one("#input-ticket-price", Input)
        if not name or not price_input.value or not price_input.is_valid:
            price_input.add_class("-invalid")
            self.notify("Enter a ticket name and a non-negative price.", severity="error")
            return None
        price_input.remove_class("-invalid")
        order = self.query_one("#input-ticket-order", Input).value
        description = self.query_one("#input-ticket-desc", Input).value.strip()
        return name, float(price_input.value), description or None, int(order or 0)

    @on(Button.Pressed, "#btn-ticket-add")
    @work(exclusive=True, group="ticket-edit")
    async def handle_ticket_add(self) -> None:
        temple_id = self.query_one("#select-ticket-temple", Select).value
        if temple_id is Select.BLANK:
            self.notify("Choose a temple first.", severity="warning")
            return
        values = self._ticket_inputs()
        if values is None:
            return
        name, price, description, order = values
        try:
            ticket = await crud.create_temple_ticket(
                self.app.state.uid, temple_id, name, price, description, order
            )
        except ValueError as e:
            self.notify(str(e), severity="error")
            return
        if ticket is None:
            self.notify("Update failed.", severity="error")
        else:
            self.notify(f"Ticket '{ticket.name}' added.")
        self.load_tickets()

    @on(Button.Pressed, "#btn-ticket-update")
    @work(exclusive=True, group="ticket-edit")
    async def handle_ticket_update(self) -> None:
        if self.current_ticket not in self._tickets:
            self.notify("Select a ticket first.", severity="warning")
            return
        values = self._ticket_inputs()
        if values is None:
            return
        name, price, description, order = values
        try:
            saved = await crud.update_temple_ticket(
                self.app.state.uid,
                self.current_ticket,
                name=name,
                price=price,
                description=description,
                display_order=order,
            )
        except ValueError as e:
            self.notify(str(e), severity="error")
            return
        if saved:
            self.notify("Ticket updated.")
        else:
            self.notify("Update failed.", severity="error")
        self.load_tickets()

    @on(Button.Pressed, "#btn-ticket-toggle")
    @work(exclusive=True, group="ticket-edit")
    async def handle_ticket_toggle(self) -> None:
        ticket = self._tickets.get(self.current_ticket)
        if ticket is None:
            self.notify("Select a ticket first.", severity="warning")
            return
        if await crud.update_temple_ticket(
            self.app.state.uid, ticket.id, is_active=not ticket.is_active
        ):
            state = "hidden from bookings" if ticket.is_active else "active again"
            self.notify(f"Ticket '{ticket.name}' is {state}.")
        else:
            self.notify("Update failed.", severity="error")
        self.load_tickets()

    @on(Button.Pressed, "#btn-ticket-delete")
    @work(group="ticket-delete")
    async def handle_ticket_delete(self) -> None:
        ticket = self._tickets.get(self.current_ticket)
        if ticket is None:
            self.notify("Select a ticket first.", severity="warning")
            return
        confirmed = await self.app.push_screen_wait(
            DialogModal(
                f"Delete the ticket '{ticket.name}'?",
                primary_text="Delete",
                secondary_text="Keep",
                tone="error",
            )
        )
        if not confirmed:
            return
        if await crud.delete_temple_ticket(self.app.state.uid, ticket.id):
            self.current_ticket = None
            self.notify("Ticket deleted.")
        else:
            self.notify("Update failed.", severity="error")
        self.load_tickets()
