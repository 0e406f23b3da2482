from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer

from db.crud import CheckoutError, place_orders
from utils.logger import get_logger
from utils.messages import NewOrderMessage
from utils.pure import format_price, generate_markdown_table
from views.modal_dialog import DialogModal

_logger = get_logger(__name__)


class CheckoutModal(ModalScreen[bool]):
    """
    Order summary grouped by vendor plus shipping address.
    One order is placed per vendor. Returns True on success, False otherwise.
    """

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            yield Label("Shipping Address")
            yield Input(
                placeholder="12 Temple Road, Jaffna",
                id="input-address-line",
            )
            yield Label("Notes (optional)")
            yield Input(id="input-notes")
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        cart = self.app.state.cart
        headers = ["Product", "Unit Price", "Quantity", "Total Price"]
        aligns = ["l", "r", "c", "r"]
        md = "### Order Summary\n\n"
        for idx, (vendor_id, lines) in enumerate(cart.lines_by_vendor().items(), start=1):
            rows = [
                [line.display_name, format_price(line.price), line.quantity,
                 format_price(line.subtotal)]
                for line in lines
            ]
            md += f"#### Order {idx}\n\n" + generate_markdown_table(headers, rows, aligns)
            md += f"\n\n_Subtotal: {format_price(sum(line.subtotal for line in lines))}_\n\n"
        md += f"**Total:** {format_price(cart.total_price)}"
        await self.query_one(MarkdownViewer).document.update(md)
        self.query_one("#input-address-line").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        address_line = self.query_one("#input-address-line", Input).value.strip()
        if not address_line:
            self.query_one("#input-address-line", Input).focus()
            self.query_one("#input-address-line", Input).add_class("-invalid")
            self.notify("Address line is required.", severity="error")
            return

        if not await self.app.push_screen_wait(
            DialogModal(
                "Place order? This cannot be undone.",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        state = self.app.state
        try:
            order_ids = await place_orders(
                state.uid,
                state.cart.lines,
                address_line,
                self.query_one("#input-notes", Input).value.strip() or None,
            )
        except CheckoutError as e:
            self.notify(f"{e} Please update your cart.", severity="error")
            return
        except Exception as e:
            _logger.exception("Checkout failed")
            self.notify(f"Could not place the order: {e}", severity="error")
            return

        state.cart.clear_cart()
        self.notify(f"{len(order_ids)} order(s) placed. Thank you!")
        self.app.post_message(NewOrderMessage())
        self.dismiss(True)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)
