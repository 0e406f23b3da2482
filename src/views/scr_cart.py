from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume, ScreenSuspend
from textual.message import Message
from textual.widgets import Button, Label, Rule

from contexts.cart import CartLine
from utils.messages import NavigateMessage
from utils.pure import format_price
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import DialogModal


class CartItemActionMessage(Message):
    bubble = True

    def __init__(self, action: str) -> None:
        super().__init__()
        self.action = action


class CartItemActionLabel(Label):
    def action_inc(self):
        self.post_message(CartItemActionMessage("inc"))

    def action_dec(self):
        self.post_message(CartItemActionMessage("dec"))

    def action_remove(self):
        self.post_message(CartItemActionMessage("remove"))


class CartItemWidget(HorizontalGroup):
    def __init__(self, line: CartLine):
        super().__init__()
        self.line = line

    def compose(self):
        with Container(id="div-cart-item-group"):
            with Container(id="div-item"):
                yield Label(content=self.line.display_name, id="label-item-name")
                yield Label(content=f"x {self.line.quantity}", id="label-item-qty")
                yield Label(content=format_price(self.line.subtotal), id="label-item-price")
            with Container(id="div-actions"):
                yield CartItemActionLabel(content="[@click=dec()]-[/]", id="link-item-dec")
                yield CartItemActionLabel(content="[@click=inc()]+[/]", id="link-item-inc")
                yield CartItemActionLabel(
                    content="[@click=remove()]Remove[/]", id="link-item-remove"
                )

    @on(CartItemActionMessage)
    @work()
    async def handle_action(self, message: CartItemActionMessage):
        message.stop()
        cart = self.app.state.cart
        if message.action == "inc":
            # above stock is clamped by the cart with a warning
            cart.update_quantity(self.line.key, self.line.quantity + 1)
        elif message.action == "dec":
            cart.update_quantity(self.line.key, self.line.quantity - 1)
        elif await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove this item from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            cart.remove_from_cart(self.line.key)
            self.notify("Item removed from cart.", severity="information")


class CartScreen(BaseScreen):
    """
    Cart lines with quantity controls; checkout requires signing in.
    """

    ROUTE = "/cart"

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Label("Total: LKR 0.00", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Continue Shopping", id="btn-continue")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    def on_mount(self):
        self.handle_cart_change()

    @on(ScreenSuspend)
    def handle_suspend(self):
        self.app.state.cart.close()

    @on(ScreenResume)
    @work(exclusive=True)  # must exclusive, else might race cond and gen duplicate
    async def handle_cart_change(self):
        cart = self.app.state.cart
        content = self.query_one("#vertscroll-content")
        await content.remove_children()
        await content.mount_all([CartItemWidget(line) for line in cart.lines])

        if not cart.lines:
            content.add_class("no-items")
        else:
            content.remove_class("no-items")

        self.query_one("#label-cart-total", Label).update(
            f"Total ({cart.total_items} items): {format_price(cart.total_price)}"
        )

    def refresh_sidebar(self) -> None:
        super().refresh_sidebar()
        if self.is_mounted:
            self.handle_cart_change()

    @on(Button.Pressed, "#btn-continue")
    def handle_continue(self) -> None:
        self.post_message(NavigateMessage("/products"))

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        if not self.app.state.cart.lines:
            self.app.notify("Cart is empty.", severity="warning")
            return

        remove_confirmed = await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        )
        if remove_confirmed:
            self.app.state.cart.clear_cart()

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        if not self.app.state.cart.lines:
            self.app.notify("Cart is empty.", severity="warning")
            return
        if not self.app.state.auth.user:
            self.app.notify("Please sign in to check out.", severity="warning")
            self.post_message(NavigateMessage("/auth"))
            return

        await self.app.push_screen_wait(CheckoutModal())
