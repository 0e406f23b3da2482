from typing import List, Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer, Select

import db.crud as crud
from contexts.cart import CartLine
from db.models import Product, ProductVariant
from utils.pure import format_price, generate_markdown_table
from views.modal_review import ReviewModal, reviews_markdown


class ProdDetailModal(ModalScreen[bool]):
    """
    Product detail with variant choice and add-to-cart.
    Returns True if the cart changed, False if not.
    """

    order_qty = reactive(1)

    def __init__(self, pid: str) -> None:
        super().__init__()

        self._pid = pid
        self._prod: Optional[Product] = None
        self._variants: List[ProductVariant] = []
        self._table_md = ""

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical():
                yield Label("Variant", id="label-variant")
                yield Select([], prompt="Choose a variant", id="select-variant")
                yield Label("Order Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(value="1", id="input-order-qty", type="integer")
                    yield Button("+", id="btn-add-qty")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")
                with Horizontal(id="hort-prod-extras"):
                    yield Button("♡ Save", id="btn-favorite")
                    yield Button("Write a review", id="btn-review")

    async def on_mount(self):
        self._prod = await crud.get_product(self._pid)
        if self._prod is None:
            self.notify("This product is no longer available.", severity="error")
            self.dismiss(False)
            return
        self._variants = await crud.list_product_variants(self._pid)

        table_rows = [
            ["Name", self._prod.name],
            ["Category", self._prod.category or "-"],
            ["Description", self._prod.description or "-"],
            ["Price", format_price(self._prod.price)],
        ]
        table_rows += [
            [f"Variant: {v.name}", f"{format_price(v.price)} ({v.stock} in stock)"]
            for v in self._variants
        ]
        self._table_md = generate_markdown_table(["Attribute", "Value"], table_rows, ["l", "l"])
        await self.render_detail()

        select = self.query_one("#select-variant", Select)
        if self._variants:
            with select.prevent(Select.Changed):
                select.set_options([(v.name, v.id) for v in self._variants])
                select.value = self._variants[0].id
        else:
            select.display = False
            self.query_one("#label-variant").display = False

        self.refresh_stock_state()
        await self.refresh_favorite()
        self.query_one("#input-order-qty").focus()

    async def render_detail(self) -> None:
        reviews = await crud.list_reviews("product", self._pid)
        header_md = f"### Product Detail: {self._prod.name}\n\n"
        await self.query_one(MarkdownViewer).document.update(
            header_md + self._table_md + "\n\n" + reviews_markdown(reviews)
        )

    async def refresh_favorite(self) -> None:
        uid = self.app.state.uid
        self.query_one("#hort-prod-extras").display = bool(uid)
        if uid:
            saved = await crud.is_favorite(uid, self._pid)
            self.query_one("#btn-favorite", Button).label = "♥ Saved" if saved else "♡ Save"

    def _selected_variant(self) -> Optional[ProductVariant]:
        if not self._variants:
            return None
        value = self.query_one("#select-variant", Select).value
        return next((v for v in self._variants if v.id == value), self._variants[0])

    def _stock(self) -> int:
        variant = self._selected_variant()
        return variant.stock if variant else self._prod.stock

    def refresh_stock_state(self) -> None:
        stock_cnt = self._stock()
        order_btn = self.query_one("#btn-addcart", Button)
        if stock_cnt < 1:
            order_btn.label = "Out of Stock"
            order_btn.disabled = True
            order_btn.variant = "warning"
        else:
            order_btn.label = "Add to Cart"
            order_btn.disabled = False
            order_btn.variant = "primary"

        self.query_one("#input-order-qty").validators = [
            Number(minimum=1, maximum=max(stock_cnt, 1))
        ]
        self.order_qty = 1
        self.watch_order_qty(self.order_qty)

    @on(Select.Changed, "#select-variant")
    def handle_variant_change(self) -> None:
        self.refresh_stock_state()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    async def on_input_changed(self, message: Input.Changed) -> None:
        if (
            message.input.id == "input-order-qty"
            and message.input.is_valid
            and self.focused == message.input
        ):
            self.order_qty = int(message.value)

    def watch_order_qty(self, qty: int):
        if self._prod is None:
            return
        btn_sub_qty = self.query_one("#btn-sub-qty")
        btn_add_qty = self.query_one("#btn-add-qty")

        btn_sub_qty.disabled = qty <= 1
        btn_add_qty.disabled = qty >= self._stock()

        input_order_qty = self.query_one("#input-order-qty")
        input_order_qty.value = str(qty)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        if self.order_qty > 1:
            self.order_qty -= 1

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        variant = self._selected_variant()
        line = CartLine(
            id=self._prod.id,
            name=self._prod.name,
            price=variant.price if variant else self._prod.price,
            quantity=self.order_qty,
            vendor_id=self._prod.vendor_id,
            stock=variant.stock if variant else self._prod.stock,
            variant_id=variant.id if variant else None,
            variant_name=variant.name if variant else None,
            image_url=self._prod.image_url,
            category=self._prod.category,
        )
        # the cart context reports rejections itself
        if self.app.state.cart.add_to_cart(line, self.order_qty):
            self.dismiss(True)

    @on(Button.Pressed, "#btn-favorite")
    @work(exclusive=True, group="favorite")
    async def handle_favorite(self) -> None:
        uid = self.app.state.uid
        if await crud.is_favorite(uid, self._pid):
            await crud.remove_favorite(uid, self._pid)
            self.notify("Removed from favourites.")
        else:
            await crud.add_favorite(uid, self._pid)
            self.notify("Saved to favourites.")
        await self.refresh_favorite()

    @on(Button.Pressed, "#btn-review")
    @work(exclusive=True, group="review")
    async def handle_review(self) -> None:
        if await self.app.push_screen_wait(ReviewModal("product", self._pid, self._prod.name)):
            await self.render_detail()
