from math import ceil
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.reactive import reactive
from textual.validation import Number
from textual.widgets import (
    Button,
    DataTable,
    Input,
    Label,
    MarkdownViewer,
    TabbedContent,
    TabPane,
)

import db.crud
from db.models import Order, OrderItem
from utils.messages import NavigateMessage
from utils.pure import format_price, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal

PAGE_SIZE = 5


class OrdersScreen(BaseScreen):
    """
    Customer dashboard: past orders with pagination and details, plus notifications.

    Layout:
    - Markdown detail view at the top, showing selected order details.
    - Orders table below (reverse chronological), 5 per page with Prev/Next.
    """

    ROUTE = "/dashboard"

    # Show some hints in footer
    BINDINGS = [
        Binding("enter", "noop", "View Order Detail", show=True, key_display="⏎"),
    ]

    page_idx = reactive(1)
    page_cnt = reactive(1)

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[Order] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="tabs-dashboard"):
            with TabPane("Orders", id="tab-orders"):
                with Vertical():
                    yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
                    yield DataTable(id="table-orders")
                with Horizontal(id="hort-table-control"):
                    yield Button("Refresh", id="btn-refresh")
                    yield Button("<", id="btn-prev")
                    yield Input("1", id="input-page", type="integer")
                    yield Label(" / 1", id="label-total-page-cnt")
                    yield Button(">", id="btn-next")
            with TabPane("Notifications", id="tab-notifications"):
                yield DataTable(id="table-notifications")
                yield Button("Mark all as read", id="btn-mark-read")
            with TabPane("Favourites", id="tab-favorites"):
                yield DataTable(id="table-favorites")
                with Horizontal(id="hort-favorite-controls"):
                    yield Button("View", id="btn-fav-view", variant="primary")
                    yield Button("Remove", id="btn-fav-remove", variant="error")
            with TabPane("Profile", id="tab-profile"):
                with Vertical(id="div-profile"):
                    yield Label("", id="label-profile-email")
                    yield Label("Full name")
                    yield Input(id="input-full-name", max_length=100)
                    yield Label("Phone (optional)")
                    yield Input(id="input-profile-phone", max_length=20)
                    yield Button("Save profile", id="btn-profile-save", variant="success")

    def on_mount(self) -> None:
        table = self.query_one("#table-orders", DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order No", "Date", "Shipping Address", "Status", "Total")

        notifications = self.query_one("#table-notifications", DataTable)
        notifications.zebra_stripes = True
        notifications.add_columns("", "Date", "Title", "Message")

        favorites = self.query_one("#table-favorites", DataTable)
        favorites.cursor_type = "row"
        favorites.zebra_stripes = True
        favorites.add_columns("Product", "Category", "Price", "Stock")

        self._load_orders(1)
        self._load_notifications()
        self._load_favorites()
        self._load_profile()

    @on(Button.Pressed, "#btn-refresh")
    @on(ScreenResume)
    def handle_refresh(self):
        self._load_orders(self.page_idx)
        self._load_notifications()
        self._load_favorites()

    @on(DataTable.RowHighlighted, "#table-orders")
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None and event.row_key.value:
            self._load_and_render_detail(event.row_key.value)

    def watch_page_idx(self, old: int, new: int) -> None:
        self.query_one("#input-page", Input).value = str(new)
        self._refresh_buttons()
        self._load_orders(new)

    def _refresh_buttons(self) -> None:
        btn_prev = self.query_one("#btn-prev", Button)
        btn_next = self.query_one("#btn-next", Button)
        btn_prev.disabled = self.page_idx <= 1
        btn_next.disabled = self.page_idx >= self.page_cnt
        self.query_one("#input-page", Input).validators = [
            Number(minimum=1, maximum=self.page_cnt)
        ]

    @on(Button.Pressed, "#btn-prev")
    def handle_prev(self) -> None:
        if self.page_idx > 1:
            self.page_idx -= 1

    @on(Button.Pressed, "#btn-next")
    def handle_next(self) -> None:
        if self.page_idx < self.page_cnt:
            self.page_idx += 1

    @on(Input.Changed, "#input-page")
    def handle_page_input(self, ev: Input.Changed) -> None:
        if ev.value and ev.value.isdigit():
            new_idx = max(1, min(int(ev.value), self.page_cnt))
            if new_idx != self.page_idx:
                self.page_idx = new_idx

    @work(exclusive=True, group="orders")
    async def _load_orders(self, page: int) -> None:
        uid = self.app.state.uid
        if not uid:
            return
        orders, total = await db.crud.list_orders(uid, page, PAGE_SIZE)

        table = self.query_one("#table-orders", DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                o.id,
                o.created_at.strftime("%Y-%m-%d %H:%M"),
                o.shipping_address,
                o.status,
                format_price(o.total_amount),
                key=o.id,
            )
        self._orders = orders
        self.page_cnt = max(ceil(total / PAGE_SIZE), 1)
        self.query_one("#label-total-page-cnt", Label).update(f" / {self.page_cnt}")
        self._refresh_buttons()
        if orders:
            table.move_cursor(row=0)
            self._load_and_render_detail(orders[0].id)
        else:
            self._render_detail(None, [])

    @work(exclusive=True, group="order-detail")
    async def _load_and_render_detail(self, order_id: str) -> None:
        order, items = await db.crud.get_order_detail(order_id)
        self._render_detail(order, items)

    def _render_detail(self, order: Optional[Order], items: List[OrderItem]) -> None:
        viewer = self.query_one("#md-order-detail", MarkdownViewer)
        if not order:
            viewer.document.update("### You have no orders yet.")
            return

        header = (
            f"### Order {order.id}\n"
            f"Date: {order.created_at:%Y-%m-%d %H:%M}  \n"
            f"Status: {order.status}  \n"
            f"Ship To: {order.shipping_address}\n\n"
        )
        rows = [
            [
                item.product_name or item.product_id,
                item.quantity,
                format_price(item.unit_price),
                format_price(item.quantity * item.unit_price),
            ]
            for item in items
        ]
        table = generate_markdown_table(
            ["Product", "Qty", "Unit Price", "Line Total"], rows, ["l", "r", "r", "r"]
        )
        footer = f"\n\n**Grand Total:** {format_price(order.total_amount)}"
        viewer.document.update(header + table + footer)

    @work(exclusive=True, group="notifications")
    async def _load_notifications(self) -> None:
        uid = self.app.state.uid
        if not uid:
            return
        notifications = await db.crud.list_notifications(uid)
        table = self.query_one("#table-notifications", DataTable)
        table.clear()
        for n in notifications:
            table.add_row(
                "" if n.is_read else "●",
                n.created_at.strftime("%Y-%m-%d %H:%M"),
                n.title,
                n.message or "",
            )

    @on(Button.Pressed, "#btn-mark-read")
    @work()
    async def handle_mark_read(self) -> None:
        await db.crud.mark_notifications_read(self.app.state.uid)
        self._load_notifications()

    # ---------------------------
    # Favourites
    # ---------------------------

    @work(exclusive=True, group="favorites")
    async def _load_favorites(self) -> None:
        uid = self.app.state.uid
        if not uid:
            return
        products = await db.crud.list_favorites(uid)
        table = self.query_one("#table-favorites", DataTable)
        table.clear()
        for p in products:
            table.add_row(
                p.name,
                p.category or "-",
                format_price(p.price),
                p.stock if p.stock > 0 else "out of stock",
                key=p.id,
            )
        self.query_one("#hort-favorite-controls").display = bool(products)

    def _current_favorite(self) -> Optional[str]:
        table = self.query_one("#table-favorites", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return row_key.value

    @on(DataTable.RowSelected, "#table-favorites")
    @on(Button.Pressed, "#btn-fav-view")
    @work(group="favorite-view")
    async def handle_favorite_view(self) -> None:
        pid = self._current_favorite()
        if pid is None:
            return
        if await self.app.push_screen_wait(ProdDetailModal(pid)):
            if self.app.state.cart.is_open:
                self.post_message(NavigateMessage("/cart"))
        else:
            self._load_favorites()

    @on(Button.Pressed, "#btn-fav-remove")
    @work(exclusive=True, group="favorite-remove")
    async def handle_favorite_remove(self) -> None:
        pid = self._current_favorite()
        if pid is None:
            return
        await db.crud.remove_favorite(self.app.state.uid, pid)
        self.notify("Removed from favourites.")
        self._load_favorites()

    # ---------------------------
    # Profile
    # ---------------------------

    @work(exclusive=True, group="profile")
    async def _load_profile(self) -> None:
        uid = self.app.state.uid
        if not uid:
            return
        profile = await db.crud.get_profile(uid)
        if profile is None:
            return
        self.query_one("#label-profile-email", Label).update(f"Signed in as {profile.email}")
        self.query_one("#input-full-name", Input).value = profile.full_name
        self.query_one("#input-profile-phone", Input).value = profile.phone or ""

    @on(Button.Pressed, "#btn-profile-save")
    @work(exclusive=True, group="profile-save")
    async def handle_profile_save(self) -> None:
        name_input = self.query_one("#input-full-name", Input)
        phone = self.query_one("#input-profile-phone", Input).value
        try:
            saved = await db.crud.update_profile(self.app.state.uid, name_input.value, phone)
        except ValueError as e:
            name_input.add_class("-invalid")
            self.notify(str(e), severity="error")
            return
        name_input.remove_class("-invalid")
        if saved:
            self.notify("Your profile has been saved.")
        else:
            self.notify("Failed to update profile.", severity="error")
