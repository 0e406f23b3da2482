from typing import Dict, List

from textual import events, on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.events import ScreenResume
from textual.widgets import DataTable, Input, Label, Select

import db.crud
from db.models import Product
from utils.messages import NavigateMessage
from utils.pure import format_price
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal


class ProductsScreen(BaseScreen):
    """
    Public catalogue: keyword search with a category filter.
    """

    ROUTE = "/products"

    # footer hints only
    BINDINGS = [
        Binding("fn+shift+1", "noop", "View Product", show=True, key_display="⏎"),
    ]

    def __init__(self):
        super().__init__()
        self._results: Dict[str, Product] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Label("", id="label-hero-title")
        yield Label("", id="label-hero-subtitle")
        with Horizontal(id="hort-search"):
            yield Input(
                id="input-search", placeholder="Start typing to search something..."
            )
            yield Select([], prompt="All categories", id="select-category")
        yield DataTable(id="table-search-result")
        yield Label("", id="label-result-cnt")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Name", "Category", "Price", "Stock")

        self.render_hero()
        self.load_categories()
        self.update_search_result("")
        self.query_one("#input-search").focus()

    @on(ScreenResume)
    def render_hero(self) -> None:
        settings = self.app.state.site.settings
        self.query_one("#label-hero-title", Label).update(settings.hero_title)
        self.query_one("#label-hero-subtitle", Label).update(settings.hero_subtitle)

    @work(group="categories")
    async def load_categories(self) -> None:
        products = await db.crud.search_products("")
        categories = sorted({p.category for p in products if p.category})
        self.query_one("#select-category", Select).set_options(
            [(c.capitalize(), c) for c in categories]
        )

    @on(Input.Changed, "#input-search")
    @on(Select.Changed, "#select-category")
    def handle_query_change(self) -> None:
        self.update_search_result(self.query_one("#input-search", Input).value)

    @work(exclusive=True)
    async def update_search_result(self, query: str) -> None:
        category = self.query_one("#select-category", Select).value
        if category is Select.BLANK:
            category = None
        results: List[Product] = await db.crud.search_products(query, category)
        self._results = {p.id: p for p in results}

        table = self.query_one(DataTable)
        table.clear()
        for p in results:
            table.add_row(
                p.id,
                p.name,
                p.category or "-",
                format_price(p.price),
                p.stock if p.stock > 0 else "Out of stock",
                key=p.id,
            )
        self.query_one("#label-result-cnt", Label).update(f"{len(results)} product(s)")

    @on(DataTable.RowSelected)
    @work()
    async def handle_row_selected(self, event: DataTable.RowSelected) -> None:
        pid = event.row_key.value
        if await self.app.push_screen_wait(ProdDetailModal(pid)):
            # a successful add opens the cart
            if self.app.state.cart.is_open:
                self.post_message(NavigateMessage("/cart"))

    async def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.query_one("#input-search").focus()
