from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import ScreenResume
from textual.screen import Screen
from textual.widgets import (
    Button,
    Footer,
    Header,
    Label,
    ListItem,
    ListView,
    Markdown,
    Select,
)

from contexts.guard import role_home
from utils.messages import NavigateMessage
from utils.pure import generate_markdown_table
from views.modal_dialog import DialogModal, QuitDialogModal

MENUS = {
    None: [
        ("/products", "Products"),
        ("/temples", "Temples"),
        ("/cart", "Cart"),
        ("/auth", "Sign in"),
    ],
    "customer": [
        ("/products", "Products"),
        ("/temples", "Temples"),
        ("/cart", "Cart"),
        ("/dashboard", "My Orders"),
        ("/become-vendor", "Become a Vendor"),
        ("/support", "Support"),
    ],
    "vendor": [
        ("/vendor", "Vendor Dashboard"),
        ("/products", "Products"),
        ("/temples", "Temples"),
        ("/cart", "Cart"),
        ("/support", "Support"),
    ],
    "admin": [
        ("/admin", "Site Settings"),
        ("/admin/users", "Users & Applications"),
        ("/support", "Support Chat"),
        ("/products", "Products"),
        ("/temples", "Temples"),
    ],
}


class MenuItem(ListItem):
    def __init__(self, path: str, label: str) -> None:
        super().__init__(Label(label))
        self.path = path


class Sidebar(Container):
    def compose(self) -> ComposeResult:
        yield Label("User Info", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Select([], prompt="View as", id="select-role")
        yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    def on_mount(self):
        self.refresh_info()

    @work(exclusive=True, group="sidebar")
    async def refresh_info(self):
        auth = self.app.state.auth
        cart = self.app.state.cart

        # user info
        if auth.user:
            role = auth.active_view_role.capitalize() if auth.active_view_role else "..."
            table_rows = [["Email", auth.user.email], ["Viewing as", role]]
            md_table_str = generate_markdown_table(None, table_rows, ["l", "l"])
        else:
            md_table_str = "_Not signed in._"
        await self.query_one("#md-userinfo", Markdown).update(md_table_str)

        # role switcher, only for users holding more than one role
        select = self.query_one("#select-role", Select)
        select.display = auth.has_multiple_roles
        if auth.has_multiple_roles:
            with select.prevent(Select.Changed):
                select.set_options([(r.capitalize(), r) for r in auth.user_roles])
                if auth.active_view_role:
                    select.value = auth.active_view_role

        btn_logout = self.query_one("#btn-logout", Button)
        btn_logout.label = "Log out" if auth.user else "Sign in"
        btn_logout.variant = "error" if auth.user else "primary"

        # menu for the active role
        menu = MENUS.get(auth.active_view_role if auth.user else None, MENUS["customer"])
        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [
                MenuItem(path, f"{label} ({cart.total_items})" if path == "/cart" else label)
                for path, label in menu
            ]
        )
        self.highlight_item(self.app.current_path)

    def highlight_item(self, path):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = getattr(item, "path", None) == path

    def on_list_view_selected(self, event: ListView.Selected):
        self.post_message(NavigateMessage(event.item.path))

    @on(Select.Changed, "#select-role")
    def handle_role_switch(self, event: Select.Changed):
        if event.value is Select.BLANK:
            return
        if self.app.state.auth.switch_role(event.value):
            self.notify(f"Now viewing as {event.value}.")
            self.post_message(NavigateMessage(role_home(event.value)))

    @on(Button.Pressed, "#btn-logout")
    @work()
    async def handle_logout(self):
        if not self.app.state.auth.user:
            self.post_message(NavigateMessage("/auth"))
            return

        if not await self.app.push_screen_wait(
            DialogModal(
                "Are you sure you want to log out?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        await self.app.state.auth.sign_out()
        self.notify("Logout successful.")


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    ROUTE = ""

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "",
        show_sidebar: bool = True,
    ) -> None:
        """
        configure behavior of the base screen
        :return:
        """
        self.sub_title = header_sub_title or self.app.ROUTE_TITLES.get(self.ROUTE, "")
        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    def refresh_sidebar(self) -> None:
        for sidebar in self.query(Sidebar):
            sidebar.refresh_info()

    @on(ScreenResume)
    def handle_screen_resume(self):
        self.refresh_sidebar()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
