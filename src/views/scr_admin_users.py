from typing import Dict, List, Optional, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Label

import db.crud as crud
from db.models import Profile, VendorApplication
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal


class AdminUsersScreen(BaseScreen):
    """
    Role management and the vendor application queue.
    """

    ROUTE = "/admin/users"

    def __init__(self) -> None:
        super().__init__()
        self._users: Dict[str, Tuple[Profile, List[str]]] = {}
        self._applications: Dict[str, VendorApplication] = {}
        self.current_uid: Optional[str] = None
        self.current_application: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Label("Users", classes="step-title")
        yield DataTable(id="table-users")
        with Horizontal(id="hort-role-btns"):
            yield Button("Grant vendor", id="btn-grant-vendor", classes="role-btn")
            yield Button("Revoke vendor", id="btn-revoke-vendor", variant="warning", classes="role-btn")
            yield Button("Grant admin", id="btn-grant-admin", classes="role-btn")
            yield Button("Revoke admin", id="btn-revoke-admin", variant="error", classes="role-btn")
        yield Label("Pending vendor applications", classes="step-title")
        yield DataTable(id="table-applications")
        with Horizontal(id="hort-application-btns"):
            yield Button("Approve", id="btn-approve", variant="success")
            yield Button("Reject", id="btn-reject", variant="error")

    def on_mount(self) -> None:
        users = self.query_one("#table-users", DataTable)
        users.cursor_type = "row"
        users.zebra_stripes = True
        users.add_columns("Email", "Name", "Country", "Roles")

        applications = self.query_one("#table-applications", DataTable)
        applications.cursor_type = "row"
        applications.zebra_stripes = True
        applications.add_columns("Business", "Applicant", "Phone", "E-mail ok", "Phone ok")

        self.handle_reload()

    @on(ScreenResume)
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        users = await crud.list_profiles_with_roles()
        applications = await crud.list_vendor_applications("pending")
        self._users = {profile.user_id: (profile, roles) for profile, roles in users}
        self._applications = {a.id: a for a in applications}

        table = self.query_one("#table-users", DataTable)
        table.clear()
        for profile, roles in users:
            table.add_row(
                profile.email,
                profile.full_name,
                profile.country,
                ", ".join(roles),
                key=profile.user_id,
            )

        table = self.query_one("#table-applications", DataTable)
        table.clear()
        for a in applications:
            applicant = self._users.get(a.user_id)
            table.add_row(
                a.business_name,
                applicant[0].email if applicant else a.user_id,
                a.phone or "-",
                "yes" if a.email_verified else "no",
                "yes" if a.phone_verified else "no",
                key=a.id,
            )

    @on(DataTable.RowHighlighted, "#table-users")
    def handle_user_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None:
            self.current_uid = event.row_key.value

    @on(DataTable.RowHighlighted, "#table-applications")
    def handle_application_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None:
            self.current_application = event.row_key.value

    @on(Button.Pressed, ".role-btn")
    @work(exclusive=True, group="roles")
    async def handle_role_button(self, event: Button.Pressed) -> None:
        if self.current_uid not in self._users:
            self.notify("Select a user first.", severity="warning")
            return
        action, role = event.button.id.removeprefix("btn-").split("-")
        profile, roles = self._users[self.current_uid]

        if action == "revoke" and self.current_uid == self.app.state.uid and role == "admin":
            self.notify("You cannot revoke your own admin role.", severity="error")
            return
        if action == "revoke" and not await self.app.push_screen_wait(
            DialogModal(
                f"Revoke the {role} role from {profile.email}?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        if action == "grant":
            changed = await crud.grant_role(self.current_uid, role)
        else:
            changed = await crud.revoke_role(self.current_uid, role)
        if changed:
            self.notify(f"{role.capitalize()} role {'granted' if action == 'grant' else 'revoked'} for {profile.email}.")
        else:
            self.notify("Nothing changed.", severity="warning")
        self.handle_reload()

    @on(Button.Pressed, "#btn-approve")
    def handle_approve(self) -> None:
        self.review(True)

    @on(Button.Pressed, "#btn-reject")
    def handle_reject(self) -> None:
        self.review(False)

    @work(exclusive=True, group="review")
    async def review(self, approve: bool) -> None:
        application = self._applications.get(self.current_application)
        if application is None:
            self.notify("Select an application first.", severity="warning")
            return
        reviewed = await crud.review_vendor_application(application.id, approve)
        if reviewed is None:
            self.notify("This application was already reviewed.", severity="warning")
        else:
            self.notify(f"{reviewed.business_name}: {reviewed.status}.")
        self.handle_reload()
