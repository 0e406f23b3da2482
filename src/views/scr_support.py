from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume, ScreenSuspend
from textual.widgets import Button, DataTable, Input, Label, Markdown

import db.crud as crud
from db.models import ChatConversation, ChatMessage
from db.realtime import RealtimeSubscription, get_channel
from utils.messages import ChatMessageReceivedMessage
from views.base_screen import BaseScreen


class SupportScreen(BaseScreen):
    """
    Support chat. Customers and vendors talk to the site team in their own
    conversations; admins see every conversation and can close them.
    """

    ROUTE = "/support"

    def __init__(self) -> None:
        super().__init__()
        self._conversations: Dict[str, ChatConversation] = {}
        self.current_conversation: Optional[str] = None
        self._realtime: Optional[RealtimeSubscription] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-support"):
            with Vertical(id="div-conversations"):
                yield DataTable(id="table-conversations")
                with Horizontal(id="hort-new-conversation"):
                    yield Input(placeholder="Subject of a new conversation", id="input-subject")
                    yield Button("Start", id="btn-new-conversation", variant="primary")
                yield Button("Close conversation", id="btn-close-conversation", variant="error")
            with Vertical(id="div-chat"):
                yield Label("Select a conversation", id="label-chat-title")
                yield Markdown("", id="md-chat")
                with Horizontal(id="hort-chat-input"):
                    yield Input(placeholder="Type a message", id="input-chat-message")
                    yield Button("Send", id="btn-chat-send", variant="success")

    def on_mount(self) -> None:
        table = self.query_one("#table-conversations", DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Subject", "From", "Status", "Unread")

    @property
    def _admin(self) -> bool:
        return self.app.state.auth.is_admin

    # ---------------------------
    # Realtime
    # ---------------------------

    @on(ScreenResume)
    def handle_resume(self) -> None:
        self._subscribe()
        self.query_one("#hort-new-conversation").display = not self._admin
        self.query_one("#btn-close-conversation").display = self._admin
        self.load_conversations()

    @on(ScreenSuspend)
    def handle_suspend(self) -> None:
        if self._realtime:
            self._realtime.unsubscribe()
            self._realtime = None

    def _subscribe(self) -> None:
        if self._realtime:
            self._realtime.unsubscribe()
        # admins follow every conversation, everyone else only their own
        self._realtime = get_channel().on_insert(
            "chat_messages",
            lambda row: self.post_message(ChatMessageReceivedMessage(row["conversation_id"])),
            user_id=None if self._admin else self.app.state.uid,
        )

    @on(ChatMessageReceivedMessage)
    def handle_chat_message(self, message: ChatMessageReceivedMessage) -> None:
        self.load_conversations()
        if message.conversation_id == self.current_conversation:
            self.load_messages()

    # ---------------------------
    # Conversations
    # ---------------------------

    @work(exclusive=True, group="conversations")
    async def load_conversations(self) -> None:
        uid = self.app.state.uid
        if not uid:
            return
        conversations = await crud.list_conversations(uid, None if self._admin else uid)
        self._conversations = {c.id: c for c in conversations}
        table = self.query_one("#table-conversations", DataTable)
        table.clear()
        for c in conversations:
            table.add_row(
                c.subject or "-",
                c.user_email or "-",
                c.status,
                c.unread or "",
                key=c.id,
            )
        if self.current_conversation in self._conversations:
            table.move_cursor(row=table.get_row_index(self.current_conversation))

    @on(DataTable.RowSelected, "#table-conversations")
    def handle_conversation_selected(self, event: DataTable.RowSelected) -> None:
        self.current_conversation = event.row_key.value
        self.load_messages()

    @on(Input.Submitted, "#input-subject")
    @on(Button.Pressed, "#btn-new-conversation")
    @work(exclusive=True, group="new-conversation")
    async def handle_new_conversation(self) -> None:
        subject_input = self.query_one("#input-subject", Input)
        try:
            conversation = await crud.create_conversation(self.app.state.uid, subject_input.value)
        except ValueError as e:
            self.notify(str(e), severity="warning")
            return
        subject_input.value = ""
        self._conversations[conversation.id] = conversation
        self.current_conversation = conversation.id
        self.load_conversations()
        self.load_messages()
        self.query_one("#input-chat-message", Input).focus()

    @on(Button.Pressed, "#btn-close-conversation")
    @work(exclusive=True, group="close-conversation")
    async def handle_close_conversation(self) -> None:
        if self.current_conversation is None:
            self.notify("Select a conversation first.", severity="warning")
            return
        if await crud.close_conversation(self.current_conversation):
            self.notify("Conversation closed.")
        else:
            self.notify("This conversation is already closed.", severity="warning")
        self.load_conversations()
        self.load_messages()

    # ---------------------------
    # Messages
    # ---------------------------

    @work(exclusive=True, group="messages")
    async def load_messages(self) -> None:
        conversation_id = self.current_conversation
        if conversation_id is None:
            return
        uid = self.app.state.uid
        messages = await crud.list_chat_messages(conversation_id, reader_id=uid)
        conversation = self._conversations.get(conversation_id)
        subject = conversation.subject if conversation else None
        self.query_one("#label-chat-title", Label).update(subject or "Conversation")
        owner = conversation.user_id if conversation else None
        await self.query_one("#md-chat", Markdown).update(render_messages(messages, uid, owner))
        closed = conversation is not None and conversation.status != "open"
        self.query_one("#hort-chat-input").disabled = closed

    @on(Input.Submitted, "#input-chat-message")
    @on(Button.Pressed, "#btn-chat-send")
    @work(exclusive=True, group="send")
    async def handle_send(self) -> None:
        if self.current_conversation is None:
            self.notify("Select a conversation first.", severity="warning")
            return
        message_input = self.query_one("#input-chat-message", Input)
        try:
            await crud.send_chat_message(
                self.current_conversation, self.app.state.uid, message_input.value
            )
        except ValueError as e:
            self.notify(str(e), severity="error")
            return
        message_input.value = ""
        # the realtime insert reloads the thread


def render_messages(messages: List[ChatMessage], uid: str, owner_id: Optional[str]) -> str:
    if not messages:
        return "_No messages yet. Say hello!_"
    parts = []
    for m in messages:
        if m.sender_id == uid:
            who = "You"
        elif m.sender_id == owner_id:
            who = "Customer"
        else:
            who = "Support"
        parts.append(f"**{who}** _{m.created_at:%Y-%m-%d %H:%M}_  \n{m.message}")
    return "\n\n".join(parts)
