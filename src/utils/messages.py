from typing import Optional

from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class AuthChangedMessage(Message):
    """
    Posted whenever the auth context changes: sign in/out, roles fetched, role switched.
    The app re-runs the route guard, screens refresh their sidebar.
    """

    bubble = True


class SettingsChangedMessage(Message):
    """
    Site settings were (re)loaded; branding and the maintenance gate must be re-applied
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired after any cart mutation so the cart screen can re-render.

    If posted from outside CartScreen, make sure to post at App level
    """

    bubble = True


class NewOrderMessage(Message):
    """
    Fired when orders are placed.
    Listened to by customer orders and vendor screens
    """

    bubble = True


class NavigateMessage(Message):
    """
    Ask the app to go to a route; the app runs the maintenance gate and the guard
    """

    bubble = True

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path


class NotificationReceivedMessage(Message):
    """
    A notification row was inserted for the signed-in user (realtime channel)
    """

    bubble = True

    def __init__(self, title: str, message: Optional[str] = None) -> None:
        super().__init__()
        self.title = title
        self.message = message


class ChatMessageReceivedMessage(Message):
    """
    A support chat message was inserted (realtime channel)
    """

    bubble = True

    def __init__(self, conversation_id: str) -> None:
        super().__init__()
        self.conversation_id = conversation_id
