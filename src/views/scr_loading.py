from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import LoadingIndicator


class LoadingScreen(Screen):
    """Shown while the route guard waits for the session and roles to resolve."""

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()
