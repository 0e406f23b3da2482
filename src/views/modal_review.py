from typing import List, Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Select

import db.crud as crud
from db.crud import ReviewKind
from db.models import Review
from utils.pure import average_rating, rating_stars


class ReviewModal(ModalScreen[bool]):
    """
    Write or edit the signed-in user's review of a product or temple.
    Returns True when a review was saved.
    """

    def __init__(self, kind: ReviewKind, target_id: str, target_name: str) -> None:
        super().__init__()
        self._kind = kind
        self._target_id = target_id
        self._target_name = target_name
        self._existing: Optional[Review] = None

    def compose(self) -> ComposeResult:
        with Vertical(id="div-review"):
            yield Label(f"Review: {self._target_name}", id="label-review-title")
            yield Label("Rating")
            yield Select(
                [("★" * n, n) for n in range(5, 0, -1)],
                prompt="Choose a rating",
                id="select-rating",
            )
            yield Label("Title (optional)")
            yield Input(id="input-review-title", max_length=80)
            yield Label("Comment (optional)")
            yield Input(id="input-review-comment", max_length=500)
            with Horizontal():
                yield Button("Cancel", id="btn-review-cancel")
                yield Button("Submit", id="btn-review-save", variant="primary")

    async def on_mount(self) -> None:
        uid = self.app.state.uid
        self._existing = await crud.get_user_review(self._kind, self._target_id, uid)
        if self._existing:
            self.query_one("#select-rating", Select).value = self._existing.rating
            self.query_one("#input-review-title", Input).value = self._existing.title or ""
            self.query_one("#input-review-comment", Input).value = self._existing.comment or ""
            self.query_one("#btn-review-save", Button).label = "Update"

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-review-cancel")
    def handle_cancel(self) -> None:
        self.dismiss(False)

    @on(Button.Pressed, "#btn-review-save")
    @work(exclusive=True)
    async def handle_save(self) -> None:
        select = self.query_one("#select-rating", Select)
        if select.value is Select.BLANK:
            select.add_class("-invalid")
            self.notify("Please choose a rating.", severity="error")
            return
        select.remove_class("-invalid")
        title = self.query_one("#input-review-title", Input).value.strip()
        comment = self.query_one("#input-review-comment", Input).value.strip()

        try:
            if self._existing:
                await crud.update_review(
                    self._kind, self._existing.id, self.app.state.uid, select.value, title, comment
                )
                self.notify("Your review has been updated.")
            else:
                await crud.create_review(
                    self._kind, self._target_id, self.app.state.uid, select.value, title, comment
                )
                self.notify("Thank you for sharing your experience!")
        except ValueError as e:
            self.notify(str(e), severity="error")
            return
        self.dismiss(True)


def reviews_markdown(reviews: List[Review]) -> str:
    if not reviews:
        return "#### Reviews\n\n_No reviews yet._"
    average = average_rating(r.rating for r in reviews)
    parts = [f"#### Reviews: {rating_stars(average)} {average:.1f} ({len(reviews)})"]
    for r in reviews:
        heading = f"**{rating_stars(r.rating)}** {r.title or ''}".rstrip()
        byline = f"_{r.reviewer_name or 'Anonymous'}, {r.created_at:%Y-%m-%d}_"
        parts.append(f"{heading}  \n{byline}" + (f"  \n{r.comment}" if r.comment else ""))
    return "\n\n".join(parts)
