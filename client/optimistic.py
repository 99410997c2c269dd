"""
Optimistic UI state for likes and comments.

The displayed value changes the moment the user acts; the server's answer
then replaces it (reconciled) or the pre-action value comes back (reverted).
The server is the only source of truth for counts: a reconciled like state is
exactly what the server returned, never a locally computed total.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from models.post import Comment, LikeState

logger = logging.getLogger(__name__)

Notifier = Callable[[str], None]


def log_notification(message: str):
    logger.warning(message)


class OptimisticState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    RECONCILED = "reconciled"
    REVERTED = "reverted"


@dataclass(frozen=True)
class LikeView:
    liked: bool
    count: int

    def flipped(self) -> "LikeView":
        if self.liked:
            return LikeView(False, max(self.count - 1, 0))
        return LikeView(True, self.count + 1)


class LikeToggle:
    """
    Like button state machine.

    Toggles made while a request is in flight are counted, not sent; the
    driver sends them one at a time after each response, so the server sees
    every toggle in order and the last response decides what is displayed.
    """

    def __init__(self, liked: bool, count: int, notify: Notifier = log_notification,
                 error_message: str = "Could not update like. Please try again."):
        self.confirmed = LikeView(liked, count)
        self.view = self.confirmed
        self.state = OptimisticState.IDLE
        self.outstanding = 0
        self.notify = notify
        self.error_message = error_message

    def begin(self) -> bool:
        """Flip the displayed state. Returns True when the caller should send the request now."""
        send_now = self.outstanding == 0
        self.outstanding += 1
        self.view = self.view.flipped()
        self.state = OptimisticState.PENDING
        return send_now

    def reconcile(self, server: LikeState) -> bool:
        """Apply a server response. Returns True while more queued toggles must be sent."""
        if self.outstanding == 0:
            raise RuntimeError("reconcile() without a pending toggle")
        self.confirmed = LikeView(server.liked, server.count)
        self.outstanding -= 1
        view = self.confirmed
        for _ in range(self.outstanding):
            view = view.flipped()
        self.view = view
        if self.outstanding:
            return True
        self.state = OptimisticState.RECONCILED
        return False

    def revert(self, error: Optional[BaseException] = None):
        """Drop every pending toggle and show the last confirmed state again"""
        self.outstanding = 0
        self.view = self.confirmed
        self.state = OptimisticState.REVERTED
        if error is not None:
            logger.info("Like toggle reverted: %s", error)
        self.notify(self.error_message)


@dataclass
class _PendingComment:
    kind: str
    comment: Comment
    index: int


class CommentThread:
    """Optimistic add / delete over a flat list of comments"""

    def __init__(self, comments: Optional[List[Comment]] = None, notify: Notifier = log_notification):
        self.comments: List[Comment] = list(comments or [])
        self.state = OptimisticState.IDLE
        self.notify = notify
        self._pending: Dict[str, _PendingComment] = {}

    def _settle(self, state: OptimisticState):
        self.state = OptimisticState.PENDING if self._pending else state

    def begin_add(self, temp: Comment):
        """Show a not-yet-saved comment; temp.id must be unique among pending ones"""
        self.comments.append(temp)
        self._pending[temp.id] = _PendingComment("add", temp, len(self.comments) - 1)
        self.state = OptimisticState.PENDING

    def begin_delete(self, comment_id: str):
        for index, comment in enumerate(self.comments):
            if comment.id == comment_id:
                self.comments.pop(index)
                self._pending[comment_id] = _PendingComment("delete", comment, index)
                self.state = OptimisticState.PENDING
                return
        raise KeyError(comment_id)

    def reconcile(self, key: str, saved: Optional[Comment] = None):
        """Confirm a pending add (replacing the temp comment with the saved one) or delete"""
        pending = self._pending.pop(key)
        if pending.kind == "add":
            self.comments = [saved if c.id == key and saved is not None else c for c in self.comments]
        self._settle(OptimisticState.RECONCILED)

    def revert(self, key: str, error: Optional[BaseException] = None):
        pending = self._pending.pop(key)
        if pending.kind == "add":
            self.comments = [c for c in self.comments if c.id != key]
            self.notify("Could not post comment. Please try again.")
        else:
            self.comments.insert(min(pending.index, len(self.comments)), pending.comment)
            self.notify("Could not delete comment. Please try again.")
        if error is not None:
            logger.info("Comment %s on %s reverted: %s", pending.kind, key, error)
        self._settle(OptimisticState.REVERTED)
