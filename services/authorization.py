"""
Ownership and edit-window rules.

These operate on already-fetched entities and never touch storage, so the
same decision is made no matter which route asks.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from models.post import Comment, Post
from models.user import Principal

EDIT_WINDOW = timedelta(hours=24)


class DenyReason(str, Enum):
    NOT_OWNER = "not owner"
    EDIT_WINDOW_EXPIRED = "edit window expired"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def can_delete_comment(comment: Comment, requester: Principal) -> Decision:
    if comment.author_uid == requester.user_id or requester.is_admin:
        return ALLOW
    return Decision(False, DenyReason.NOT_OWNER)


def can_delete_post(post: Post, requester: Principal) -> Decision:
    if post.author_uid == requester.user_id or requester.is_admin:
        return ALLOW
    return Decision(False, DenyReason.NOT_OWNER)


def can_edit_post(post: Post, requester: Principal, now: datetime) -> Decision:
    """Owner only, and only while now - created_at <= 24h (the boundary itself is allowed)"""
    if post.author_uid != requester.user_id:
        return Decision(False, DenyReason.NOT_OWNER)
    if now - post.created_at > EDIT_WINDOW:
        return Decision(False, DenyReason.EDIT_WINDOW_EXPIRED)
    return ALLOW
