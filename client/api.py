import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from client.optimistic import CommentThread, LikeToggle, LikeView
from models.post import CategoryCounts, Comment, LikeState, Post

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class CommunityClient:
    """Async HTTP client for the community API"""

    def __init__(self, session: aiohttp.ClientSession, base_url: str, id_token: Optional[str] = None):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.id_token = id_token

    def _headers(self) -> Dict[str, str]:
        if self.id_token:
            return {"Authorization": f"Bearer {self.id_token}"}
        return {}

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            async with self.session.request(
                    method, f"{self.base_url}{path}", headers=self._headers(), **kwargs
            ) as response:
                try:
                    body = await response.json()
                except (aiohttp.ContentTypeError, ValueError):
                    body = {}
                if response.status >= 400 or body.get("success") is False:
                    raise ApiError(response.status, body.get("message") or f"Request failed ({response.status})")
                return body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ApiError(0, "Network error. Please check your connection and try again.") from e

    async def list_posts(self, **params) -> List[Post]:
        query = {key: value for key, value in params.items() if value is not None}
        body = await self._request("GET", "/api/community/posts", params=query)
        return [Post.model_validate(item) for item in body["data"]]

    async def create_post(self, payload: Dict[str, Any]) -> Post:
        body = await self._request("POST", "/api/community/posts", json=payload)
        return Post.model_validate(body["data"])

    async def post_counts(self, **params) -> CategoryCounts:
        query = {key: value for key, value in params.items() if value is not None}
        body = await self._request("GET", "/api/community/posts/counts", params=query)
        return CategoryCounts.model_validate(body)

    async def toggle_like(self, post_id: str) -> LikeState:
        # No count is sent; the response carries the authoritative one
        body = await self._request("POST", f"/api/community/posts/{post_id}/like")
        return LikeState.model_validate(body["data"])

    async def add_comment(self, post_id: str, text: str, parent_id: Optional[str] = None) -> Comment:
        payload: Dict[str, Any] = {"body": text}
        if parent_id:
            payload["parentId"] = parent_id
        body = await self._request("POST", f"/api/community/posts/{post_id}/comments", json=payload)
        return Comment.model_validate(body["data"])

    async def delete_comment(self, post_id: str, comment_id: str):
        await self._request("DELETE", f"/api/community/posts/{post_id}/comments/{comment_id}")


async def toggle_like_optimistically(client: CommunityClient, toggle: LikeToggle, post_id: str) -> LikeView:
    """
    Flip the like button immediately and keep it in step with the server.
    A call made while another is in flight only updates the display; the
    in-flight call sends the queued toggle once its own response arrives.
    Any failure, cancellation included, puts the last confirmed state back.
    """
    if not toggle.begin():
        return toggle.view

    try:
        while True:
            state = await client.toggle_like(post_id)
            if not toggle.reconcile(state):
                break
    except ApiError as e:
        toggle.revert(e)
    except BaseException as e:
        toggle.revert(e)
        raise
    return toggle.view


async def add_comment_optimistically(
        client: CommunityClient,
        thread: CommentThread,
        post_id: str,
        author_uid: str,
        text: str,
        parent_id: Optional[str] = None,
) -> Optional[Comment]:
    temp = Comment(
        id=f"temp-{uuid.uuid4().hex}",
        post_id=post_id,
        author_uid=author_uid,
        parent_id=parent_id,
        body=text,
        created_at=datetime.now(timezone.utc),
    )
    thread.begin_add(temp)
    try:
        saved = await client.add_comment(post_id, text, parent_id)
    except ApiError as e:
        thread.revert(temp.id, e)
        return None
    except BaseException as e:
        thread.revert(temp.id, e)
        raise
    thread.reconcile(temp.id, saved)
    return saved


async def delete_comment_optimistically(client: CommunityClient, thread: CommentThread, post_id: str, comment_id: str) -> bool:
    thread.begin_delete(comment_id)
    try:
        await client.delete_comment(post_id, comment_id)
    except ApiError as e:
        thread.revert(comment_id, e)
        return False
    except BaseException as e:
        thread.revert(comment_id, e)
        raise
    thread.reconcile(comment_id)
    return True
