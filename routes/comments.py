from typing import Any, Dict

from fastapi import APIRouter, Body

from dependencies import Community, CurrentUser
from services.validation import validate

router = APIRouter()


@router.get("/posts/{post_id}/comments")
def get_comments(post_id: str, service: Community) -> Dict[str, Any]:
    """Comments for a post, top-level first with replies nested"""
    comments = service.list_comments(post_id)
    return {"success": True, "data": [comment.to_json() for comment in comments]}


@router.post("/posts/{post_id}/comments")
def add_comment(
        post_id: str,
        service: Community,
        current_user: CurrentUser,
        payload: Any = Body(None),
) -> Dict[str, Any]:
    """Add a comment, or a reply when parentId is given"""
    request = validate("comment-create", payload)
    comment = service.create_comment(post_id, request, current_user)
    return {"success": True, "data": comment.to_json()}


@router.delete("/posts/{post_id}/comments/{comment_id}")
def delete_comment(post_id: str, comment_id: str, service: Community, current_user: CurrentUser) -> Dict[str, Any]:
    """Delete a comment and its replies"""
    service.delete_comment(post_id, comment_id, current_user)
    return {"success": True, "message": "Comment deleted"}


@router.post("/comments/delete")
def delete_comment_by_body(
        service: Community,
        current_user: CurrentUser,
        payload: Any = Body(None),
) -> Dict[str, Any]:
    """Same as the DELETE route, for clients that cannot send nested dynamic paths"""
    request = validate("comment-delete", payload)
    service.delete_comment(request.post_id, request.comment_id, current_user)
    return {"success": True, "message": "Comment deleted"}
