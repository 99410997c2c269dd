from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Query

from config import settings
from dependencies import Community, CurrentUser, OptionalUser
from models.post import (
    CATEGORY_LABELS,
    Category,
    PostFilter,
    SortOrder,
)
from services.validation import validate

router = APIRouter()


@router.get("/categories")
async def list_categories() -> Dict[str, Any]:
    """Category values with their display labels"""
    return {
        "success": True,
        "data": [{"value": category.value, "label": CATEGORY_LABELS[category]} for category in Category],
    }


@router.get("/posts")
def get_posts(
        service: Community,
        viewer: OptionalUser,
        city: Optional[str] = None,
        apartment_id: Optional[str] = Query(None, alias="apartmentId"),
        category: Optional[Category] = None,
        sort: SortOrder = SortOrder.LATEST,
        limit: int = Query(20, ge=1, le=settings.POSTS_PAGE_MAX),
        offset: int = Query(0, ge=0),
) -> Dict[str, Any]:
    """Visible posts for a city / apartment / category, with the caller's like status"""
    post_filter = PostFilter(city_id=city or None, apartment_id=apartment_id or None, category=category)
    posts = service.list_posts(post_filter, sort, limit, offset, viewer)
    return {"success": True, "data": [post.to_json() for post in posts]}


@router.post("/posts")
def create_post(
        service: Community,
        current_user: CurrentUser,
        payload: Any = Body(None),
) -> Dict[str, Any]:
    """Create a new post"""
    request = validate("post-create", payload)
    post = service.create_post(request, current_user)
    return {"success": True, "data": post.to_json()}


@router.get("/posts/counts")
def get_post_counts(
        service: Community,
        city: Optional[str] = None,
        apartment_id: Optional[str] = Query(None, alias="apartmentId"),
) -> Dict[str, Any]:
    """Total and per-category post counts for badge display"""
    counts = service.count_posts_by_category(PostFilter(city_id=city or None, apartment_id=apartment_id or None))
    return counts.to_json()


@router.get("/posts/{post_id}")
def get_post(post_id: str, service: Community, viewer: OptionalUser) -> Dict[str, Any]:
    post = service.get_post(post_id, viewer)
    return {"success": True, "data": post.to_json()}


@router.patch("/posts/{post_id}")
def update_post(
        post_id: str,
        service: Community,
        current_user: CurrentUser,
        payload: Any = Body(None),
) -> Dict[str, Any]:
    """Edit a post; only the author, and only within 24 hours of creation"""
    request = validate("post-update", payload)
    post = service.update_post(post_id, request, current_user)
    return {"success": True, "data": post.to_json()}


@router.delete("/posts/{post_id}")
def delete_post(post_id: str, service: Community, current_user: CurrentUser) -> Dict[str, Any]:
    """Soft delete a post (author or admin)"""
    service.delete_post(post_id, current_user)
    return {"success": True, "message": "Post deleted"}


@router.post("/posts/{post_id}/like")
def toggle_like(post_id: str, service: Community, current_user: CurrentUser) -> Dict[str, Any]:
    """Toggle like status for a post"""
    state = service.toggle_like(post_id, current_user)
    return {"success": True, "data": state.to_json()}
