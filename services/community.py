import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import bleach
from google.api_core.exceptions import GoogleAPIError

from models.location import AddLocationRequest, PrimaryLocationRequest, UserLocation
from models.post import (
    Category,
    CategoryCounts,
    Comment,
    CreateCommentRequest,
    CreatePostRequest,
    LikeState,
    Post,
    PostFilter,
    SortOrder,
    UpdatePostRequest,
)
from models.user import Principal
from services.authorization import can_delete_comment, can_delete_post, can_edit_post
from services.errors import AuthRequired, Forbidden, NotFound, PersistenceFailure, ValidationError
from services.firestore import FirestoreDB

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _clean(text: str) -> str:
    return bleach.clean(text, tags=[], strip=True).strip()


def _require(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise AuthRequired()
    return principal


def build_comment_tree(comments: List[Comment]) -> List[Comment]:
    """Arrange a flat, oldest-first list into top-level comments with their replies"""
    by_id = {comment.id: comment for comment in comments}
    roots = []
    for comment in comments:
        parent = by_id.get(comment.parent_id) if comment.parent_id else None
        if parent is not None:
            parent.replies.append(comment)
        elif comment.parent_id is None:
            roots.append(comment)
    return roots


class CommunityService:
    """
    Posts, comments and likes on top of FirestoreDB.

    Validation and authorization happen before any write; storage errors are
    logged and re-raised as PersistenceFailure so their text never reaches
    the client.
    """

    def __init__(self, db: FirestoreDB, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    def _call(self, action: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except GoogleAPIError as e:
            logger.exception("Firestore call failed during %s", action)
            raise PersistenceFailure() from e

    def _load_post(self, post_id: str) -> Post:
        data = self._call("load post", self.db.get_post, post_id)
        if data is None or data.get("is_deleted"):
            raise NotFound("Post not found")
        return Post.model_validate(data)

    # ─── posts ──────────────────────────────────────────────

    def list_posts(
            self,
            post_filter: PostFilter,
            sort: SortOrder = SortOrder.LATEST,
            limit: int = 20,
            offset: int = 0,
            viewer: Optional[Principal] = None,
    ) -> List[Post]:
        rows = self._call("list posts", self.db.query_posts, post_filter, sort, limit, offset)
        posts = [Post.model_validate(row) for row in rows]
        if viewer is not None and posts:
            liked = self._call(
                "load like status", self.db.get_liked_post_ids, [p.id for p in posts], viewer.user_id
            )
            for post in posts:
                post.is_liked = post.id in liked
        return posts

    def get_post(self, post_id: str, viewer: Optional[Principal] = None) -> Post:
        post = self._load_post(post_id)
        if viewer is not None:
            liked = self._call("load like status", self.db.get_liked_post_ids, [post.id], viewer.user_id)
            post.is_liked = post.id in liked
        return post

    def _resolve_location(self, apartment_id: Optional[str], city_id: Optional[str]) -> Optional[str]:
        """A post's city follows its apartment; an explicit city must agree with it"""
        if not apartment_id:
            return city_id
        apartment = self._call("load apartment", self.db.get_apartment, apartment_id)
        if apartment is None:
            raise ValidationError(
                "Please choose a valid apartment",
                errors=[{"field": "apartmentId", "message": "Unknown apartment"}],
            )
        if city_id and city_id != apartment.get("city_id"):
            raise ValidationError(
                "Apartment is not in the selected city",
                errors=[{"field": "cityId", "message": "Does not match the apartment's city"}],
            )
        return apartment.get("city_id")

    def create_post(self, payload: CreatePostRequest, principal: Optional[Principal]) -> Post:
        author = _require(principal)
        city_id = self._resolve_location(payload.apartment_id, payload.city_id)
        now = self.clock()
        data: Dict[str, Any] = {
            "author_uid": author.user_id,
            "city_id": city_id,
            "apartment_id": payload.apartment_id,
            "category": payload.category.value,
            "title": _clean(payload.title) if payload.title else None,
            "body": _clean(payload.body),
            "images": payload.images,
            "likes_count": 0,
            "comments_count": 0,
            "created_at": now,
            "updated_at": now,
            "is_deleted": False,
            "status": "published",
        }
        if not data["body"]:
            raise ValidationError("Please enter the post body", errors=[{"field": "body", "message": "Empty body"}])

        created = self._call("create post", self.db.create_post, data)
        logger.info("User %s created post %s in %s", author.user_id, created["id"], payload.category.value)
        return Post.model_validate(created)

    def update_post(self, post_id: str, payload: UpdatePostRequest, principal: Optional[Principal]) -> Post:
        requester = _require(principal)
        post = self._load_post(post_id)

        decision = can_edit_post(post, requester, self.clock())
        if not decision:
            raise Forbidden(f"Cannot edit post: {decision.reason.value}")

        changes = payload.model_dump(exclude_unset=True)
        for key in ("category", "body", "images"):
            if key in changes and changes[key] is None:
                del changes[key]
        if "apartment_id" in changes or "city_id" in changes:
            apartment_id = changes.get("apartment_id", post.apartment_id)
            city_id = changes.get("city_id", None if apartment_id else post.city_id)
            changes["apartment_id"] = apartment_id
            changes["city_id"] = self._resolve_location(apartment_id, city_id)
        if "category" in changes:
            changes["category"] = changes["category"].value
        if changes.get("title"):
            changes["title"] = _clean(changes["title"])
        if "body" in changes:
            changes["body"] = _clean(changes["body"])
            if not changes["body"]:
                raise ValidationError("Please enter the post body", errors=[{"field": "body", "message": "Empty body"}])
        changes["updated_at"] = self.clock()

        self._call("update post", self.db.update_post, post_id, changes)
        updated = Post.model_validate({**post.model_dump(), **changes})
        liked = self._call("load like status", self.db.get_liked_post_ids, [post_id], requester.user_id)
        updated.is_liked = post_id in liked
        return updated

    def delete_post(self, post_id: str, principal: Optional[Principal]):
        requester = _require(principal)
        post = self._load_post(post_id)

        decision = can_delete_post(post, requester)
        if not decision:
            raise Forbidden("You don't have permission to delete this post")

        self._call("delete post", self.db.soft_delete_post, post_id, self.clock())
        logger.info("User %s soft-deleted post %s", requester.user_id, post_id)

    def count_posts_by_category(self, post_filter: PostFilter) -> CategoryCounts:
        categories = self._call("count posts", self.db.post_categories, post_filter)
        by_category = {category: 0 for category in Category}
        for value in categories:
            try:
                by_category[Category(value)] += 1
            except ValueError:
                logger.warning("Post with unknown category %r ignored in counts", value)
        return CategoryCounts(total=sum(by_category.values()), by_category=by_category)

    # ─── comments ───────────────────────────────────────────

    def list_comments(self, post_id: str) -> List[Comment]:
        self._load_post(post_id)
        rows = self._call("list comments", self.db.get_comments, post_id)
        return build_comment_tree([Comment.model_validate(row) for row in rows])

    def create_comment(self, post_id: str, payload: CreateCommentRequest, principal: Optional[Principal]) -> Comment:
        author = _require(principal)
        body = _clean(payload.body)
        if not body:
            raise ValidationError("Please enter a comment", errors=[{"field": "body", "message": "Empty comment"}])

        self._load_post(post_id)

        if payload.parent_id:
            parent = self._call("load parent comment", self.db.get_comment, payload.parent_id)
            if parent is None or parent.get("post_id") != post_id:
                raise NotFound("Parent comment not found")
            if parent.get("parent_id"):
                raise ValidationError(
                    "Replies can only be added to top-level comments",
                    errors=[{"field": "parentId", "message": "Nested replies are not allowed"}],
                )

        data = {
            "post_id": post_id,
            "author_uid": author.user_id,
            "parent_id": payload.parent_id,
            "body": body,
            "created_at": self.clock(),
        }
        created = self._call("create comment", self.db.add_comment, data)
        return Comment.model_validate(created)

    def delete_comment(self, post_id: str, comment_id: str, principal: Optional[Principal]):
        requester = _require(principal)
        data = self._call("load comment", self.db.get_comment, comment_id)
        # a comment id from another post is treated as absent
        if data is None or data.get("post_id") != post_id:
            raise NotFound("Comment not found")

        comment = Comment.model_validate(data)
        decision = can_delete_comment(comment, requester)
        if not decision:
            raise Forbidden("You don't have permission to delete this comment")

        removed = self._call("delete comment", self.db.delete_comment_cascade, comment_id)
        logger.info("User %s deleted comment %s (%d removed)", requester.user_id, comment_id, removed)

    # ─── likes ──────────────────────────────────────────────

    def toggle_like(self, post_id: str, principal: Optional[Principal]) -> LikeState:
        requester = _require(principal)
        result = self._call("toggle like", self.db.toggle_like, post_id, requester.user_id, self.clock())
        if result is None:
            raise NotFound("Post not found")
        liked, count = result
        return LikeState(liked=liked, count=count)

    # ─── user locations ─────────────────────────────────────

    def list_user_locations(self, principal: Optional[Principal]) -> List[UserLocation]:
        """The caller's saved locations, primary first then oldest first"""
        owner = _require(principal)
        rows = self._call("list user locations", self.db.get_user_locations, owner.user_id)
        locations = [UserLocation.model_validate(row) for row in rows]
        return sorted(locations, key=lambda loc: (not loc.is_primary, loc.created_at))

    def _save_user_location(self, owner: Principal, city_id: str, apartment_id: Optional[str],
                            make_primary: bool) -> UserLocation:
        if self._call("load city", self.db.get_city, city_id) is None:
            raise ValidationError(
                "Please choose a valid city",
                errors=[{"field": "cityId", "message": "Unknown city"}],
            )
        if apartment_id:
            self._resolve_location(apartment_id, city_id)
        saved = self._call(
            "save user location", self.db.save_user_location,
            owner.user_id, city_id, apartment_id, make_primary, self.clock(),
        )
        return UserLocation.model_validate(saved)

    def add_user_location(self, payload: AddLocationRequest, principal: Optional[Principal]) -> UserLocation:
        owner = _require(principal)
        location = self._save_user_location(owner, payload.city_id, payload.apartment_id, payload.make_primary)
        logger.info("User %s saved location %s", owner.user_id, location.id)
        return location

    def set_primary_location(self, payload: PrimaryLocationRequest, principal: Optional[Principal]) -> UserLocation:
        """Make the given city/apartment the caller's only primary location, saving it if new"""
        owner = _require(principal)
        return self._save_user_location(owner, payload.city_id, payload.apartment_id, True)

    def remove_user_location(self, location_id: str, principal: Optional[Principal]):
        owner = _require(principal)
        data = self._call("load user location", self.db.get_user_location, location_id)
        # someone else's location is reported as absent
        if data is None or data.get("user_id") != owner.user_id:
            raise NotFound("Location not found")
        self._call("delete user location", self.db.delete_user_location, location_id)
        logger.info("User %s removed location %s", owner.user_id, location_id)
