from datetime import datetime
from typing import List, Dict, Any, Optional, Set, Tuple

import firebase_admin
from firebase_admin import firestore as fs
from google.cloud import firestore
from google.cloud.firestore_v1 import FieldFilter

from models.post import PostFilter, SortOrder


def _with_id(doc) -> Dict[str, Any]:
    data = doc.to_dict()
    data["id"] = doc.id
    return data


def like_id(post_id: str, user_id: str) -> str:
    return f"{post_id}_{user_id}"


def user_location_id(user_id: str, city_id: str, apartment_id: Optional[str]) -> str:
    return f"{user_id}_{city_id}_{apartment_id or '-'}"


class FirestoreDB:
    """Thin wrapper over the Firestore client; every method is one round trip or one transaction"""

    def __init__(self, app: Optional[firebase_admin.App] = None, client: Optional[firestore.Client] = None):
        self.db = client if client is not None else fs.client(app)

    def collection(self, name: str):
        return self.db.collection(name)

    # ─── posts ──────────────────────────────────────────────

    def _visible_posts(self, post_filter: PostFilter):
        """Base query shared by listing and counting"""
        query = self.collection("posts").where(filter=FieldFilter("is_deleted", "==", False))
        if post_filter.apartment_id:
            query = query.where(filter=FieldFilter("apartment_id", "==", post_filter.apartment_id))
        if post_filter.city_id:
            query = query.where(filter=FieldFilter("city_id", "==", post_filter.city_id))
        if post_filter.category:
            query = query.where(filter=FieldFilter("category", "==", post_filter.category.value))
        return query

    def query_posts(
            self,
            post_filter: PostFilter,
            sort: SortOrder,
            limit: int,
            offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Get visible posts, ordered for stable pagination"""
        query = self._visible_posts(post_filter)
        if sort == SortOrder.POPULAR:
            query = query.order_by("likes_count", direction=firestore.Query.DESCENDING)
        query = query.order_by("created_at", direction=firestore.Query.DESCENDING)
        if offset:
            query = query.offset(offset)
        return [_with_id(doc) for doc in query.limit(limit).stream()]

    def post_categories(self, post_filter: PostFilter) -> List[str]:
        """Category of every visible post matching the filter"""
        docs = self._visible_posts(post_filter).select(["category"]).stream()
        return [doc.to_dict().get("category") for doc in docs]

    def get_post(self, post_id: str) -> Optional[Dict[str, Any]]:
        """Get a post by ID, deleted or not"""
        snapshot = self.collection("posts").document(post_id).get()
        if not snapshot.exists:
            return None
        return _with_id(snapshot)

    def create_post(self, data: Dict[str, Any]) -> Dict[str, Any]:
        new_post_ref = self.collection("posts").document()
        new_post_ref.set(data)
        return {**data, "id": new_post_ref.id}

    def update_post(self, post_id: str, fields: Dict[str, Any]):
        self.collection("posts").document(post_id).update(fields)

    def soft_delete_post(self, post_id: str, now: datetime):
        self.collection("posts").document(post_id).update({"is_deleted": True, "updated_at": now})

    # ─── likes ──────────────────────────────────────────────

    def get_liked_post_ids(self, post_ids: List[str], user_id: str) -> Set[str]:
        """
        Batch fetch which of the given posts a user has liked.
        Like documents are keyed by post and user, so this is a single get_all.
        """
        if not post_ids or not user_id:
            return set()

        likes = self.collection("likes")
        refs = [likes.document(like_id(post_id, user_id)) for post_id in post_ids]
        liked = set()
        for snapshot in self.db.get_all(refs):
            if snapshot.exists:
                liked.add(snapshot.to_dict().get("post_id"))
        return liked

    def toggle_like(self, post_id: str, user_id: str, now: datetime) -> Optional[Tuple[bool, int]]:
        """
        Flip the like row for (post, user) and adjust likes_count in the same
        transaction. Returns (liked, count) or None when the post is missing
        or deleted. Firestore retries the transaction on contention, so two
        concurrent toggles for the same pair are serialized.
        """
        post_ref = self.collection("posts").document(post_id)
        like_ref = self.collection("likes").document(like_id(post_id, user_id))
        transaction = self.db.transaction()

        @firestore.transactional
        def toggle_in_transaction(transaction):
            post_snapshot = post_ref.get(transaction=transaction)
            if not post_snapshot.exists:
                return None
            post_data = post_snapshot.to_dict()
            if post_data.get("is_deleted"):
                return None

            like_snapshot = like_ref.get(transaction=transaction)
            current = post_data.get("likes_count", 0)
            if like_snapshot.exists:
                transaction.delete(like_ref)
                liked, count = False, max(current - 1, 0)
            else:
                transaction.create(like_ref, {
                    "post_id": post_id,
                    "user_id": user_id,
                    "created_at": now,
                })
                liked, count = True, current + 1

            transaction.update(post_ref, {"likes_count": count})
            return liked, count

        return toggle_in_transaction(transaction)

    # ─── comments ───────────────────────────────────────────

    def get_comments(self, post_id: str) -> List[Dict[str, Any]]:
        """Get comments for a post, oldest first"""
        comments_ref = self.collection("comments").where(
            filter=FieldFilter("post_id", "==", post_id)
        ).order_by(
            "created_at", direction=firestore.Query.ASCENDING
        ).stream()
        return [_with_id(doc) for doc in comments_ref]

    def get_comment(self, comment_id: str) -> Optional[Dict[str, Any]]:
        snapshot = self.collection("comments").document(comment_id).get()
        if not snapshot.exists:
            return None
        return _with_id(snapshot)

    def add_comment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Add a comment and bump the post's comment counter in one batch"""
        comment_ref = self.collection("comments").document()
        batch = self.db.batch()
        batch.set(comment_ref, data)
        batch.update(
            self.collection("posts").document(data["post_id"]),
            {"comments_count": firestore.Increment(1)},
        )
        batch.commit()
        return {**data, "id": comment_ref.id}

    def delete_comment_cascade(self, comment_id: str) -> int:
        """
        Delete a comment together with its replies in one transaction, so a
        reply written concurrently either lands before the read and is
        deleted, or forces a retry. Returns the number of comments removed.
        """
        comments = self.collection("comments")
        comment_ref = comments.document(comment_id)
        replies_query = comments.where(filter=FieldFilter("parent_id", "==", comment_id))
        transaction = self.db.transaction()

        @firestore.transactional
        def cascade_in_transaction(transaction):
            snapshot = comment_ref.get(transaction=transaction)
            if not snapshot.exists:
                return 0
            replies = list(replies_query.stream(transaction=transaction))

            transaction.delete(comment_ref)
            for reply in replies:
                transaction.delete(reply.reference)
            removed = 1 + len(replies)
            transaction.update(
                self.collection("posts").document(snapshot.to_dict()["post_id"]),
                {"comments_count": firestore.Increment(-removed)},
            )
            return removed

        return cascade_in_transaction(transaction)

    # ─── reference data ─────────────────────────────────────

    def get_cities(self) -> List[Dict[str, Any]]:
        docs = self.collection("cities").order_by("name").stream()
        return [_with_id(doc) for doc in docs]

    def get_city(self, city_id: str) -> Optional[Dict[str, Any]]:
        snapshot = self.collection("cities").document(city_id).get()
        if not snapshot.exists:
            return None
        return _with_id(snapshot)

    def get_apartment(self, apartment_id: str) -> Optional[Dict[str, Any]]:
        snapshot = self.collection("apartments").document(apartment_id).get()
        if not snapshot.exists:
            return None
        return _with_id(snapshot)

    def get_apartments(self, city_id: Optional[str] = None, prefix: Optional[str] = None) -> List[Dict[str, Any]]:
        """Apartments ordered by name, optionally scoped to a city and/or a name prefix"""
        query = self.collection("apartments")
        if city_id:
            query = query.where(filter=FieldFilter("city_id", "==", city_id))
        if prefix:
            query = query.where(filter=FieldFilter("name", ">=", prefix)).where(
                filter=FieldFilter("name", "<=", prefix + "\uf8ff")
            )
        docs = query.order_by("name").stream()
        return [_with_id(doc) for doc in docs]

    # ─── user locations ─────────────────────────────────────

    def get_user_locations(self, user_id: str) -> List[Dict[str, Any]]:
        docs = self.collection("user_locations").where(filter=FieldFilter("user_id", "==", user_id)).stream()
        return [_with_id(doc) for doc in docs]

    def get_user_location(self, location_id: str) -> Optional[Dict[str, Any]]:
        snapshot = self.collection("user_locations").document(location_id).get()
        if not snapshot.exists:
            return None
        return _with_id(snapshot)

    def save_user_location(
            self,
            user_id: str,
            city_id: str,
            apartment_id: Optional[str],
            make_primary: bool,
            now: datetime
    ) -> Dict[str, Any]:
        """
        Upsert the (user, city, apartment) preference. It becomes primary when
        asked to or when the user has no other primary location, and at most
        one row per user is ever primary.
        """
        locations = self.collection("user_locations")
        location_ref = locations.document(user_location_id(user_id, city_id, apartment_id))
        owned_query = locations.where(filter=FieldFilter("user_id", "==", user_id))
        transaction = self.db.transaction()

        @firestore.transactional
        def save_in_transaction(transaction):
            owned = {doc.id: doc for doc in owned_query.stream(transaction=transaction)}
            current = owned.pop(location_ref.id, None)
            other_primaries = [doc for doc in owned.values() if doc.to_dict().get("is_primary")]
            is_primary = make_primary or not other_primaries

            if is_primary:
                for doc in other_primaries:
                    transaction.update(doc.reference, {"is_primary": False})
            data = {
                "user_id": user_id,
                "city_id": city_id,
                "apartment_id": apartment_id,
                "is_primary": is_primary,
                "created_at": current.to_dict().get("created_at", now) if current is not None else now,
            }
            transaction.set(location_ref, data)
            return {**data, "id": location_ref.id}

        return save_in_transaction(transaction)

    def delete_user_location(self, location_id: str):
        self.collection("user_locations").document(location_id).delete()

    # ─── properties ─────────────────────────────────────────

    def get_properties_in_latitude_band(self, min_lat: float, max_lat: float) -> List[Dict[str, Any]]:
        """Candidate listings whose latitude lies in [min_lat, max_lat]"""
        docs = self.collection("properties").where(
            filter=FieldFilter("latitude", ">=", min_lat)
        ).where(
            filter=FieldFilter("latitude", "<=", max_lat)
        ).stream()
        return [_with_id(doc) for doc in docs]
