"""Pytest fixtures for the community backend."""

import copy
import itertools
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest
import pytest_asyncio
from fastapi import FastAPI
from google.api_core.exceptions import ServiceUnavailable
from httpx import ASGITransport, AsyncClient

from dependencies import get_community_service, get_firestore, get_verifier
from main import create_app
from models.post import PostFilter, SortOrder
from services.community import CommunityService
from services.firestore import like_id, user_location_id


class FakeClock:
    """Deterministic wall clock; every reading moves time forward one second"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current

    def advance(self, delta: timedelta):
        self.now = self.now + delta


class InMemoryFirestore:
    """
    Test double for FirestoreDB. Implements the same method surface over
    dicts so the service and routes can be exercised without a project.
    Set `fail_with` to make every call raise that exception.
    """

    def __init__(self):
        self.posts: Dict[str, Dict[str, Any]] = {}
        self.comments: Dict[str, Dict[str, Any]] = {}
        self.likes: Dict[str, Dict[str, Any]] = {}
        self.cities: Dict[str, Dict[str, Any]] = {}
        self.apartments: Dict[str, Dict[str, Any]] = {}
        self.properties: Dict[str, Dict[str, Any]] = {}
        self.user_locations: Dict[str, Dict[str, Any]] = {}
        self.fail_with: Optional[Exception] = None
        self._ids = itertools.count(1)

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    @staticmethod
    def _out(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return {**copy.deepcopy(data), "id": doc_id}

    # posts

    def _visible(self, post_filter: PostFilter) -> List[Tuple[str, Dict[str, Any]]]:
        rows = []
        for post_id, data in self.posts.items():
            if data.get("is_deleted") is not False:
                continue
            if post_filter.apartment_id and data.get("apartment_id") != post_filter.apartment_id:
                continue
            if post_filter.city_id and data.get("city_id") != post_filter.city_id:
                continue
            if post_filter.category and data.get("category") != post_filter.category.value:
                continue
            rows.append((post_id, data))
        return rows

    def query_posts(self, post_filter: PostFilter, sort: SortOrder, limit: int, offset: int = 0):
        self._check()
        rows = self._visible(post_filter)
        rows.sort(key=lambda row: row[1]["created_at"], reverse=True)
        if sort == SortOrder.POPULAR:
            rows.sort(key=lambda row: row[1].get("likes_count", 0), reverse=True)
        return [self._out(post_id, data) for post_id, data in rows[offset:offset + limit]]

    def post_categories(self, post_filter: PostFilter) -> List[str]:
        self._check()
        return [data.get("category") for _, data in self._visible(post_filter)]

    def get_post(self, post_id: str):
        self._check()
        data = self.posts.get(post_id)
        return None if data is None else self._out(post_id, data)

    def create_post(self, data: Dict[str, Any]):
        self._check()
        post_id = self._new_id("post")
        self.posts[post_id] = copy.deepcopy(data)
        return self._out(post_id, data)

    def update_post(self, post_id: str, fields: Dict[str, Any]):
        self._check()
        self.posts[post_id].update(copy.deepcopy(fields))

    def soft_delete_post(self, post_id: str, now: datetime):
        self._check()
        self.posts[post_id].update({"is_deleted": True, "updated_at": now})

    # likes

    def get_liked_post_ids(self, post_ids: List[str], user_id: str) -> Set[str]:
        self._check()
        return {post_id for post_id in post_ids if like_id(post_id, user_id) in self.likes}

    def toggle_like(self, post_id: str, user_id: str, now: datetime):
        self._check()
        post = self.posts.get(post_id)
        if post is None or post.get("is_deleted"):
            return None
        key = like_id(post_id, user_id)
        if key in self.likes:
            del self.likes[key]
            liked = False
        else:
            self.likes[key] = {"post_id": post_id, "user_id": user_id, "created_at": now}
            liked = True
        post["likes_count"] = sum(1 for like in self.likes.values() if like["post_id"] == post_id)
        return liked, post["likes_count"]

    # comments

    def get_comments(self, post_id: str):
        self._check()
        rows = [(cid, c) for cid, c in self.comments.items() if c["post_id"] == post_id]
        rows.sort(key=lambda row: row[1]["created_at"])
        return [self._out(cid, c) for cid, c in rows]

    def get_comment(self, comment_id: str):
        self._check()
        data = self.comments.get(comment_id)
        return None if data is None else self._out(comment_id, data)

    def add_comment(self, data: Dict[str, Any]):
        self._check()
        comment_id = self._new_id("comment")
        self.comments[comment_id] = copy.deepcopy(data)
        self.posts[data["post_id"]]["comments_count"] = self.posts[data["post_id"]].get("comments_count", 0) + 1
        return self._out(comment_id, data)

    def delete_comment_cascade(self, comment_id: str) -> int:
        self._check()
        comment = self.comments.pop(comment_id, None)
        if comment is None:
            return 0
        replies = [cid for cid, c in self.comments.items() if c.get("parent_id") == comment_id]
        for cid in replies:
            del self.comments[cid]
        post = self.posts[comment["post_id"]]
        post["comments_count"] = post.get("comments_count", 0) - 1 - len(replies)
        return 1 + len(replies)

    # reference data

    def get_cities(self):
        self._check()
        return sorted((self._out(cid, c) for cid, c in self.cities.items()), key=lambda c: c["name"])

    def get_city(self, city_id: str):
        self._check()
        data = self.cities.get(city_id)
        return None if data is None else self._out(city_id, data)

    def get_apartment(self, apartment_id: str):
        self._check()
        data = self.apartments.get(apartment_id)
        return None if data is None else self._out(apartment_id, data)

    def get_apartments(self, city_id: Optional[str] = None, prefix: Optional[str] = None):
        self._check()
        rows = [
            self._out(aid, a) for aid, a in self.apartments.items()
            if (not city_id or a["city_id"] == city_id) and (not prefix or a["name"].startswith(prefix))
        ]
        return sorted(rows, key=lambda a: a["name"])

    # user locations

    def get_user_locations(self, user_id: str):
        self._check()
        return [self._out(lid, loc) for lid, loc in self.user_locations.items() if loc["user_id"] == user_id]

    def get_user_location(self, location_id: str):
        self._check()
        data = self.user_locations.get(location_id)
        return None if data is None else self._out(location_id, data)

    def save_user_location(self, user_id: str, city_id: str, apartment_id: Optional[str],
                           make_primary: bool, now: datetime):
        self._check()
        location_id = user_location_id(user_id, city_id, apartment_id)
        current = self.user_locations.get(location_id)
        others = [loc for lid, loc in self.user_locations.items() if loc["user_id"] == user_id and lid != location_id]
        is_primary = make_primary or not any(loc["is_primary"] for loc in others)
        if is_primary:
            for loc in others:
                loc["is_primary"] = False
        data = {
            "user_id": user_id,
            "city_id": city_id,
            "apartment_id": apartment_id,
            "is_primary": is_primary,
            "created_at": current["created_at"] if current else now,
        }
        self.user_locations[location_id] = data
        return self._out(location_id, data)

    def delete_user_location(self, location_id: str):
        self._check()
        self.user_locations.pop(location_id, None)

    def get_properties_in_latitude_band(self, min_lat: float, max_lat: float):
        self._check()
        return [self._out(pid, p) for pid, p in self.properties.items() if min_lat <= p["latitude"] <= max_lat]


class FakeVerifier:
    """Accepts tokens of the form 'token-<uid>' and 'admin-<uid>'"""

    def _claims(self, token: str) -> Dict[str, Any]:
        if token.startswith("token-"):
            uid = token[len("token-"):]
            return {"uid": uid, "email": f"{uid}@example.com"}
        if token.startswith("admin-"):
            uid = token[len("admin-"):]
            return {"uid": uid, "email": f"{uid}@example.com", "role": "admin"}
        raise ValueError("Invalid token")

    def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        return self._claims(id_token)

    def verify_session_cookie(self, session_cookie: str) -> Dict[str, Any]:
        if not session_cookie.startswith("cookie:"):
            raise ValueError("Invalid session cookie")
        return self._claims(session_cookie[len("cookie:"):])

    def create_session_cookie(self, id_token: str, expires_in: timedelta) -> str:
        self._claims(id_token)
        return f"cookie:{id_token}"


def auth_headers(uid: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer token-{uid}"}


def admin_headers(uid: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer admin-{uid}"}


UNAVAILABLE = ServiceUnavailable("backend unavailable: projects/secret-project/databases/(default)")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def fake_db() -> InMemoryFirestore:
    db = InMemoryFirestore()
    db.cities["hcm"] = {"name": "Ho Chi Minh City", "name_ko": "호치민", "is_major_city": True}
    db.cities["hanoi"] = {"name": "Hanoi", "name_ko": "하노이", "is_major_city": True}
    db.apartments["vinhomes"] = {"name": "Vinhomes Central Park", "city_id": "hcm", "district": "Binh Thanh"}
    db.apartments["masteri"] = {"name": "Masteri Thao Dien", "city_id": "hcm", "district": "District 2"}
    db.apartments["lotte"] = {"name": "Lotte Center", "city_id": "hanoi", "district": "Ba Dinh"}
    return db


@pytest.fixture
def service(fake_db: InMemoryFirestore, clock: FakeClock) -> CommunityService:
    return CommunityService(fake_db, clock=clock)


@pytest.fixture
def app(fake_db: InMemoryFirestore, clock: FakeClock) -> FastAPI:
    """Create the FastAPI app with Firestore, token verification and the clock overridden."""
    application = create_app()
    verifier = FakeVerifier()

    async def override_get_firestore():
        return fake_db

    async def override_get_verifier():
        return verifier

    async def override_get_community_service():
        return CommunityService(fake_db, clock=clock)

    application.dependency_overrides[get_firestore] = override_get_firestore
    application.dependency_overrides[get_verifier] = override_get_verifier
    application.dependency_overrides[get_community_service] = override_get_community_service
    return application


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Yield an HTTPX client bound to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
