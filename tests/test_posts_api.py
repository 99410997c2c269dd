"""HTTP tests for the post routes."""

import asyncio
import time
from datetime import timedelta

import pytest

from conftest import UNAVAILABLE, admin_headers, auth_headers

BASE = "/api/community"


async def create_post(client, uid="u1", **overrides):
    payload = {"category": "FREE", "title": "Test", "body": "Hello world this is a test post", **overrides}
    response = await client.post(f"{BASE}/posts", json=payload, headers=auth_headers(uid))
    assert response.status_code == 200, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_create_list_and_like_flow(async_client):
    post = await create_post(async_client, apartmentId="vinhomes")
    assert post["category"] == "FREE"
    assert post["authorUid"] == "u1"
    assert post["cityId"] == "hcm"
    assert post["likesCount"] == 0

    response = await async_client.get(f"{BASE}/posts", params={"category": "FREE", "apartmentId": "vinhomes"})
    assert response.status_code == 200
    ids = [p["id"] for p in response.json()["data"]]
    assert ids.count(post["id"]) == 1

    liked = await async_client.post(f"{BASE}/posts/{post['id']}/like", headers=auth_headers("u2"))
    assert liked.json() == {"success": True, "data": {"liked": True, "count": 1}}

    unliked = await async_client.post(f"{BASE}/posts/{post['id']}/like", headers=auth_headers("u2"))
    assert unliked.json() == {"success": True, "data": {"liked": False, "count": 0}}


@pytest.mark.asyncio
async def test_create_requires_authentication(async_client, fake_db):
    response = await async_client.post(f"{BASE}/posts", json={"category": "FREE", "body": "hi"})
    assert response.status_code == 401
    assert response.json()["success"] is False
    assert fake_db.posts == {}


@pytest.mark.asyncio
async def test_invalid_token_is_unauthenticated(async_client):
    response = await async_client.post(
        f"{BASE}/posts",
        json={"category": "FREE", "body": "hi"},
        headers={"Authorization": "Bearer forged"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_validation_error_body(async_client, fake_db):
    response = await async_client.post(
        f"{BASE}/posts", json={"category": "JOBS", "body": ""}, headers=auth_headers("u1")
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"]
    assert {error["field"] for error in body["errors"]} == {"category", "body"}
    assert fake_db.posts == {}


@pytest.mark.asyncio
async def test_non_json_object_body_rejected(async_client):
    response = await async_client.post(f"{BASE}/posts", json=["FREE"], headers=auth_headers("u1"))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_bad_query_parameter_is_400(async_client):
    response = await async_client.get(f"{BASE}/posts", params={"sort": "random"})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "sort"


@pytest.mark.asyncio
async def test_list_shows_viewer_like_status(async_client):
    post = await create_post(async_client)
    await async_client.post(f"{BASE}/posts/{post['id']}/like", headers=auth_headers("u2"))

    as_u2 = await async_client.get(f"{BASE}/posts", headers=auth_headers("u2"))
    anonymous = await async_client.get(f"{BASE}/posts")
    assert as_u2.json()["data"][0]["isLiked"] is True
    assert anonymous.json()["data"][0]["isLiked"] is False
    assert anonymous.json()["data"][0]["likesCount"] == 1


@pytest.mark.asyncio
async def test_popular_sort(async_client):
    quiet = await create_post(async_client)
    popular = await create_post(async_client)
    for uid in ("u2", "u3"):
        await async_client.post(f"{BASE}/posts/{popular['id']}/like", headers=auth_headers(uid))

    response = await async_client.get(f"{BASE}/posts", params={"sort": "popular"})
    assert [p["id"] for p in response.json()["data"]] == [popular["id"], quiet["id"]]


@pytest.mark.asyncio
async def test_counts(async_client):
    await create_post(async_client, category="QNA")
    await create_post(async_client, category="QNA", apartmentId="lotte")
    deleted = await create_post(async_client, category="FREE")
    await async_client.delete(f"{BASE}/posts/{deleted['id']}", headers=auth_headers("u1"))

    response = await async_client.get(f"{BASE}/posts/counts")
    assert response.status_code == 200
    assert response.json() == {
        "total": 2,
        "byCategory": {"QNA": 2, "RECOMMEND": 0, "SECONDHAND": 0, "FREE": 0},
    }

    hanoi = await async_client.get(f"{BASE}/posts/counts", params={"city": "hanoi"})
    assert hanoi.json()["total"] == 1


@pytest.mark.asyncio
async def test_categories(async_client):
    response = await async_client.get(f"{BASE}/categories")
    assert response.json()["data"] == [
        {"value": "QNA", "label": "Q&A"},
        {"value": "RECOMMEND", "label": "추천"},
        {"value": "SECONDHAND", "label": "중고거래"},
        {"value": "FREE", "label": "나눔"},
    ]


@pytest.mark.asyncio
async def test_get_single_post(async_client):
    post = await create_post(async_client)
    response = await async_client.get(f"{BASE}/posts/{post['id']}")
    assert response.status_code == 200
    assert response.json()["data"]["body"] == post["body"]

    missing = await async_client.get(f"{BASE}/posts/nope")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Post not found"}


@pytest.mark.asyncio
async def test_patch_within_window(async_client, clock):
    post = await create_post(async_client)
    clock.advance(timedelta(hours=23))
    response = await async_client.patch(
        f"{BASE}/posts/{post['id']}", json={"title": "Edited"}, headers=auth_headers("u1")
    )
    assert response.status_code == 200
    assert response.json()["data"]["title"] == "Edited"


@pytest.mark.asyncio
async def test_patch_after_window(async_client, clock):
    post = await create_post(async_client)
    clock.advance(timedelta(hours=25))
    response = await async_client.patch(
        f"{BASE}/posts/{post['id']}", json={"title": "Edited"}, headers=auth_headers("u1")
    )
    assert response.status_code == 403
    assert "edit window expired" in response.json()["message"]


@pytest.mark.asyncio
async def test_patch_by_other_user(async_client):
    post = await create_post(async_client)
    response = await async_client.patch(
        f"{BASE}/posts/{post['id']}", json={"title": "Mine now"}, headers=auth_headers("u2")
    )
    assert response.status_code == 403
    assert "not owner" in response.json()["message"]


@pytest.mark.asyncio
async def test_admin_can_delete_others_post(async_client, fake_db):
    post = await create_post(async_client)

    denied = await async_client.delete(f"{BASE}/posts/{post['id']}", headers=auth_headers("u2"))
    assert denied.status_code == 403

    response = await async_client.delete(f"{BASE}/posts/{post['id']}", headers=admin_headers("mod"))
    assert response.json() == {"success": True, "message": "Post deleted"}
    assert fake_db.posts[post["id"]]["is_deleted"] is True

    gone = await async_client.get(f"{BASE}/posts/{post['id']}")
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_like_missing_post(async_client):
    response = await async_client.post(f"{BASE}/posts/nope/like", headers=auth_headers("u1"))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_like_requires_authentication(async_client):
    post = await create_post(async_client)
    response = await async_client.post(f"{BASE}/posts/{post['id']}/like")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_storage_failure_is_generic_500(async_client, fake_db):
    post = await create_post(async_client)
    fake_db.fail_with = UNAVAILABLE

    response = await async_client.post(f"{BASE}/posts/{post['id']}/like", headers=auth_headers("u2"))
    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Something went wrong. Please try again later."}
    assert "secret-project" not in response.text


@pytest.mark.asyncio
async def test_request_id_is_echoed(async_client):
    response = await async_client.get(f"{BASE}/categories", headers={"X-Request-ID": "abc123"})
    assert response.headers["x-request-id"] == "abc123"

    generated = await async_client.get(f"{BASE}/categories")
    assert generated.headers["x-request-id"]


@pytest.mark.asyncio
async def test_slow_storage_does_not_serialize_requests(async_client, fake_db):
    post = await create_post(async_client)
    load_post = fake_db.get_post

    def slow_get_post(post_id):
        time.sleep(0.4)
        return load_post(post_id)

    fake_db.get_post = slow_get_post
    started = time.perf_counter()
    responses = await asyncio.gather(*(async_client.get(f"{BASE}/posts/{post['id']}") for _ in range(4)))
    elapsed = time.perf_counter() - started

    assert [r.status_code for r in responses] == [200] * 4
    # four sequential reads would take 1.6s
    assert elapsed < 1.2


@pytest.mark.asyncio
async def test_patch_keeps_editor_like_status(async_client):
    post = await create_post(async_client)
    await async_client.post(f"{BASE}/posts/{post['id']}/like", headers=auth_headers("u1"))

    response = await async_client.patch(
        f"{BASE}/posts/{post['id']}", json={"title": "Edited"}, headers=auth_headers("u1")
    )
    data = response.json()["data"]
    assert data["isLiked"] is True
    assert data["likesCount"] == 1
