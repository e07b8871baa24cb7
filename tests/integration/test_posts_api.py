"""
Integration tests for the /posts resource.

Every scenario follows the same strategy:
  1. put the database in a known state (seed, or start empty)
  2. make one request to the API
  3. inspect the response
  4. inspect the state of the database
  5. tear the database down (``clean_db``)
"""

import pytest
from bson import ObjectId
from faker import Faker

from blog_api.harness import (
    assert_matches_stored,
    assert_post_fields,
    assert_stored_fields,
)
from blog_api.models import Author, BlogPost

pytestmark = pytest.mark.asyncio(loop_scope="session")

fake = Faker()


def _new_post_payload() -> dict:
    return {
        "title": fake.sentence(),
        "author": {
            "firstName": fake.first_name(),
            "lastName": fake.last_name(),
        },
        "content": fake.text(),
    }


# ---------------------------------------------------------------------------
# GET /posts
# ---------------------------------------------------------------------------

async def test_get_returns_all_existing_posts(harness, seeded_posts, seed_count):
    res = await harness.get("/posts")

    assert res.status_code == 200
    assert len(res.json()) >= 1
    count = await harness.store.count()
    assert len(res.json()) == count == seed_count


async def test_seeding_uses_configured_count(harness, seeded_posts, seed_count):
    assert seed_count == harness.app.state.config.harness.seed_count
    assert len(seeded_posts) == seed_count
    assert await harness.store.count() == seed_count


async def test_get_returns_posts_with_right_fields(harness, seeded_posts):
    res = await harness.get("/posts")

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("application/json")
    body = res.json()
    assert isinstance(body, list)
    assert len(body) >= 1
    for post in body:
        assert_post_fields(post)

    res_post = body[0]
    stored = await harness.store.find_by_id(res_post["id"])
    assert_matches_stored(res_post, stored)


async def test_get_on_empty_database_returns_empty_list(harness):
    res = await harness.get("/posts")

    assert res.status_code == 200
    assert res.json() == []


async def test_get_flattens_author_name(harness):
    post = await harness.store.insert_one(
        BlogPost(title="T", content="C", author=Author(first_name="A", last_name="B"))
    )

    res = await harness.get(f"/posts/{post.id}")

    assert res.status_code == 200
    assert res.json()["author"] == "A B"
    stored = await harness.store.find_by_id(post.id)
    assert stored.author.first_name == "A"
    assert stored.author.last_name == "B"


async def test_get_by_id_returns_post(harness, seeded_posts):
    post = seeded_posts[3]

    res = await harness.get(f"/posts/{post.id}")

    assert res.status_code == 200
    assert_post_fields(res.json())
    assert_matches_stored(res.json(), await harness.store.find_by_id(post.id))


@pytest.mark.parametrize("post_id", [str(ObjectId()), "not-an-object-id"])
async def test_get_by_unknown_id_returns_404(harness, seeded_posts, post_id):
    res = await harness.get(f"/posts/{post_id}")

    assert res.status_code == 404
    assert res.json()["detail"] == "Post not found"


# ---------------------------------------------------------------------------
# POST /posts
# ---------------------------------------------------------------------------

async def test_post_adds_new_blog_post(harness):
    new_post = _new_post_payload()

    res = await harness.post("/posts", json=new_post)

    assert res.status_code == 201
    body = res.json()
    assert_post_fields(body)
    assert body["id"] is not None
    assert body["title"] == new_post["title"]
    assert body["content"] == new_post["content"]
    assert body["author"] == (
        f"{new_post['author']['firstName']} {new_post['author']['lastName']}"
    )

    stored = await harness.store.find_by_id(body["id"])
    assert_stored_fields(stored, new_post)


async def test_post_then_read_from_store(harness):
    new_post = {"title": "T", "content": "C", "author": {"firstName": "A", "lastName": "B"}}

    res = await harness.post("/posts", json=new_post)

    assert res.status_code == 201
    post_id = res.json()["id"]
    assert post_id
    stored = await harness.store.find_by_id(post_id)
    assert stored.title == "T"
    assert stored.content == "C"
    assert stored.author.first_name == "A"
    assert stored.author.last_name == "B"
    assert await harness.store.count() == 1


@pytest.mark.parametrize("missing", ["title", "content", "author"])
async def test_post_missing_field_returns_400(harness, missing):
    new_post = _new_post_payload()
    del new_post[missing]

    res = await harness.post("/posts", json=new_post)

    assert res.status_code == 400
    assert res.json()["detail"] == f"Missing `{missing}` in request body"
    assert await harness.store.count() == 0


async def test_post_with_flat_author_returns_400(harness):
    new_post = _new_post_payload()
    new_post["author"] = "Jane Doe"

    res = await harness.post("/posts", json=new_post)

    assert res.status_code == 400
    assert await harness.store.count() == 0


async def test_post_with_blank_author_name_returns_400(harness):
    new_post = _new_post_payload()
    new_post["author"]["firstName"] = " "

    res = await harness.post("/posts", json=new_post)

    assert res.status_code == 400
    assert "author.firstName" in res.json()["detail"]
    assert await harness.store.count() == 0


async def test_post_with_malformed_json_returns_400(harness):
    res = await harness.client.post(
        "/posts", content=b"{not json", headers={"content-type": "application/json"}
    )

    assert res.status_code == 400
    assert await harness.store.count() == 0


# ---------------------------------------------------------------------------
# PUT /posts/{id}
# ---------------------------------------------------------------------------

async def test_put_updates_fields_you_send_over(harness, seeded_posts):
    updated_data = {
        "title": "cats cats cats",
        "content": "dogs dogs dogs",
        "author": {"firstName": "reign", "lastName": "doe"},
    }
    post = await harness.store.find_one()
    updated_data["id"] = post.id

    res = await harness.put(f"/posts/{post.id}", json=updated_data)

    assert res.status_code == 204
    assert res.content == b""
    stored = await harness.store.find_by_id(updated_data["id"])
    assert_stored_fields(stored, updated_data)
    assert stored.id == post.id
    assert stored.created == post.created


async def test_put_partial_update_keeps_other_fields(harness, seeded_posts):
    post = await harness.store.find_one()

    res = await harness.put(f"/posts/{post.id}", json={"id": post.id, "title": "only the title"})

    assert res.status_code == 204
    stored = await harness.store.find_by_id(post.id)
    assert stored.title == "only the title"
    assert stored.content == post.content
    assert stored.author == post.author


async def test_put_with_mismatched_ids_returns_400(harness, seeded_posts):
    post = await harness.store.find_one()
    other_id = str(ObjectId())

    res = await harness.put(f"/posts/{post.id}", json={"id": other_id, "title": "nope"})

    assert res.status_code == 400
    stored = await harness.store.find_by_id(post.id)
    assert stored.title == post.title


async def test_put_without_updatable_fields_returns_400(harness, seeded_posts):
    post = await harness.store.find_one()

    res = await harness.put(f"/posts/{post.id}", json={"id": post.id, "views": 12})

    assert res.status_code == 400


async def test_put_with_blank_title_returns_400(harness, seeded_posts):
    post = await harness.store.find_one()

    res = await harness.put(f"/posts/{post.id}", json={"id": post.id, "title": "   "})

    assert res.status_code == 400
    stored = await harness.store.find_by_id(post.id)
    assert stored.title == post.title


async def test_put_unknown_id_returns_404(harness, seeded_posts):
    post_id = str(ObjectId())

    res = await harness.put(f"/posts/{post_id}", json={"id": post_id, "title": "ghost"})

    assert res.status_code == 404
    assert await harness.store.find_by_id(post_id) is None


# ---------------------------------------------------------------------------
# DELETE /posts/{id}
# ---------------------------------------------------------------------------

async def test_delete_removes_post_by_id(harness, seeded_posts, seed_count):
    post = await harness.store.find_one()

    res = await harness.delete(f"/posts/{post.id}")

    assert res.status_code == 204
    assert await harness.store.find_by_id(post.id) is None
    assert await harness.store.count() == seed_count - 1


async def test_delete_unknown_id_returns_404(harness, seeded_posts, seed_count):
    res = await harness.delete(f"/posts/{ObjectId()}")

    assert res.status_code == 404
    assert await harness.store.count() == seed_count


# ---------------------------------------------------------------------------
# Isolation — teardown runs between scenarios
# ---------------------------------------------------------------------------

async def test_isolation_first_scenario_writes_records(harness, seeded_posts, seed_count):
    res = await harness.post("/posts", json=_new_post_payload())

    assert res.status_code == 201
    assert await harness.store.count() == seed_count + 1


async def test_isolation_next_scenario_starts_empty(harness):
    res = await harness.get("/posts")

    assert res.status_code == 200
    assert res.json() == []
    assert await harness.store.count() == 0


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------

async def test_health_reports_connected_store(harness):
    res = await harness.get("/health")

    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["store"]["connected"] is True
    assert body["store"]["backend"] == harness.store.backend.value
