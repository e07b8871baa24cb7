"""
Posts Router — the blog-post CRUD endpoints.

Each route is a thin shim over the store:
  1. Reads the path id and / or JSON body
  2. Validates it into a model
  3. Calls the store
  4. Returns the serialized record (or an empty 204)
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import ValidationError

from blog_api.models import BlogPost, PostUpdate
from blog_api.store import BaseStore

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "content", "author")


def get_store(request: Request) -> BaseStore:
    """Return the store the app lifespan connected."""
    return request.app.state.store


async def _read_json(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be valid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return body


def _validation_detail(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"Invalid `{location}`: {first['msg']}"


def create_router() -> APIRouter:
    """Build the ``/posts`` router."""
    router = APIRouter(prefix="/posts", tags=["posts"])

    @router.get("")
    async def list_posts(store: BaseStore = Depends(get_store)) -> list[dict[str, Any]]:
        posts = await store.find_all()
        return [p.serialize() for p in posts]

    @router.get("/{post_id}")
    async def get_post(post_id: str, store: BaseStore = Depends(get_store)) -> dict[str, Any]:
        post = await store.find_by_id(post_id)
        if post is None:
            raise HTTPException(status_code=404, detail="Post not found")
        return post.serialize()

    @router.post("", status_code=201)
    async def create_post(request: Request, store: BaseStore = Depends(get_store)) -> dict[str, Any]:
        body = await _read_json(request)
        for field in REQUIRED_FIELDS:
            if field not in body:
                message = f"Missing `{field}` in request body"
                logger.error(message)
                raise HTTPException(status_code=400, detail=message)

        try:
            post = BlogPost.model_validate(
                {"title": body["title"], "content": body["content"], "author": body["author"]}
            )
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=_validation_detail(exc))

        created = await store.insert_one(post)
        logger.info("Created post %s", created.id)
        return created.serialize()

    @router.put("/{post_id}", status_code=204)
    async def update_post(
        post_id: str, request: Request, store: BaseStore = Depends(get_store)
    ) -> Response:
        body = await _read_json(request)
        if body.get("id") != post_id:
            message = (
                f"Request path id ({post_id}) and request body id "
                f"({body.get('id')}) must match"
            )
            logger.error(message)
            raise HTTPException(status_code=400, detail=message)

        try:
            update = PostUpdate.model_validate(body)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=_validation_detail(exc))

        changes = update.changes()
        if not changes:
            raise HTTPException(status_code=400, detail="No updatable fields in request body")

        if not await store.update(post_id, changes):
            raise HTTPException(status_code=404, detail="Post not found")
        logger.info("Updated post %s (%s)", post_id, ", ".join(sorted(changes)))
        return Response(status_code=204)

    @router.delete("/{post_id}", status_code=204)
    async def delete_post(post_id: str, store: BaseStore = Depends(get_store)) -> Response:
        if not await store.delete(post_id):
            raise HTTPException(status_code=404, detail="Post not found")
        logger.info("Deleted post %s", post_id)
        return Response(status_code=204)

    return router
