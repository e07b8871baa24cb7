"""
Integration harness — brings the API up against a test database and
gives scenarios the tools to seed, exercise, inspect and tear down.

A test run composes four steps:
  1. Bring-up  — ``run_server`` starts the app in-process (no network port)
  2. Seeding   — ``seed_blog_post_data`` bulk-inserts synthetic posts
  3. Exercise  — ``HarnessContext.request`` issues one HTTP request
  4. Assertion — response shape helpers + a direct store lookup, then
                 ``tear_down_db`` drops everything before the next scenario
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any

import httpx
from faker import Faker
from fastapi import FastAPI
from pymongo.errors import PyMongoError

from blog_api.app import create_app, load_config
from blog_api.models import POST_FIELDS, AppConfig, Author, BlogPost
from blog_api.store import BaseStore

logger = logging.getLogger(__name__)

BASE_URL = "http://test"

# Failures a store may raise for a rejected operation
STORE_ERRORS: tuple[type[Exception], ...] = (PyMongoError, RuntimeError)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class HarnessError(Exception):
    """Base class for harness failures that are not assertion failures."""


class SetupError(HarnessError):
    """The service could not be started; fatal to the whole suite."""


class SeedError(HarnessError):
    """The store rejected seed data; fails the current scenario."""


class TeardownError(HarnessError):
    """The store refused to drop the test database."""


# ---------------------------------------------------------------------------
# Bring-up
# ---------------------------------------------------------------------------

@dataclass
class HarnessContext:
    """
    Everything a scenario needs, created once per suite.

    ``client`` talks to ``app`` through an ASGI transport, so requests never
    leave the process.  ``store`` is the same store the app uses and serves
    the direct lookups that back up each response.
    """
    app: FastAPI
    client: httpx.AsyncClient
    timeout: float = 0
    _exit_stack: AsyncExitStack | None = field(default=None, repr=False)

    @property
    def store(self) -> BaseStore:
        return self.app.state.store

    @property
    def running(self) -> bool:
        return self._exit_stack is not None

    async def request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Issue one request and wait for the full response."""
        method = method.upper()
        if json is not None and method not in ("POST", "PUT"):
            raise ValueError(f"{method} requests do not carry a body")

        pending = self.client.request(method, path, json=json)
        if self.timeout > 0:
            return await asyncio.wait_for(pending, timeout=self.timeout)
        return await pending

    async def get(self, path: str) -> httpx.Response:
        return await self.request("GET", path)

    async def post(self, path: str, json: dict[str, Any]) -> httpx.Response:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: dict[str, Any]) -> httpx.Response:
        return await self.request("PUT", path, json=json)

    async def delete(self, path: str) -> httpx.Response:
        return await self.request("DELETE", path)

    async def close(self):
        """Close the client and stop the app.  Safe to call twice."""
        if self._exit_stack is None:
            return
        stack, self._exit_stack = self._exit_stack, None
        await stack.aclose()
        logger.info("Test server closed.")

    async def __aenter__(self) -> HarnessContext:
        return self

    async def __aexit__(self, *exc_info: Any):
        await self.close()


async def run_server(
    database_url: str | None = None,
    config: AppConfig | None = None,
    timeout: float | None = None,
) -> HarnessContext:
    """
    Start the app against *database_url* and return a ready context.

    Defaults come from ``config.test_database_url`` and
    ``config.harness.scenario_timeout``.  Raises :class:`SetupError` when the
    URL is the production one or the store cannot be reached.
    """
    if config is None:
        config = load_config()
    database_url = database_url or config.test_database_url
    if timeout is None:
        timeout = config.harness.scenario_timeout

    if database_url == config.database_url:
        raise SetupError(
            f"Refusing to run against the application database ({database_url}); "
            "configure a separate TEST_DATABASE_URL."
        )

    app = create_app(config, database_url=database_url)
    stack = AsyncExitStack()
    try:
        await stack.enter_async_context(app.router.lifespan_context(app))
        client = await stack.enter_async_context(
            httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE_URL)
        )
    except Exception as exc:
        await stack.aclose()
        raise SetupError(f"Could not start the service against {database_url}: {exc}") from exc

    logger.info("Test server running against %s", database_url)
    return HarnessContext(app=app, client=client, timeout=timeout, _exit_stack=stack)


async def close_server(ctx: HarnessContext):
    await ctx.close()


# ---------------------------------------------------------------------------
# Seeding and teardown
# ---------------------------------------------------------------------------

def generate_blog_post(faker: Faker) -> BlogPost:
    """Build one well-formed synthetic post (no id yet)."""
    return BlogPost(
        title=faker.sentence(),
        content=faker.text(),
        author=Author(first_name=faker.first_name(), last_name=faker.last_name()),
    )


async def seed_blog_post_data(
    store: BaseStore,
    count: int = 10,
    faker: Faker | None = None,
) -> list[BlogPost]:
    """Insert *count* synthetic posts in a single bulk operation."""
    logger.info("Seeding blog post data")
    faker = faker or Faker()
    seed_data = [generate_blog_post(faker) for _ in range(count)]
    try:
        return await store.insert_many(seed_data)
    except STORE_ERRORS as exc:
        raise SeedError(f"Store rejected {count} seed posts: {exc}") from exc


async def tear_down_db(store: BaseStore):
    """Drop the whole test database so no scenario sees another's records."""
    logger.warning("Deleting database")
    try:
        await store.drop_all()
    except STORE_ERRORS as exc:
        raise TeardownError(f"Could not drop '{store.database_name}': {exc}") from exc


# ---------------------------------------------------------------------------
# Assertion helpers
# ---------------------------------------------------------------------------

def assert_post_fields(body: Any):
    """The body is one post with exactly the documented keys."""
    if not isinstance(body, dict):
        raise AssertionError(f"expected a JSON object, got {type(body).__name__}: {body!r}")
    expected = set(POST_FIELDS)
    actual = set(body)
    if actual != expected:
        raise AssertionError(
            f"expected keys {sorted(expected)}, got {sorted(actual)} "
            f"(missing {sorted(expected - actual)}, extra {sorted(actual - expected)})"
        )


def _compare(label: str, expected: Any, actual: Any):
    if expected != actual:
        raise AssertionError(f"{label}: expected {expected!r}, got {actual!r}")


def assert_matches_stored(body: dict[str, Any], post: BlogPost | None):
    """A response post agrees with the stored record, author flattened."""
    if post is None:
        raise AssertionError(f"no stored post with id {body.get('id')!r}")
    _compare("id", post.id, body["id"])
    _compare("title", post.title, body["title"])
    _compare("content", post.content, body["content"])
    _compare("author", post.author_name, body["author"])


def assert_stored_fields(post: BlogPost | None, expected: dict[str, Any]):
    """
    A stored record holds what was sent.

    *expected* is in request shape: ``{title, content, author: {firstName,
    lastName}}``; only the keys present are checked.
    """
    if post is None:
        raise AssertionError("expected a stored post, found none")
    if "title" in expected:
        _compare("title", expected["title"], post.title)
    if "content" in expected:
        _compare("content", expected["content"], post.content)
    if "author" in expected:
        _compare("author.firstName", expected["author"]["firstName"], post.author.first_name)
        _compare("author.lastName", expected["author"]["lastName"], post.author.last_name)
