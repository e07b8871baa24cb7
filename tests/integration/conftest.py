"""
Integration fixtures.

``harness`` is created once per session against ``TEST_DATABASE_URL``
(the in-process memory store unless the environment points it at MongoDB).
``clean_db`` is autouse: every scenario in this directory ends with the test
database dropped, pass or fail.
"""

import pytest_asyncio

from blog_api.harness import (
    HarnessContext,
    close_server,
    run_server,
    seed_blog_post_data,
    tear_down_db,
)


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def harness():
    ctx = await run_server()
    yield ctx
    await close_server(ctx)


@pytest_asyncio.fixture(autouse=True, loop_scope="session")
async def clean_db(harness: HarnessContext):
    yield
    await tear_down_db(harness.store)


@pytest_asyncio.fixture(loop_scope="session")
async def seed_count(harness: HarnessContext) -> int:
    return harness.app.state.config.harness.seed_count


@pytest_asyncio.fixture(loop_scope="session")
async def seeded_posts(harness: HarnessContext, seed_count: int, clean_db):
    return await seed_blog_post_data(harness.store, count=seed_count)
