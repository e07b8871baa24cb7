"""
Seed a database with synthetic blog posts.

Usage:
    python scripts/seed_db.py                      # DATABASE_URL, 10 posts
    python scripts/seed_db.py --count 25
    python scripts/seed_db.py --url mongodb://localhost/blog-app --drop
"""
import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from blog_api.app import load_config  # noqa: E402
from blog_api.harness import seed_blog_post_data, tear_down_db  # noqa: E402
from blog_api.store import create_store  # noqa: E402


async def seed(url: str, count: int, drop: bool) -> int:
    store = create_store(url)
    await store.connect()
    try:
        if drop:
            await tear_down_db(store)
        posts = await seed_blog_post_data(store, count=count)
        total = await store.count()
    finally:
        await store.disconnect()

    print(f"Database seeded at {url}")
    print(f"  inserted: {len(posts)} posts")
    print(f"  total:    {total} posts")
    return total


def main():
    config = load_config()
    parser = argparse.ArgumentParser(description="Seed the blog database with fake posts.")
    parser.add_argument("--url", default=config.database_url, help="database URL")
    parser.add_argument("--count", type=int, default=config.harness.seed_count)
    parser.add_argument("--drop", action="store_true", help="drop the database first")
    args = parser.parse_args()

    asyncio.run(seed(args.url, args.count, args.drop))


if __name__ == "__main__":
    main()
