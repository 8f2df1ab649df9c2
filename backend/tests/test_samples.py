from __future__ import annotations

from decimal import Decimal

import anyio
import pytest

from hotspot.db.dynamodb.errors import DdbConflict
from hotspot.samples import author_posts, build_sample_tables, post_author, upvote


def test_sample_tables_are_independent():
    a = build_sample_tables()
    b = build_sample_tables()

    async def _run():
        await a.posts.delete("Posts001")
        return await a.posts.get("Posts001"), await b.posts.get("Posts001")

    gone, still_there = anyio.run(_run)
    assert gone is None
    assert still_there["Title"] == "Title001"


def test_author_posts_and_post_author():
    t = build_sample_tables()

    async def _run():
        author = await t.authors.get("Authors001")
        posts = await author_posts(t, author)
        back = await post_author(t, posts[0])
        return author, posts, back

    author, posts, back = anyio.run(_run)
    assert sorted(p["ID"] for p in posts) == sorted(author["Posts"])
    assert back["ID"] == "Authors001"


def test_upvote_increments_votes():
    t = build_sample_tables()

    async def _run():
        await upvote(t, "Posts001")
        return await upvote(t, "Posts001")

    post = anyio.run(_run)
    assert post["Votes"] == Decimal(7)
    assert post["Title"] == "Title001"


def test_upvote_starts_counter_when_missing():
    t = build_sample_tables()

    async def _run():
        await t.posts.put({"ID": "Posts004", "Title": "Title004", "Author": "Authors002"})
        return await upvote(t, "Posts004")

    assert anyio.run(_run)["Votes"] == Decimal(1)


def test_upvote_never_creates_posts():
    t = build_sample_tables()

    with pytest.raises(DdbConflict):
        anyio.run(upvote, t, "Posts999")
    assert anyio.run(t.posts.get, "Posts999") is None


def test_users_table_uses_lowercase_key():
    t = build_sample_tables()
    assert t.users.hash_key == "id"
    assert anyio.run(t.users.get, "a") == {"id": "a", "name": "alice"}


def test_concurrent_upvotes_are_not_lost():
    t = build_sample_tables()

    async def _run():
        async with anyio.create_task_group() as tg:
            for _ in range(200):
                tg.start_soon(upvote, t, "Posts001")
        return await t.posts.get("Posts001")

    assert anyio.run(_run)["Votes"] == Decimal(205)
