"""
Sample authors/posts/users tables on the in-memory backend.

Every call to `build_sample_tables()` returns fresh, independent tables; there
is no module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .db.dynamodb.memory import MemoryTable
from .db.dynamodb.table import DynamoTable, Item, ScanRequest, UpdateRequest


SAMPLE_USERS: list[dict[str, Any]] = [
    {"id": "a", "name": "alice"},
    {"id": "b", "name": "bob"},
]

SAMPLE_AUTHORS: list[dict[str, Any]] = [
    {"ID": "Authors001", "FirstName": "Guzman", "LastName": "Monne", "Posts": ["Posts001", "Posts003"]},
    {"ID": "Authors002", "FirstName": "Miguel", "LastName": "Monne", "Posts": ["Posts002"]},
]

SAMPLE_POSTS: list[dict[str, Any]] = [
    {"ID": "Posts001", "Title": "Title001", "Author": "Authors001", "Votes": 5},
    {"ID": "Posts002", "Title": "Title002", "Author": "Authors002", "Votes": 15},
    {"ID": "Posts003", "Title": "Title003", "Author": "Authors001", "Votes": 15},
]


@dataclass(frozen=True, slots=True)
class SampleTables:
    authors: DynamoTable
    posts: DynamoTable
    users: DynamoTable


def _memory_table(name: str, *, hash_key: str, items: list[dict[str, Any]]) -> DynamoTable:
    handle = MemoryTable(name, hash_key=hash_key, items=items)
    return DynamoTable(table_name=name, hash_key=hash_key, handle=handle)


def build_sample_tables() -> SampleTables:
    return SampleTables(
        authors=_memory_table("authors", hash_key="ID", items=SAMPLE_AUTHORS),
        posts=_memory_table("posts", hash_key="ID", items=SAMPLE_POSTS),
        users=_memory_table("users", hash_key="id", items=SAMPLE_USERS),
    )


async def author_posts(t: SampleTables, author: dict[str, Any]) -> list[Item]:
    page = await t.posts.scan(
        ScanRequest(
            filter_expression="#Author = :author",
            names={"#Author": "Author"},
            values={":author": author.get("ID")},
        )
    )
    return page.items


async def post_author(t: SampleTables, post: dict[str, Any]) -> Item | None:
    return await t.authors.get(post.get("Author"))


async def upvote(t: SampleTables, post_id: str) -> Item | None:
    # Atomic counter; the condition keeps upvote from creating posts.
    return await t.posts.update(
        post_id,
        params=UpdateRequest(
            expression="SET #Votes = if_not_exists(#Votes, :zero) + :one",
            names={"#Votes": "Votes", "#ID": "ID"},
            values={":zero": 0, ":one": 1},
            condition_expression="attribute_exists(#ID)",
        ),
    )
