"""
Shared test fixtures and mappers for the SoftMapper test suite.

Every database test runs against a fresh in-memory SQLite database that
is registered as the default database, so mappers can be constructed
without passing a handle.
"""

import pytest
import pytest_asyncio

from softmapper import Mapper, MapperRegistry, relationship, query_scope
from softmapper.db import MapperDatabase, set_database, reset_databases


# ============================================================================
# Schema
# ============================================================================

SCHEMA = [
    """CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT,
        created_at TEXT,
        updated_at TEXT
    )""",
    """CREATE TABLE user_profiles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        bio TEXT,
        created_at TEXT,
        updated_at TEXT
    )""",
    """CREATE TABLE posts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER,
        title TEXT NOT NULL,
        status TEXT DEFAULT 'draft',
        views INTEGER DEFAULT 0,
        created_at TEXT,
        updated_at TEXT,
        deleted_at TEXT
    )""",
    """CREATE TABLE comments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        post_id INTEGER NOT NULL,
        user_id INTEGER,
        body TEXT,
        created_at TEXT,
        updated_at TEXT
    )""",
    """CREATE TABLE tags (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        created_at TEXT,
        updated_at TEXT
    )""",
    """CREATE TABLE post_tag (
        post_id INTEGER NOT NULL,
        tag_id INTEGER NOT NULL,
        created_at TEXT
    )""",
    """CREATE TABLE numbers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        value INTEGER NOT NULL
    )""",
]


# ============================================================================
# Mappers
# ============================================================================


class User(Mapper):
    table = "users"

    @relationship
    def posts(self):
        return self.has_many("Post", "user_id", "id")

    @relationship
    def comments(self):
        return self.has_many("Comment", "user_id", "id")

    @relationship
    def profile(self):
        return self.has_one("UserProfile", "user_id", "id")


class UserProfile(Mapper):
    table = "user_profiles"

    @relationship
    def user(self):
        return self.belongs_to("User", "user_id", "id")


class Post(Mapper):
    table = "posts"
    soft_deletes = True

    @relationship
    def user(self):
        return self.belongs_to("User", "user_id", "id")

    @relationship
    def comments(self):
        return self.has_many("Comment", "post_id", "id")

    @relationship
    def tags(self):
        return self.belongs_to_many("Tag", "post_tag", "post_id", "tag_id")

    @query_scope
    def published(self):
        return self.where([("status", "=", "published")])

    @query_scope
    def popular(self, min_views=100):
        return self.where([("views", ">=", min_views)])


class Comment(Mapper):
    table = "comments"

    @relationship
    def post(self):
        return self.belongs_to("Post", "post_id", "id")

    @relationship
    def author(self):
        return self.belongs_to("User", "user_id", "id")


class Tag(Mapper):
    table = "tags"

    @relationship
    def posts(self):
        return self.belongs_to_many("Post", "post_tag", "tag_id", "post_id")


class Number(Mapper):
    table = "numbers"
    timestamps = False


# ============================================================================
# Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def db():
    database = MapperDatabase("sqlite:///:memory:")
    await database.connect()
    for statement in SCHEMA:
        await database.execute(statement)
    set_database(database)
    MapperRegistry.set_database(database)
    yield database
    MapperRegistry.set_database(None)
    reset_databases()
    await database.disconnect()


@pytest_asyncio.fixture
async def blog(db):
    """Two users, three posts, comments and tags."""
    ids = {}
    for name in ("alice", "bob"):
        user = User(columns={"name": name, "email": f"{name}@example.com"})
        await user.insert()
        ids[name] = user.last_insert_id()

    posts = [
        ("alice", "First", "published", 150),
        ("alice", "Second", "draft", 10),
        ("bob", "Third", "published", 40),
    ]
    for author, title, status, views in posts:
        post = Post(columns={"user_id": ids[author], "title": title, "status": status, "views": views})
        await post.insert()
        ids[title] = post.last_insert_id()

    for name in ("python", "sql", "async"):
        tag = Tag(columns={"name": name})
        await tag.insert()
        ids[name] = tag.last_insert_id()

    for body, post_title, author in (("Nice", "First", "bob"), ("Thanks", "First", "alice")):
        comment = Comment(columns={"post_id": ids[post_title], "user_id": ids[author], "body": body})
        await comment.insert()

    profile = UserProfile(columns={"user_id": ids["alice"], "bio": "Writes things"})
    await profile.insert()
    return ids


@pytest.fixture
def mapper_registry():
    """Snapshot and restore the mapper registry around a test."""
    saved = MapperRegistry.all_mappers()
    yield MapperRegistry
    MapperRegistry._mappers.clear()
    MapperRegistry._mappers.update(saved)
