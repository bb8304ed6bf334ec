"""
Lifecycle tests — soft deletes, restore, insert_many, update_or_create,
transactions and scopes.
"""

import pytest

from softmapper.faults import ScopeNotFoundFault

from conftest import Number, Post, User


class TestSoftDeletes:
    """Soft-delete scenario over the posts table."""

    @pytest.mark.asyncio
    async def test_soft_delete_scenario(self, blog):
        target = blog["Second"]

        await Post().delete().where([("id", "=", target)]).execute()

        visible = await Post().all().get_all()
        assert target not in [r.id for r in visible]
        assert len(visible) == 2

        trashed = await Post().only_trashed().all().get_all()
        assert [r.id for r in trashed] == [target]
        assert trashed[0].deleted_at is not None

        everything = await Post().with_trashed().all().get_all()
        assert sorted(r.id for r in everything) == sorted([blog["First"], blog["Second"], blog["Third"]])

        await Post().restore().where([("id", "=", target)]).execute()
        visible = await Post().all().get_all()
        assert target in [r.id for r in visible]
        assert await Post().only_trashed().all().count() == 0

    @pytest.mark.asyncio
    async def test_trashed_modifier_cleared_after_terminal_call(self, blog):
        await Post().delete().where([("id", "=", blog["Third"])]).execute()
        post = Post()
        assert await post.with_trashed().all().count() == 3
        assert await post.all().count() == 2

    @pytest.mark.asyncio
    async def test_find_skips_trashed(self, blog):
        await Post().delete().where([("id", "=", blog["First"])]).execute()
        assert await Post().find(blog["First"]) is None
        assert await Post().with_trashed().find(blog["First"]) is not None

    @pytest.mark.asyncio
    async def test_force_delete_removes_row(self, blog):
        await Post().delete(force=True).where([("id", "=", blog["First"])]).execute()
        assert await Post().with_trashed().all().count() == 2

    @pytest.mark.asyncio
    async def test_hard_delete_without_soft_deletes(self, blog):
        await User().delete().where([("name", "=", "bob")]).execute()
        assert await User().all().pluck("name") == ["alice"]


class TestInsertMany:
    """Test insert_many transaction handling."""

    @pytest.mark.asyncio
    async def test_insert_many(self, db):
        number = Number()
        assert await number.insert_many([{"value": 1}, {"value": 2}, {"value": 3}]) is True
        assert await Number().all().count() == 3
        assert number.last_insert_id() == 3

    @pytest.mark.asyncio
    async def test_insert_many_empty(self, db):
        assert await Number().insert_many([]) is False

    @pytest.mark.asyncio
    async def test_insert_many_rolls_back(self, db):
        records = [{"value": 1}, {"value": None}, {"value": 3}]  # value is NOT NULL
        assert await Number().insert_many(records) is False
        assert await Number().all().count() == 0

    @pytest.mark.asyncio
    async def test_insert_many_logs_failure(self, db, caplog):
        with caplog.at_level("ERROR", logger="softmapper.models"):
            await Number().insert_many([{"missing_column": 1}])
        assert any("rolled back" in r.getMessage() for r in caplog.records)


class TestUpdateOrCreate:
    """Test update_or_create."""

    @pytest.mark.asyncio
    async def test_updates_existing(self, blog):
        await User().update_or_create({"name": "alice"}, {"email": "alice@new.example"})
        rows = await User().all().where([("name", "=", "alice")]).get_all()
        assert len(rows) == 1
        assert rows[0].email == "alice@new.example"

    @pytest.mark.asyncio
    async def test_creates_missing(self, blog):
        user = User()
        await user.update_or_create({"name": "carol"}, {"email": "carol@example.com"})
        assert user.last_insert_id() is not None
        row = await User().find(user.last_insert_id())
        assert row.email == "carol@example.com"
        assert await User().all().count() == 3


class TestTransactions:
    """Test mapper-level transaction helpers."""

    @pytest.mark.asyncio
    async def test_begin_commit(self, db):
        number = Number(columns={"value": 1})
        assert await number.begin_transaction() is True
        await number.insert()
        assert await number.commit() is True
        assert await Number().all().count() == 1

    @pytest.mark.asyncio
    async def test_begin_rollback(self, db):
        number = Number(columns={"value": 1})
        await number.begin_transaction()
        await number.insert()
        assert await number.rollback() is True
        assert await Number().all().count() == 0

    @pytest.mark.asyncio
    async def test_transaction_context(self, db):
        with pytest.raises(ValueError):
            async with Number().transaction():
                await Number(columns={"value": 5}).insert()
                raise ValueError("abort")
        assert await Number().all().count() == 0


class TestScopes:
    """Test scope registration and application."""

    @pytest.mark.asyncio
    async def test_declared_scopes(self, blog):
        assert await Post().all().apply_scope("published").count() == 2
        rows = await Post().all().apply_scope("published").apply_scope("popular", 100).get_all()
        assert [r.title for r in rows] == ["First"]

    @pytest.mark.asyncio
    async def test_registered_scope(self, blog):
        Post.scope("by_user", lambda query, user_id: query.where([("user_id", "=", user_id)]))
        try:
            assert await Post().all().apply_scope("by_user", blog["bob"]).pluck("title") == ["Third"]
        finally:
            del Post._scopes["by_user"]

    def test_unknown_scope(self):
        with pytest.raises(ScopeNotFoundFault):
            Post().all().apply_scope("nope")

    def test_scopes_are_per_class(self):
        assert "published" in Post._scopes
        assert "published" not in User._scopes
