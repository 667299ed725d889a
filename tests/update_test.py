import asyncio

import pytest

from relquery.entities import Post
from relquery.errors import NotFound, UniquenessViolation, ValidationError
from relquery.filters import And, PostFields, UserFields
from relquery.selection import Include
from relquery.writes import Connect, ConnectOrCreate, Create, Decrement, Divide, Increment, Multiply


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_fields(self, facade, blog):
        post = await facade.posts.update(5, {"title": "Prisma on Vimeo", "published": True})

        assert isinstance(post, Post)
        assert (post.title, post.published) == ("Prisma on Vimeo", True)
        assert post.like_num == 0

    @pytest.mark.asyncio
    async def test_update_missing_record(self, facade, blog):
        with pytest.raises(NotFound, match="Post with id 999 not found"):
            await facade.posts.update(999, {"title": "x"})

    @pytest.mark.asyncio
    async def test_empty_patch_returns_record(self, facade, blog):
        assert (await facade.posts.update(1, {})).title == "Join the Prisma Slack"
        with pytest.raises(NotFound):
            await facade.posts.update(999, {})

    @pytest.mark.asyncio
    async def test_id_cannot_change(self, facade, blog):
        with pytest.raises(ValidationError, match="cannot be changed"):
            await facade.posts.update(1, {"id": 10})

    @pytest.mark.asyncio
    async def test_unique_collision(self, facade, blog):
        with pytest.raises(UniquenessViolation):
            await facade.users.update(1, {"email": "jack@prisma.io"})


class TestNumericAdjustments:
    @pytest.mark.asyncio
    async def test_adjustments(self, facade, blog):
        assert (await facade.posts.update(3, {"like_num": Increment()})).like_num == 6
        assert (await facade.posts.update(3, {"like_num": Decrement(2)})).like_num == 4
        assert (await facade.posts.update(3, {"like_num": Multiply(3)})).like_num == 12
        # Integer columns divide as integers
        assert (await facade.posts.update(3, {"like_num": Divide(5)})).like_num == 2

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, facade, blog):
        await asyncio.gather(
            *(facade.posts.update(1, {"like_num": Increment(1)}) for _ in range(10))
        )

        assert (await facade.posts.find_unique(1)).like_num == 20

    @pytest.mark.asyncio
    async def test_adjustment_needs_numeric_field(self, facade, blog):
        with pytest.raises(ValidationError, match="needs a numeric field"):
            await facade.posts.update(1, {"title": Increment(1)})


class TestRelationUpdates:
    @pytest.mark.asyncio
    async def test_connect_more_categories(self, facade, blog):
        await facade.posts.update(5, {"categories": Connect(1, 2)})

        post = await facade.posts.find_unique(5, select=Include(categories=True))
        assert [c.name for c in post.categories] == ["Data Base", "Big Data"]

    @pytest.mark.asyncio
    async def test_change_author(self, facade, blog):
        post = await facade.posts.update(
            5, {"author": ConnectOrCreate(where={"email": "ann@prisma.io"}, create={"email": "ann@prisma.io"})}
        )
        assert post.author_id == 4

        post = await facade.posts.update(5, {"author": Connect(2)})
        assert post.author_id == 2

    @pytest.mark.asyncio
    async def test_foreign_key_and_relation_together(self, facade, blog):
        with pytest.raises(ValidationError, match="not both"):
            await facade.posts.update(5, {"author_id": 1, "author": Connect(2)})

        post = await facade.posts.find_unique(5)
        assert post.author_id == 3

    @pytest.mark.asyncio
    async def test_create_posts_for_existing_user(self, facade, blog):
        await facade.users.update(2, {"name": "Jackie", "posts": Create({"title": "Second"})})

        jack = await facade.users.find_unique(2, select=Include(posts=True))
        assert jack.name == "Jackie"
        assert [post.title for post in jack.posts] == ["Follow Prisma on Twitter", "Second"]

    @pytest.mark.asyncio
    async def test_relation_write_on_missing_record(self, facade, blog):
        with pytest.raises(NotFound):
            await facade.users.update(999, {"posts": Create({"title": "Orphan"})})
        assert await facade.posts.count() == 5


class TestUpdateMany:
    @pytest.mark.asyncio
    async def test_update_many(self, facade, blog):
        updated = await facade.posts.update_many(PostFields.published.eq(False), {"published": True})

        assert updated == 1
        every_published = UserFields.posts.every(PostFields.published.eq(True))
        assert len(await facade.users.find(every_published)) == 3

    @pytest.mark.asyncio
    async def test_update_many_with_relation_filter(self, facade, blog):
        updated = await facade.posts.update_many(
            PostFields.author.is_(UserFields.name.eq("John")), {"like_num": Increment(100)}
        )

        assert updated == 2
        assert (await facade.posts.aggregate("like_num")).sum == 215

    @pytest.mark.asyncio
    async def test_update_every_record(self, facade, blog):
        assert await facade.posts.update_many(And(), {"like_num": 1}) == 5

    @pytest.mark.asyncio
    async def test_nothing_matches(self, facade, blog):
        assert await facade.posts.update_many({"author_id": 99}, {"like_num": 1}) == 0


class TestUpsert:
    @pytest.mark.asyncio
    async def test_create_then_update(self, facade, blog):
        where = {"email": "ann@prisma.io"}

        created = await facade.users.upsert(where, {"name": "updated"}, {"name": "created"})
        assert created.email == "ann@prisma.io"
        assert created.name == "created"

        updated = await facade.users.upsert(where, {"name": "updated"}, {"name": "created"})
        assert updated.id == created.id
        assert updated.name == "updated"
        assert await facade.users.count() == 4

    @pytest.mark.asyncio
    async def test_upsert_with_adjustment(self, facade, blog):
        post = await facade.posts.upsert(
            {"id": 1}, {"like_num": Increment(1)}, {"title": "unused", "author_id": 1}
        )
        assert post.like_num == 11

    @pytest.mark.asyncio
    async def test_upsert_with_empty_update_keeps_record(self, facade, blog):
        user = await facade.users.upsert({"email": "jack@prisma.io"}, {}, {"name": "unused"})
        assert user.id == 2
        assert user.name == "Jack"

    @pytest.mark.asyncio
    async def test_created_id_moves_sequence(self, facade, blog):
        post = await facade.posts.upsert({"id": 42}, {}, {"title": "Pinned", "author_id": 1})
        assert post.id == 42

        following = await facade.posts.create({"title": "Next", "author_id": 1})
        assert following.id == 43

    @pytest.mark.asyncio
    async def test_concurrent_upserts_create_once(self, facade, blog):
        where = {"email": "race@prisma.io"}

        results = await asyncio.gather(
            *(facade.users.upsert(where, {"name": "updated"}, {"name": "created"}) for _ in range(2))
        )

        assert sorted(user.name for user in results) == ["created", "updated"]
        assert results[0].id == results[1].id
        assert await facade.users.count(where) == 1
