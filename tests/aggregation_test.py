import pytest

from relquery.filters import PostFields
from relquery.repository import AggregateResult
from relquery.writes import Create


class TestAggregate:
    @pytest.mark.asyncio
    async def test_aggregate_over_no_records(self, facade):
        result = await facade.posts.aggregate("like_num")

        assert result == AggregateResult(count=0, sum=0, avg=None, min=None, max=None)

    @pytest.mark.asyncio
    async def test_aggregate_all_posts(self, facade, blog):
        result = await facade.posts.aggregate(PostFields.like_num)

        assert result.count == 5
        assert result.sum == 15
        assert result.avg == pytest.approx(3.0)
        assert (result.min, result.max) == (0, 10)

    @pytest.mark.asyncio
    async def test_aggregate_with_filter(self, facade, blog):
        result = await facade.posts.aggregate("like_num", PostFields.published.eq(True))

        assert result.count == 4
        assert result.avg == pytest.approx(3.75)

    @pytest.mark.asyncio
    async def test_filter_matching_nothing(self, facade, blog):
        result = await facade.posts.aggregate("like_num", PostFields.like_num.gt(100))

        assert result.count == 0
        assert result.sum == 0
        assert result.avg is None


class TestGroupBy:
    @pytest.mark.asyncio
    async def test_sum_per_author(self, facade):
        """Three posts with 10, 5 and 0 likes split across two authors"""
        ann = await facade.users.create(
            {
                "email": "ann@prisma.io",
                "posts": Create({"title": "A1", "like_num": 10}, {"title": "A2", "like_num": 0}),
            }
        )
        bob = await facade.users.create(
            {"email": "bob@prisma.io", "posts": Create({"title": "B1", "like_num": 5})}
        )

        groups = await facade.posts.group_by("author_id", sum="like_num")

        assert [group.key for group in groups] == [{"author_id": ann.id}, {"author_id": bob.id}]
        assert [group.sum["like_num"] for group in groups] == [10, 5]
        assert [group.count for group in groups] == [2, 1]

    @pytest.mark.asyncio
    async def test_several_aggregates(self, facade, blog):
        groups = await facade.posts.group_by(
            ["published"], sum=["like_num"], avg="like_num", min="like_num", max="like_num"
        )

        draft, published = groups
        assert draft.key == {"published": False}
        assert draft.count == 1
        assert published.key == {"published": True}
        assert published.count == 4
        assert published.sum == {"like_num": 15}
        assert published.avg["like_num"] == pytest.approx(3.75)
        assert (published.min["like_num"], published.max["like_num"]) == (0, 10)

    @pytest.mark.asyncio
    async def test_group_by_several_fields_with_filter(self, facade, blog):
        groups = await facade.posts.group_by(
            ["author_id", "published"], where=PostFields.author_id.eq(3)
        )

        assert [(group.key, group.count) for group in groups] == [
            ({"author_id": 3, "published": False}, 1),
            ({"author_id": 3, "published": True}, 1),
        ]
        assert groups[0].sum == {}

    @pytest.mark.asyncio
    async def test_group_by_over_no_records(self, facade):
        assert await facade.posts.group_by("author_id", sum="like_num") == []
