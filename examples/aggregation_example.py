"""
Aggregates, grouping, sorting and both pagination styles.
"""
import asyncio

from db_setup import close_connections, setup_blog, setup_database

from relquery.entities import SortOrder
from relquery.filters import PostFields
from relquery.selection import CursorPage, OffsetPage, OrderBy


async def main():
    db = await setup_database()
    try:
        facade = await setup_blog(db)

        likes = await facade.posts.aggregate(PostFields.like_num)
        print(f"\n1. Likes over all posts: {likes.model_dump()}")

        print("\n2. Likes per author:")
        for group in await facade.posts.group_by("author_id", sum="like_num", avg="like_num"):
            print(f"   - author {group.key['author_id']}: sum={group.sum['like_num']} avg={group.avg['like_num']:.2f}")

        posts = await facade.posts.find(order_by=OrderBy(PostFields.like_num, SortOrder.ASC))
        print(f"\n3. Posts by likes: {[(post.id, post.like_num) for post in posts]}")

        # Offset pagination skips index * size records
        print("\n4. Offset pages of 2:")
        index = 0
        while page := await facade.posts.find(page=OffsetPage(index, 2)):
            print(f"   - page {index}: {[post.id for post in page]}")
            index += 1

        # Cursor pagination starts right after the record with the given id
        print("\n5. Cursor pages of 2:")
        page = await facade.posts.find(page=OffsetPage(0, 2))
        while page:
            print(f"   - {[post.id for post in page]}")
            page = await facade.posts.find(page=CursorPage(page[-1].id, 2))
    finally:
        await close_connections(db)


if __name__ == "__main__":
    asyncio.run(main())
