"""
Example usage of the context-based transaction system and query tracking
"""
import asyncio

from db_setup import close_connections, setup_blog, setup_database

from relquery.db_context import Database, transactional
from relquery.facade import QueryFacade
from relquery.filters import PostFields
from relquery.writes import Create, Increment


class PostService:
    def __init__(self, facade: QueryFacade):
        self.db = facade.db
        self.facade = facade

    @transactional(query_logs=True)
    async def publish_drafts_and_like(self, user_id: int):
        """
        This method automatically runs in a transaction on self.db.
        Every façade call inside it shares the same connection, and the
        queries it runs are tracked.
        """
        published = await self.facade.posts.update_many(
            PostFields.author_id.eq(user_id) & PostFields.published.eq(False),
            {"published": True},
        )
        await self.facade.posts.update_many(
            PostFields.author_id.eq(user_id), {"like_num": Increment(1)}
        )

        tracker = Database.get_query_tracker()
        for log in tracker.get_queries():
            print(f"   SQL: {log.query}")
        return published

    async def add_post_or_nothing(self, user_id: int, title: str):
        """
        Explicit transaction: the post and its category are created together,
        and the error raised afterwards rolls both back.
        """
        async with self.db.transaction():
            await self.facade.users.update(
                user_id, {"posts": Create({"title": title, "categories": Create({"name": "Drafts"})})}
            )
            raise RuntimeError("changed my mind")


async def main():
    db = await setup_database()
    try:
        facade = await setup_blog(db)
        service = PostService(facade)

        print("\n1. Publishing sara's drafts:")
        count = await service.publish_drafts_and_like(3)
        print(f"   {count} post(s) published")

        print("\n2. Rolled back transaction:")
        try:
            await service.add_post_or_nothing(3, "Never saved")
        except RuntimeError as e:
            print(f"   {e}; posts: {await facade.posts.count()}, categories: {await facade.categories.count()}")

        print("\n3. Tracking queries outside a transaction:")
        async with Database.track_queries() as tracker:
            await facade.users.find(select=None)
            await facade.posts.count()
        for entry in tracker.to_dict():
            print(f"   {entry['timestamp']} {entry['query']} {entry['params']}")
    finally:
        await close_connections(db)


if __name__ == "__main__":
    asyncio.run(main())
