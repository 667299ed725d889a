"""
Nested creates, connects, create-many, updates, upserts, deletes and atomic batches.
"""
import asyncio

from db_setup import close_connections, setup_blog, setup_database

from relquery.entities import Post
from relquery.errors import NotFound
from relquery.operations import UpdateOp
from relquery.selection import Include
from relquery.writes import Connect, ConnectOrCreate, Create, Decrement, Increment


async def main():
    db = await setup_database()
    try:
        facade = await setup_blog(db)

        # A user with a new post filed under existing categories
        sakura = await facade.users.create(
            {
                "email": "sakura@prisma.io",
                "name": "sakura dev",
                "posts": Create(
                    {"title": "Crash course on prisma", "published": True, "categories": Connect(1, 2)}
                ),
            },
            select=Include(posts=Include(categories=True)),
        )
        print(f"\n1. Created {sakura.name} with categories "
              f"{[c.name for c in sakura.posts[0].categories]}")

        # Connect category 3 if it exists, create it otherwise
        sasuke = await facade.users.create(
            {
                "email": "sasuke@prisma.io",
                "name": "sasuke",
                "posts": Create(
                    {
                        "title": "Crash course on prisma",
                        "published": True,
                        "categories": ConnectOrCreate(where={"id": 3}, create={"name": "AI"}),
                    }
                ),
            },
            select=Include(posts=Include(categories=True)),
        )
        print(f"\n2. {sasuke.name}'s post is filed under {[c.name for c in sasuke.posts[0].categories]}")

        count = await facade.users.create_many(
            [
                {"name": "Yewande", "email": "yewande@prisma.io"},
                {"name": "Yewande", "email": "yewande@prisma.io"},
                {"name": "Angelique", "email": "angelique@prisma.io"},
            ],
            skip_duplicates=True,
        )
        print(f"\n3. create_many inserted {count} users")

        user = await facade.users.update(1, {"name": "updated Name"})
        print(f"\n4. Updated: {user.name}")

        captain = await facade.users.upsert(
            {"email": "captain@f.com"}, {"name": "founder"}, {"name": "captain"}
        )
        founder = await facade.users.upsert(
            {"email": "captain@f.com"}, {"name": "founder"}, {"name": "captain"}
        )
        print(f"\n5. Upserted twice: {captain.name} then {founder.name}")

        deleted = await facade.users.delete(founder.id)
        print(f"\n6. Deleted {deleted.email}")

        # Move 5 likes from post 1 to post 3; both updates commit or neither does
        transfer = [
            UpdateOp(Post, 1, {"like_num": Decrement(5)}),
            UpdateOp(Post, 3, {"like_num": Increment(5)}),
        ]
        results = await facade.run_atomic_batch(transfer)
        print(f"\n7. Likes after transfer: {[post.like_num for post in results]}")

        try:
            await facade.run_atomic_batch(
                [transfer[0], UpdateOp(Post, 999, {"like_num": Increment(5)})]
            )
        except NotFound as e:
            post = await facade.posts.find_unique(1)
            print(f"\n8. Batch rolled back ({e}); post 1 still has {post.like_num} likes")
    finally:
        await close_connections(db)


if __name__ == "__main__":
    asyncio.run(main())
