"""
Filtering, relation filters and projections over the sample blog.

Run with a local PostgreSQL:

    python examples/filtering_example.py
"""
import asyncio

from db_setup import close_connections, setup_blog, setup_database

from relquery.filters import And, Or, PostFields, UserFields
from relquery.selection import Include, Select


async def main():
    db = await setup_database()
    try:
        facade = await setup_blog(db)

        # AND / OR: posts mentioning GitHub or Twitter, written by user 3
        posts = await facade.posts.find(
            And(
                Or(PostFields.title.contains("GitHub"), PostFields.title.contains("Twitter")),
                PostFields.author_id.eq(3),
            )
        )
        print("\n1. GitHub or Twitter posts by user 3:")
        for post in posts:
            print(f"   - {post.title}")

        # NOT: users whose id is not above 2, or whose name starts with "s"
        users = await facade.users.find(~UserFields.id.gt(2) | UserFields.name.starts_with("s"))
        print(f"\n2. Users: {[user.name for user in users]}")

        # Relation filters over to-many relations: every, some, none
        users = await facade.users.find(UserFields.posts.every(PostFields.published.eq(True)))
        print(f"\n3. Users whose posts are all published: {[user.name for user in users]}")

        # Relation filters over to-one relations: is, is_not
        posts = await facade.posts.find(
            PostFields.author.is_(UserFields.name.eq("Jack"))
            & PostFields.author.is_not(UserFields.email.starts_with("cool")),
            select=Include(author=Select("name")),
        )
        print("\n4. Posts by Jack, with the author's name:")
        for post in posts:
            print(f"   - {post['title']} by {post['author']['name']}")

        # Select at the top level, select at the nested level
        posts = await facade.posts.find(select=Select("title", author=Select("name")))
        print("\n5. Titles and authors:")
        for post in posts:
            print(f"   - {post}")
    finally:
        await close_connections(db)


if __name__ == "__main__":
    asyncio.run(main())
