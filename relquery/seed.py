"""
Seed the demo blog data set.

Run against the database named by RELQUERY_DATABASE_URL:

    python -m relquery.seed
"""

import asyncio
import logging

from relquery.config import DatabaseConfig
from relquery.db_context import Database
from relquery.entities import User
from relquery.facade import QueryFacade
from relquery.schema import DDL
from relquery.selection import Include
from relquery.writes import Connect, Create

logger = logging.getLogger(__name__)


async def create_schema(db: Database):
    """Create the demo tables if they do not exist"""
    async with db.session() as conn:
        await conn.execute(DDL)


async def seed(facade: QueryFacade) -> list[User]:
    """Create three users with their posts and categories in one transaction"""
    async with facade.db.transaction():
        john = await facade.users.create(
            {
                "name": "John",
                "email": "john@prisma.io",
                "posts": Create(
                    {
                        "title": "Join the Prisma Slack",
                        "published": True,
                        "like_num": 10,
                        "categories": Create({"name": "Data Base"}, {"name": "Big Data"}),
                    }
                ),
            },
            select=Include(posts=Include(categories=True)),
        )
        data_base, big_data = john.posts[0].categories
        await facade.posts.create(
            {
                "title": "Follow Prisma on Twitter",
                "published": True,
                "author_id": john.id,
                "categories": Connect(data_base.id),
            }
        )
        logger.info("Created user with id: %s", john.id)

        jack = await facade.users.create(
            {
                "name": "Jack",
                "email": "jack@prisma.io",
                "posts": Create(
                    {
                        "title": "Follow Prisma on Twitter",
                        "published": True,
                        "like_num": 5,
                        "categories": Connect(data_base.id),
                    }
                ),
            }
        )
        logger.info("Created user with id: %s", jack.id)

        sara = await facade.users.create(
            {
                "name": "sara",
                "email": "sara@prisma.io",
                "posts": Create(
                    {
                        "title": "Ask a question about Prisma on GitHub",
                        "published": True,
                        "categories": Connect(big_data.id),
                    },
                    {
                        "title": "Prisma on YouTube",
                        "categories": Connect(data_base.id),
                    },
                ),
            }
        )
        logger.info("Created user with id: %s", sara.id)

    return [john, jack, sara]


async def main(config: DatabaseConfig | None = None):
    async with Database(config or DatabaseConfig.from_env()) as db:
        await create_schema(db)
        logger.info("Start seeding ...")
        await seed(QueryFacade(db))
        logger.info("Seeding finished.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(main())
