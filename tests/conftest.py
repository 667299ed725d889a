import pytest
import pytest_asyncio
from testcontainers.postgres import PostgresContainer

from relquery.config import DatabaseConfig
from relquery.db_context import Database
from relquery.facade import QueryFacade
from relquery.schema import DDL, TRUNCATE
from relquery.seed import seed


@pytest.fixture(scope="session")
def postgres_container():
    """Start a PostgreSQL test container for the session."""
    with PostgresContainer("postgres:17") as postgres:
        yield postgres


@pytest.fixture
def db_config(postgres_container) -> DatabaseConfig:
    host = postgres_container.get_container_host_ip()
    port = postgres_container.get_exposed_port(5432)
    url = f"postgresql://{postgres_container.username}:{postgres_container.password}@{host}:{port}/{postgres_container.dbname}"
    return DatabaseConfig(database_url=url, pool_min_size=1, pool_max_size=5)


@pytest_asyncio.fixture
async def db(db_config):
    """A connected Database with the blog schema, emptied after each test."""
    # A new pool per test avoids event loop issues
    database = await Database(db_config, name="test_db").connect()
    async with database.pool.acquire() as conn:
        await conn.execute(DDL)

    yield database

    async with database.pool.acquire() as conn:
        await conn.execute(TRUNCATE)
    await database.close()


@pytest.fixture
def facade(db) -> QueryFacade:
    return QueryFacade(db)


@pytest_asyncio.fixture
async def blog(facade):
    """The seeded data set: john, jack and sara with their posts."""
    john, jack, sara = await seed(facade)
    return {"john": john, "jack": jack, "sara": sara}


@pytest.fixture
def offline_facade() -> QueryFacade:
    """A façade whose Database was never connected, for checks made before any SQL runs."""
    return QueryFacade(Database(DatabaseConfig(), name="offline"))
