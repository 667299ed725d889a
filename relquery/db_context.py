import logging
import traceback
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import wraps
from typing import Any

import asyncpg

from relquery.config import DatabaseConfig
from relquery.errors import UnsupportedOperation

logger = logging.getLogger(__name__)


@dataclass
class QueryLog:
    """Represents a logged query"""

    query: str
    params: list[Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    stack_trace: str | None = None

    def __repr__(self) -> str:
        return f"QueryLog(query={self.query!r}, params={self.params!r}, timestamp={self.timestamp})"


class QueryTracker:
    """Tracks queries executed during a context"""

    def __init__(self):
        self.queries: list[QueryLog] = []
        self._enabled: bool = False

    def enable(self):
        self._enabled = True

    def disable(self):
        self._enabled = False

    def is_enabled(self) -> bool:
        return self._enabled

    def log_query(self, query: str, params: list[Any], stack_trace: str | None = None):
        """Log a query with its parameters and optional stack trace"""
        if self._enabled:
            self.queries.append(
                QueryLog(query=query, params=list(params), stack_trace=stack_trace)
            )

    def get_queries(self) -> list[QueryLog]:
        return self.queries.copy()

    def clear(self):
        self.queries.clear()

    def count(self) -> int:
        return len(self.queries)

    def to_dict(self) -> list[dict[str, Any]]:
        """Convert logged queries to a list of dictionaries"""
        return [
            {
                "query": log.query,
                "params": log.params,
                "timestamp": log.timestamp.isoformat(),
                "stack_trace": log.stack_trace,
            }
            for log in self.queries
        ]


# Shared by every Database: a tracker follows the task, not the pool
_query_tracker: ContextVar[QueryTracker | None] = ContextVar(
    "query_tracker", default=None
)


class Database:
    """Process-scoped handle on one PostgreSQL pool.

    Open it once at start-up and close it at shutdown:

        db = await Database(DatabaseConfig.from_env()).connect()
        ...
        await db.close()

    or use it as an async context manager. The connection used by the current
    task is kept in a context variable, so nested sessions and transactions
    reuse it instead of acquiring a new one from the pool.
    """

    def __init__(self, config: DatabaseConfig | None = None, name: str = "default"):
        self.config = config or DatabaseConfig()
        self.name = name
        self._pool: asyncpg.Pool | None = None
        self._current_connection: ContextVar[asyncpg.Connection | None] = ContextVar(
            f"relquery_connection_{name}_{id(self)}", default=None
        )

    async def connect(self) -> "Database":
        """Create the pool (no-op when already connected)"""
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self.config.database_url,
                min_size=self.config.pool_min_size,
                max_size=self.config.pool_max_size,
            )
            logger.info("Database %r connected", self.name)
        return self

    async def close(self):
        """Close the pool; the Database can be connected again afterwards"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Database %r closed", self.name)

    async def __aenter__(self) -> "Database":
        return await self.connect()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise ValueError(f"Database '{self.name}' is not connected")
        return self._pool

    @property
    def supports_transactions(self) -> bool:
        """Whether the store can commit several statements atomically"""
        return not self.config.statement_pooling

    def get_current_connection(self) -> asyncpg.Connection | None:
        """Get the current active connection from context"""
        return self._current_connection.get()

    @staticmethod
    def get_query_tracker() -> QueryTracker | None:
        """Get the current query tracker from context"""
        return _query_tracker.get()

    @staticmethod
    def log_query(query: str, params: list[Any]):
        """Log a query and record it in the current query tracker if available"""
        logger.debug("SQL %s params=%r", query, params)
        tracker = _query_tracker.get()
        if tracker and tracker.is_enabled():
            # Skip this frame and the DatabaseOperations frame
            stack = traceback.extract_stack()[:-2]
            tracker.log_query(query, params, "".join(traceback.format_list(stack)))

    @asynccontextmanager
    async def _acquire(self, transactional: bool, track_queries: bool):
        async with self.pool.acquire() as conn:
            conn_token = self._current_connection.set(conn)
            tracker_token = None
            if (track_queries or self.config.track_queries) and not _query_tracker.get():
                tracker = QueryTracker()
                tracker.enable()
                tracker_token = _query_tracker.set(tracker)
            try:
                if transactional:
                    async with conn.transaction():
                        yield conn
                else:
                    yield conn
            finally:
                self._current_connection.reset(conn_token)
                if tracker_token:
                    _query_tracker.reset(tracker_token)

    @asynccontextmanager
    async def session(self, savepoint: bool = False):
        """Context manager giving the connection a façade call runs on.

        Behavior:
        - Inside an existing session or transaction the same connection is
          reused. With `savepoint=True` a nested transaction (SAVEPOINT) is
          opened on it so a failure can be rolled back without aborting the
          caller's transaction.
        - Otherwise a connection is acquired from the pool and, when the store
          supports it, wrapped in a transaction committed on exit.
        - The acquired connection is always released back to the pool.
        """
        current_conn = self._current_connection.get()
        if current_conn:
            if savepoint and self.supports_transactions:
                async with current_conn.transaction():
                    yield current_conn
            else:
                yield current_conn
            return

        async with self._acquire(self.supports_transactions, False) as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self, track_queries: bool = False):
        """Context manager for database transactions.

        Behavior:
        - If called within an existing transaction/connection, it opens a nested
          transaction (SAVEPOINT) on the same connection.
        - Otherwise it acquires a connection from the pool and starts a transaction.
        - Raises UnsupportedOperation when the store is reached through a
          statement-mode pooler, instead of running statements non-atomically.

        Args:
            track_queries: Whether to enable query tracking for this transaction
        """
        if not self.supports_transactions:
            raise UnsupportedOperation(
                f"Database '{self.name}' is configured for statement pooling "
                "and cannot run multi-statement transactions"
            )

        current_conn = self._current_connection.get()
        if current_conn:
            async with current_conn.transaction():
                yield current_conn
            return

        async with self._acquire(True, track_queries) as conn:
            yield conn

    @staticmethod
    @asynccontextmanager
    async def track_queries():
        """Context manager specifically for query tracking.

        async with db.transaction():
            async with db.track_queries() as tracker:
                await facade.users.find_unique(user_id)
                queries = tracker.get_queries()
        """
        current_tracker = _query_tracker.get()

        if current_tracker:
            was_enabled = current_tracker.is_enabled()
            current_tracker.enable()
            try:
                yield current_tracker
            finally:
                if not was_enabled:
                    current_tracker.disable()
        else:
            tracker = QueryTracker()
            tracker.enable()
            token = _query_tracker.set(tracker)
            try:
                yield tracker
            finally:
                _query_tracker.reset(token)


def transactional(db_attribute: str = "db", query_logs: bool = False):
    """Decorator running a method within a transaction of the instance's Database.

    Args:
        db_attribute: Name of the attribute holding the Database on `self`
        query_logs: Whether to enable query tracking for this transaction

    Example:
        class LikeService:
            def __init__(self, facade: QueryFacade):
                self.db = facade.db
                self.posts = facade.posts

            @transactional(query_logs=True)
            async def move_likes(self, source_id, target_id, amount):
                await self.posts.update(source_id, {"like_num": Decrement(amount)})
                await self.posts.update(target_id, {"like_num": Increment(amount)})
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            db: Database = getattr(self, db_attribute)
            async with db.transaction(track_queries=query_logs):
                return await func(self, *args, **kwargs)

        return wrapper

    return decorator
