from collections.abc import Awaitable, Callable
from typing import Any

import asyncpg

from relquery.db_context import Database
from relquery.errors import (
    ReferentialViolation,
    UniquenessViolation,
    ValidationError,
)


class DatabaseOperations:
    """Composition class for database operations"""

    def __init__(self, db: Database):
        self.db = db

    def get_connection(self) -> asyncpg.Connection:
        """Get the current database connection from context"""
        conn = self.db.get_current_connection()
        if not conn:
            raise ValueError(
                "No active session found. Database operations must run inside db.session() or db.transaction()."
            )
        return conn

    async def _run(
        self, method: Callable[..., Awaitable[Any]], query: str, params: list[Any]
    ) -> Any:
        self.db.log_query(query, params)
        try:
            return await method(query, *params)
        except asyncpg.exceptions.UniqueViolationError as exc:
            raise UniquenessViolation(exc.detail or str(exc)) from exc
        except asyncpg.exceptions.ForeignKeyViolationError as exc:
            raise ReferentialViolation(exc.detail or str(exc)) from exc
        except (
            asyncpg.exceptions.NotNullViolationError,
            asyncpg.exceptions.CheckViolationError,
            asyncpg.exceptions.DataError,
        ) as exc:
            raise ValidationError(str(exc)) from exc

    async def fetch_all(self, query: str, params: list[Any]) -> list[Any]:
        """Execute query and fetch all rows"""
        return await self._run(self.get_connection().fetch, query, params)

    async def fetch_one(self, query: str, params: list[Any]) -> Any:
        """Execute a query and fetch one row"""
        return await self._run(self.get_connection().fetchrow, query, params)

    async def fetch_value(self, query: str, params: list[Any]) -> Any:
        """Execute query and fetch single value"""
        return await self._run(self.get_connection().fetchval, query, params)

    async def execute_query(self, query: str, params: list[Any]) -> str:
        """Execute query and return the command status, e.g. "UPDATE 3" """
        return await self._run(self.get_connection().execute, query, params)

    @staticmethod
    def affected_rows(status: str) -> int:
        """Extract the row count from a command status such as "INSERT 0 2" """
        return int(status.split()[-1]) if status else 0
