import logging
from collections.abc import Iterable
from typing import Any

from relquery.db_context import Database
from relquery.entities import Category, Post, User
from relquery.errors import ValidationError
from relquery.operations import (
    CreateManyOp,
    CreateOp,
    DeleteManyOp,
    DeleteOp,
    Operation,
    UpdateManyOp,
    UpdateOp,
    UpsertOp,
)
from relquery.repository import Repository
from relquery.schema import get_model

logger = logging.getLogger(__name__)

_OPERATION_TYPES = (
    CreateOp,
    CreateManyOp,
    UpdateOp,
    UpdateManyOp,
    UpsertOp,
    DeleteOp,
    DeleteManyOp,
)


class QueryFacade:
    """Entry point bundling one repository per model over an injected Database.

    async with Database(DatabaseConfig.from_env()) as db:
        facade = QueryFacade(db)
        users = await facade.users.find(UserFields.name.starts_with("s"))
    """

    def __init__(self, db: Database):
        self.db = db
        self.users: Repository[User] = Repository(User, db)
        self.posts: Repository[Post] = Repository(Post, db)
        self.categories: Repository[Category] = Repository(Category, db)
        self._repositories: dict[str, Repository] = {
            repo.meta.name: repo for repo in (self.users, self.posts, self.categories)
        }

    def repository(self, model: Any) -> Repository:
        """Repository for an entity class or model name"""
        return self._repositories[get_model(model).name]

    async def execute(self, operation: Operation) -> Any:
        """Run one mutation descriptor"""
        match operation:
            case CreateOp(model=model, data=data, select=select):
                return await self.repository(model).create(data, select)
            case CreateManyOp(model=model, rows=rows, skip_duplicates=skip):
                return await self.repository(model).create_many(rows, skip)
            case UpdateOp(model=model, id=entity_id, patch=patch):
                return await self.repository(model).update(entity_id, patch)
            case UpdateManyOp(model=model, where=where, patch=patch):
                return await self.repository(model).update_many(where, patch)
            case UpsertOp(model=model, where=where, update=update, create=create):
                return await self.repository(model).upsert(where, update, create)
            case DeleteOp(model=model, id=entity_id):
                return await self.repository(model).delete(entity_id)
            case DeleteManyOp(model=model, where=where):
                return await self.repository(model).delete_many(where)
        raise ValidationError(f"Not a mutation descriptor: {operation!r}")

    async def run_atomic_batch(self, operations: Iterable[Operation]) -> list[Any]:
        """Run mutations in order in one transaction and return their results.

        If any operation fails, the transaction is rolled back and none of the
        operations' effects remain. Descriptors are built before the batch
        starts, so an operation cannot use the result of an earlier one.
        Raises UnsupportedOperation when the database cannot run
        multi-statement transactions.
        """
        operations = list(operations)
        for operation in operations:
            if not isinstance(operation, _OPERATION_TYPES):
                raise ValidationError(f"Not a mutation descriptor: {operation!r}")

        async with self.db.transaction():
            logger.debug("Running atomic batch of %d operations", len(operations))
            results = []
            for operation in operations:
                results.append(await self.execute(operation))
        return results
