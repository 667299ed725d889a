"""Repository class"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from relquery.condition_builder import ROOT_ALIAS, ConditionBuilder, SqlContext
from relquery.database_operations import DatabaseOperations
from relquery.db_context import Database
from relquery.entities import BaseEntity
from relquery.entity_mapper import EntityMapper
from relquery.errors import NotFound, ReferentialViolation, UniquenessViolation, ValidationError
from relquery.filters import Equals, FilterLike, as_filter
from relquery.query_builder import QueryBuilder
from relquery.schema import ModelMeta, Relation, RelationKind, get_model
from relquery.selection import OffsetPage, OrderBy, Page, Selection
from relquery.writes import (
    ADJUSTMENT_OPERATORS,
    Connect,
    ConnectOrCreate,
    Create,
    RelationWrite,
    is_relation_write,
    relation_writes,
)

logger = logging.getLogger(__name__)


class AggregateResult(BaseModel):
    """Summary of a numeric field; avg/min/max are None over zero records"""

    count: int
    sum: int | float
    avg: float | None = None
    min: int | float | None = None
    max: int | float | None = None


class GroupSummary(BaseModel):
    key: dict[str, Any]
    count: int
    sum: dict[str, int | float | None] = {}
    avg: dict[str, float | None] = {}
    min: dict[str, int | float | None] = {}
    max: dict[str, int | float | None] = {}


def _field_list(fields: str | Sequence[str]) -> list[str]:
    if isinstance(fields, str):
        return [fields]
    return [str(f) for f in fields]


T = TypeVar("T", bound=BaseEntity)


class Repository(Generic[T]):
    """Query façade over one model.

    Reads return entities (or dicts when a Select shapes the records), writes
    run in a session of the injected Database: inside the caller's transaction
    when there is one, in their own transaction otherwise.
    """

    def __init__(self, model: type[T] | str | ModelMeta, db: Database):
        self.meta = get_model(model)
        self.db = db

        # Composition: Inject dependencies
        self.db_ops = DatabaseOperations(db)
        self.entity_mapper = EntityMapper(self.meta)

    @property
    def table(self) -> str:
        return self.meta.table

    def query(self) -> QueryBuilder:
        """A fresh query builder over this model"""
        return QueryBuilder(self.meta)

    def _repository(self, model: str) -> "Repository":
        return Repository(model, self.db)

    # Reads
    async def find(
        self,
        where: FilterLike | None = None,
        select: Selection | None = None,
        order_by: OrderBy | str | None = None,
        page: Page | None = None,
    ) -> list[T] | list[dict[str, Any]]:
        """Return the records matching `where`, shaped by `select`, in order, paged"""
        builder = self.query().select(select).where(where)
        if order_by is not None:
            if isinstance(order_by, str):
                order_by = OrderBy(order_by)
            builder = builder.order_by(order_by.field, order_by.order)
        if page is not None:
            builder = builder.paginate(page)

        query, params = builder.build()
        async with self.db.session():
            rows = await self.db_ops.fetch_all(query, params)
        return self.entity_mapper.map_rows(rows, select)

    async def find_first(
        self,
        where: FilterLike | None = None,
        select: Selection | None = None,
        order_by: OrderBy | str | None = None,
    ) -> T | dict[str, Any] | None:
        records = await self.find(where, select, order_by, OffsetPage(0, 1))
        return records[0] if records else None

    async def find_unique(
        self, entity_id: int, select: Selection | None = None
    ) -> T | dict[str, Any] | None:
        """Find a record by id"""
        return await self.find_first(Equals("id", entity_id), select)

    async def count(self, where: FilterLike | None = None) -> int:
        query, params = self.query().where(where).select_raw("COUNT(*)").build()
        async with self.db.session():
            result = await self.db_ops.fetch_value(query, params)
        return result or 0

    def _numeric_column(self, field: str) -> str:
        if not self.meta.is_numeric(field):
            raise ValidationError(f"{self.meta.name}.{field} is not numeric")
        return self.meta.column(field)

    async def aggregate(
        self, field: str, where: FilterLike | None = None
    ) -> AggregateResult:
        """Count, sum, average, minimum and maximum of a numeric field"""
        column = f"{ROOT_ALIAS}.{self._numeric_column(field)}"
        query, params = (
            self.query()
            .where(where)
            .select_raw(
                "COUNT(*) AS count",
                f"COALESCE(SUM({column}), 0) AS sum",
                f"AVG({column})::float8 AS avg",
                f"MIN({column}) AS min",
                f"MAX({column}) AS max",
            )
            .build()
        )
        async with self.db.session():
            row = await self.db_ops.fetch_one(query, params)
        return AggregateResult(**dict(row))

    async def group_by(
        self,
        by: str | Sequence[str],
        *,
        sum: str | Sequence[str] = (),
        avg: str | Sequence[str] = (),
        min: str | Sequence[str] = (),
        max: str | Sequence[str] = (),
        where: FilterLike | None = None,
    ) -> list[GroupSummary]:
        """Partition records by the `by` fields and aggregate within each group.

        Groups come back ordered by their key; every group carries its count.
        """
        requested = {
            "sum": [self._numeric_column(f) for f in _field_list(sum)],
            "avg": [self._numeric_column(f) for f in _field_list(avg)],
            "min": [self._numeric_column(f) for f in _field_list(min)],
            "max": [self._numeric_column(f) for f in _field_list(max)],
        }
        keys = [self.meta.column(f) for f in _field_list(by)]
        if not keys:
            raise ValidationError("group_by needs at least one field")

        columns = [f"{ROOT_ALIAS}.{key} AS {key}" for key in keys]
        columns.append("COUNT(*) AS _count")
        for function, fields in requested.items():
            for column in fields:
                expression = f"{function.upper()}({ROOT_ALIAS}.{column})"
                if function == "avg":
                    expression += "::float8"
                columns.append(f"{expression} AS _{function}_{column}")

        query, params = (
            self.query().where(where).select_raw(*columns).group_by(*keys).build()
        )
        async with self.db.session():
            rows = await self.db_ops.fetch_all(query, params)

        summaries = []
        for row in rows:
            data = dict(row)
            summary: dict[str, Any] = {
                "key": {key: data[key] for key in keys},
                "count": data["_count"],
            }
            for function, fields in requested.items():
                summary[function] = {
                    column: data[f"_{function}_{column}"] for column in fields
                }
            summaries.append(GroupSummary(**summary))
        return summaries

    # Writes
    def _split(
        self, data: Mapping[str, Any]
    ) -> tuple[dict[str, Any], list[tuple[Relation, list[RelationWrite]]]]:
        """Separate scalar fields from relation writes"""
        scalars: dict[str, Any] = {}
        relations: list[tuple[Relation, list[RelationWrite]]] = []
        for name, value in data.items():
            name = str(name)
            if name in self.meta.relations:
                if not is_relation_write(value):
                    raise ValidationError(
                        f"{self.meta.name}.{name} expects Create, Connect or ConnectOrCreate"
                    )
                relations.append((self.meta.relations[name], relation_writes(value)))
            else:
                scalars[self.meta.column(name)] = value
        return scalars, relations

    def _split_flat(self, data: Mapping[str, Any], operation: str) -> dict[str, Any]:
        scalars, relations = self._split(data)
        if relations:
            raise ValidationError(f"{operation} accepts scalar fields only")
        return scalars

    def _plain(self, column: str, value: Any) -> Any:
        if type(value) in ADJUSTMENT_OPERATORS:
            raise ValidationError(
                f"{self.meta.name}.{column}: {type(value).__name__} only applies to updates"
            )
        return value

    def _assignments(self, scalars: Mapping[str, Any], ctx: SqlContext) -> list[str]:
        """SET items; numeric adjustments are computed by the store from the current value"""
        parts = []
        for column, value in scalars.items():
            if column == "id":
                raise ValidationError("id is assigned by the store and cannot be changed")
            operator = ADJUSTMENT_OPERATORS.get(type(value))
            if operator is None:
                parts.append(f"{column} = {ctx.param(value)}")
                continue
            if not self.meta.is_numeric(column):
                raise ValidationError(
                    f"{type(value).__name__} needs a numeric field; {self.meta.name}.{column} is not"
                )
            parts.append(
                f"{column} = {ROOT_ALIAS}.{column} {operator} {ctx.param(value.by)}"
            )
        return parts

    async def _insert_scalars(self, scalars: Mapping[str, Any]) -> Any:
        ctx = SqlContext()
        if scalars:
            columns = ", ".join(scalars)
            placeholders = ", ".join(
                ctx.param(self._plain(column, value)) for column, value in scalars.items()
            )
            query = f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders}) RETURNING *"
        else:
            query = f"INSERT INTO {self.table} DEFAULT VALUES RETURNING *"
        return await self.db_ops.fetch_one(query, ctx.params)

    async def _insert(self, data: Mapping[str, Any]) -> Any:
        """Insert one record with its nested writes; returns the inserted row"""
        scalars, relations = self._split(data)
        await self._resolve_parents(scalars, relations)

        row = await self._insert_scalars(scalars)
        for relation, writes in relations:
            if relation.to_many:
                await self._write_children(relation, row["id"], writes)
        return row

    async def _existing_id(self, entity_id: Any) -> int:
        found = await self.db_ops.fetch_value(
            f"SELECT id FROM {self.table} WHERE id = $1", [entity_id]
        )
        if found is None:
            raise ReferentialViolation(
                f"Cannot connect {self.meta.name} with id {entity_id!r}: it does not exist"
            )
        return found

    async def _lookup_unique(self, where: Mapping[str, Any]) -> int | None:
        if not where or not any(self.meta.is_unique(name) for name in where):
            raise ValidationError(
                f"connect_or_create on {self.meta.name} needs a unique field in where"
            )
        query, params = self.query().where(where).select_raw(f"{ROOT_ALIAS}.id").build()
        return await self.db_ops.fetch_value(query, params)

    async def _connect_or_create(
        self,
        where: Mapping[str, Any],
        create: Mapping[str, Any],
        extra: Mapping[str, Any] | None = None,
    ) -> tuple[int, bool]:
        """Return (id, created): the record matching `where`, created from `create` if absent.

        A concurrent caller may create the same unique record between the lookup
        and the insert; the insert then fails on the unique key and the record
        it created is connected instead.
        """
        found = await self._lookup_unique(where)
        if found is not None:
            return found, False
        try:
            async with self.db.session(savepoint=True):
                row = await self._insert({**create, **(extra or {})})
        except UniquenessViolation:
            found = await self._lookup_unique(where)
            if found is None:
                raise
            logger.debug("%s %r created concurrently, connecting", self.meta.name, where)
            return found, False
        return row["id"], True

    async def _resolve_parents(
        self, scalars: dict[str, Any], relations: list[tuple[Relation, list[RelationWrite]]]
    ) -> None:
        """Set the foreign key of every many-to-one write in `scalars`"""
        for relation, writes in relations:
            if relation.kind is RelationKind.MANY_TO_ONE:
                if relation.foreign_key in scalars:
                    raise ValidationError(
                        f"Give either {relation.foreign_key} or {relation.name}, not both"
                    )
                scalars[relation.foreign_key] = await self._resolve_parent(relation, writes)

    async def _resolve_parent(self, relation: Relation, writes: list[RelationWrite]) -> int:
        """Id of the single record a many-to-one write points to"""
        if len(writes) != 1:
            raise ValidationError(f"{relation.name} takes exactly one write")
        target = self._repository(relation.target)
        match writes[0]:
            case Connect(ids=ids):
                if len(ids) != 1:
                    raise ValidationError(f"{relation.name} connects exactly one record")
                return await target._existing_id(ids[0])
            case Create(rows=rows):
                if len(rows) != 1:
                    raise ValidationError(f"{relation.name} creates exactly one record")
                return (await target._insert(rows[0]))["id"]
            case ConnectOrCreate(where=where, create=create):
                entity_id, _ = await target._connect_or_create(where, create)
                return entity_id
        raise ValidationError(f"Unsupported write {writes[0]!r}")

    async def _write_children(
        self, relation: Relation, parent_id: int, writes: list[RelationWrite]
    ):
        target = self._repository(relation.target)
        for write in writes:
            match write:
                case Create(rows=rows):
                    for row in rows:
                        if relation.kind is RelationKind.ONE_TO_MANY:
                            await target._insert({**row, relation.foreign_key: parent_id})
                        else:
                            child = await target._insert(row)
                            await self._link(relation, parent_id, [child["id"]])
                case Connect(ids=ids):
                    await self._connect_children(relation, parent_id, ids)
                case ConnectOrCreate(where=where, create=create):
                    extra = (
                        {relation.foreign_key: parent_id}
                        if relation.kind is RelationKind.ONE_TO_MANY
                        else None
                    )
                    child_id, created = await target._connect_or_create(where, create, extra)
                    if relation.kind is RelationKind.MANY_TO_MANY:
                        await self._link(relation, parent_id, [child_id])
                    elif not created:
                        await self._connect_children(relation, parent_id, [child_id])
                case _:
                    raise ValidationError(f"Unsupported write {write!r}")

    async def _connect_children(
        self, relation: Relation, parent_id: int, ids: Sequence[int]
    ):
        ids = list(dict.fromkeys(ids))
        if not ids:
            return
        target = self.meta.related(relation)
        if relation.kind is RelationKind.ONE_TO_MANY:
            rows = await self.db_ops.fetch_all(
                f"UPDATE {target.table} SET {relation.foreign_key} = $1 "
                f"WHERE id = ANY($2::int[]) RETURNING id",
                [parent_id, ids],
            )
        else:
            rows = await self.db_ops.fetch_all(
                f"SELECT id FROM {target.table} WHERE id = ANY($1::int[])", [ids]
            )
        missing = set(ids) - {row["id"] for row in rows}
        if missing:
            raise ReferentialViolation(
                f"Cannot connect {relation.name}: {target.name} ids {sorted(missing)} do not exist"
            )
        if relation.kind is RelationKind.MANY_TO_MANY:
            await self._link(relation, parent_id, ids)

    async def _link(self, relation: Relation, parent_id: int, child_ids: Sequence[int]):
        """Insert join rows; existing pairs are left as they are"""
        await self.db_ops.execute_query(
            f"INSERT INTO {relation.join_table} ({relation.join_source}, {relation.join_target}) "
            f"SELECT $1, unnest($2::int[]) ON CONFLICT DO NOTHING",
            [parent_id, list(child_ids)],
        )

    async def create(
        self, data: Mapping[str, Any], select: Selection | None = None
    ) -> T | dict[str, Any]:
        """Create a record, with its nested creates and connects, in one transaction"""
        async with self.db.session(savepoint=True):
            row = await self._insert(data)
            if select is None:
                return self.entity_mapper.map_row(row)
            return await self.find_unique(row["id"], select)

    async def create_many(
        self, rows: Sequence[Mapping[str, Any]], skip_duplicates: bool = False
    ) -> int:
        """Insert flat records in one statement and return how many were inserted.

        With skip_duplicates, records colliding on a unique field are skipped.
        """
        if not rows:
            return 0
        prepared = [self._split_flat(row, "create_many") for row in rows]
        columns = list(dict.fromkeys(column for scalars in prepared for column in scalars))
        if not columns:
            columns = ["id"]

        ctx = SqlContext()
        values = []
        for scalars in prepared:
            cells = [
                ctx.param(self._plain(column, scalars[column]))
                if column in scalars
                else "DEFAULT"
                for column in columns
            ]
            values.append(f"({', '.join(cells)})")

        query = f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES {', '.join(values)}"
        if skip_duplicates:
            query += " ON CONFLICT DO NOTHING"

        async with self.db.session():
            status = await self.db_ops.execute_query(query, ctx.params)
        return self.db_ops.affected_rows(status)

    async def update(self, entity_id: int, patch: Mapping[str, Any]) -> T:
        """Update one record; raises NotFound when `entity_id` does not exist"""
        async with self.db.session(savepoint=True):
            scalars, relations = self._split(patch)
            await self._resolve_parents(scalars, relations)

            ctx = SqlContext()
            assignments = self._assignments(scalars, ctx)
            if assignments:
                query = (
                    f"UPDATE {self.table} {ROOT_ALIAS} SET {', '.join(assignments)} "
                    f"WHERE {ROOT_ALIAS}.id = {ctx.param(entity_id)} RETURNING {ROOT_ALIAS}.*"
                )
            else:
                query = f"SELECT * FROM {self.table} WHERE id = {ctx.param(entity_id)}"
            row = await self.db_ops.fetch_one(query, ctx.params)
            if row is None:
                raise NotFound(self.meta.name, entity_id)

            for relation, writes in relations:
                if relation.to_many:
                    await self._write_children(relation, entity_id, writes)
        return self.entity_mapper.map_row(row)

    async def update_many(self, where: FilterLike, patch: Mapping[str, Any]) -> int:
        """Update every matching record and return how many were updated"""
        node = as_filter(where)
        if node is None:
            raise ValidationError("update_many needs a filter; pass And() to match every record")
        ctx = SqlContext()
        assignments = self._assignments(self._split_flat(patch, "update_many"), ctx)
        if not assignments:
            return 0
        condition = ConditionBuilder(ctx).build(self.meta, node)
        query = (
            f"UPDATE {self.table} {ROOT_ALIAS} SET {', '.join(assignments)} WHERE {condition}"
        )
        async with self.db.session():
            status = await self.db_ops.execute_query(query, ctx.params)
        return self.db_ops.affected_rows(status)

    async def upsert(
        self,
        where: Mapping[str, Any],
        update: Mapping[str, Any],
        create: Mapping[str, Any],
    ) -> T:
        """Update the record matching `where`, or create it.

        Runs as one INSERT ... ON CONFLICT statement on the unique field named
        by `where`, so concurrent upserts of the same absent record create it
        once and update it afterwards. The `where` value is part of the created
        record.
        """
        if len(where) != 1:
            raise ValidationError("upsert needs exactly one unique field in where")
        ((key, value),) = where.items()
        key = self.meta.column(key)
        if not self.meta.is_unique(key):
            raise ValidationError(f"{self.meta.name}.{key} is not unique")

        create_scalars = self._split_flat(create, "upsert")
        if key in create_scalars and create_scalars[key] != value:
            raise ValidationError(f"create sets {key} to a value other than where")
        create_scalars[key] = value
        update_scalars = self._split_flat(update, "upsert")

        ctx = SqlContext()
        columns = list(create_scalars)
        values = ", ".join(
            ctx.param(self._plain(column, create_scalars[column])) for column in columns
        )
        assignments = self._assignments(update_scalars, ctx) or [f"{key} = EXCLUDED.{key}"]
        query = (
            f"INSERT INTO {self.table} AS {ROOT_ALIAS} ({', '.join(columns)}) VALUES ({values}) "
            f"ON CONFLICT ({key}) DO UPDATE SET {', '.join(assignments)} "
            f"RETURNING {ROOT_ALIAS}.*, ({ROOT_ALIAS}.xmax = 0) AS _inserted"
        )

        async with self.db.session():
            row = await self.db_ops.fetch_one(query, ctx.params)
            if row["_inserted"] and key == "id":
                # Explicit ids bypass the sequence; move it past them
                await self.db_ops.fetch_value(
                    f"SELECT setval(pg_get_serial_sequence('{self.table}', 'id'), "
                    f"(SELECT MAX(id) FROM {self.table}))",
                    [],
                )
        logger.debug(
            "upsert %s %s=%r %s",
            self.meta.name,
            key,
            value,
            "created" if row["_inserted"] else "updated",
        )
        return self.entity_mapper.map_row(row)

    async def delete(self, entity_id: int) -> T:
        """Delete one record and return it; raises NotFound when it does not exist"""
        async with self.db.session():
            row = await self.db_ops.fetch_one(
                f"DELETE FROM {self.table} WHERE id = $1 RETURNING *", [entity_id]
            )
        if row is None:
            raise NotFound(self.meta.name, entity_id)
        return self.entity_mapper.map_row(row)

    async def delete_many(self, where: FilterLike) -> int:
        """Delete every matching record and return how many were deleted.

        A filter is required; pass And() to delete every record.
        """
        node = as_filter(where)
        if node is None:
            raise ValidationError("delete_many needs a filter; pass And() to match every record")
        ctx = SqlContext()
        condition = ConditionBuilder(ctx).build(self.meta, node)
        async with self.db.session():
            status = await self.db_ops.execute_query(
                f"DELETE FROM {self.table} {ROOT_ALIAS} WHERE {condition}", ctx.params
            )
        return self.db_ops.affected_rows(status)
