"""
QueryBuilder for building SELECT queries over one model.
The goal is to produce SQL queries without execution.
"""

from typing import Any

from relquery.condition_builder import ROOT_ALIAS, ConditionBuilder, SqlContext
from relquery.entities import SortOrder
from relquery.errors import ValidationError
from relquery.filters import Filter, FilterLike, as_filter
from relquery.projection_builder import ProjectionBuilder
from relquery.schema import ModelMeta, get_model
from relquery.selection import CursorPage, OffsetPage, OrderBy, Page, Selection


class QueryBuilder:
    """
    Immutable query builder for SELECT statements. Every method returns a copy.

    Usage:
        builder = QueryBuilder(Post)
        query, params = builder.where(PostFields.published.eq(True)).order_by("like_num").build()
    """

    def __init__(self, model: Any):
        self.meta: ModelMeta = get_model(model)
        self.selection: Selection | None = None
        self.raw_columns: list[str] = []
        self.conditions: list[Filter] = []
        self.order_by_parts: list[OrderBy] = []
        self.group_by_parts: list[str] = []
        self.limit_count: int | None = None
        self.offset_count: int | None = None
        self.cursor: Any = None

    def _clone(self) -> "QueryBuilder":
        """Create a copy of the current QueryBuilder instance"""
        new_builder = QueryBuilder(self.meta)
        new_builder.selection = self.selection
        new_builder.raw_columns = self.raw_columns.copy()
        new_builder.conditions = self.conditions.copy()
        new_builder.order_by_parts = self.order_by_parts.copy()
        new_builder.group_by_parts = self.group_by_parts.copy()
        new_builder.limit_count = self.limit_count
        new_builder.offset_count = self.offset_count
        new_builder.cursor = self.cursor
        return new_builder

    def select(self, selection: Selection | None) -> "QueryBuilder":
        """Shape returned records with a Select or Include (None selects every scalar)"""
        new_builder = self._clone()
        new_builder.selection = selection
        new_builder.raw_columns = []
        return new_builder

    def select_raw(self, *expressions: str) -> "QueryBuilder":
        """Select SQL expressions verbatim, e.g. aggregates. Expressions must be trusted."""
        new_builder = self._clone()
        new_builder.raw_columns = list(expressions)
        return new_builder

    def where(self, where: FilterLike | None) -> "QueryBuilder":
        """Add a filter; several where() calls are AND-ed together"""
        node = as_filter(where)
        if node is None:
            return self
        new_builder = self._clone()
        new_builder.conditions.append(node)
        return new_builder

    def order_by(
        self, field: str, order: SortOrder | str = SortOrder.ASC
    ) -> "QueryBuilder":
        """Add ORDER BY for a field (ascending by default). Chain to add multiple fields."""
        self.meta.column(field)
        new_builder = self._clone()
        new_builder.order_by_parts.append(OrderBy(str(field), SortOrder(order)))
        return new_builder

    def order_by_desc(self, field: str) -> "QueryBuilder":
        return self.order_by(field, SortOrder.DESC)

    def group_by(self, *fields: str) -> "QueryBuilder":
        """Add GROUP BY fields. Can be chained or passed multiple fields."""
        if not fields:
            return self
        new_builder = self._clone()
        for field in fields:
            new_builder.group_by_parts.append(self.meta.column(field))
        return new_builder

    def limit(self, count: int) -> "QueryBuilder":
        new_builder = self._clone()
        new_builder.limit_count = count
        return new_builder

    def offset(self, count: int) -> "QueryBuilder":
        new_builder = self._clone()
        new_builder.offset_count = count
        return new_builder

    def after(self, cursor: Any) -> "QueryBuilder":
        """Only return records sorting strictly after the record whose id is `cursor`"""
        new_builder = self._clone()
        new_builder.cursor = cursor
        return new_builder

    def paginate(self, page: Page) -> "QueryBuilder":
        """
        Apply an offset or cursor page.

        OffsetPage(index, size) skips index * size records and takes `size`;
        CursorPage(cursor, size) takes `size` records after the cursor record.
        """
        match page:
            case OffsetPage():
                return self.limit(page.size).offset(page.offset)
            case CursorPage():
                return self.after(page.cursor).limit(page.size)
        raise ValidationError(f"Unsupported page {page!r}")

    def _ordering(self) -> list[OrderBy]:
        """Effective ORDER BY: record queries always end on id so order is total"""
        if self.group_by_parts:
            return self.order_by_parts or [OrderBy(f) for f in self.group_by_parts]
        if self.raw_columns:
            return self.order_by_parts
        ordering = self.order_by_parts.copy()
        if not any(part.field == "id" for part in ordering):
            direction = ordering[-1].order if ordering else SortOrder.ASC
            ordering.append(OrderBy("id", direction))
        return ordering

    def _cursor_condition(self, ctx: SqlContext, ordering: list[OrderBy]) -> str:
        directions = {part.order for part in ordering}
        if len(directions) != 1:
            raise ValidationError("Cursor pagination needs a single sort direction")
        operator = ">" if directions.pop() == SortOrder.ASC else "<"
        cursor_alias = ctx.alias()
        if not any(self.meta.is_nullable(part.field) for part in ordering):
            keys = ", ".join(f"{ROOT_ALIAS}.{part.field}" for part in ordering)
            cursor_keys = ", ".join(f"{cursor_alias}.{part.field}" for part in ordering)
            return (
                f"({keys}) {operator} (SELECT {cursor_keys} FROM {self.meta.table} "
                f"{cursor_alias} WHERE {cursor_alias}.id = {ctx.param(self.cursor)})"
            )

        # A row comparison is unknown when a key is NULL, so spell it out key by key
        branches = []
        for index, part in enumerate(ordering):
            terms = [
                f"{ROOT_ALIAS}.{tied.field} IS NOT DISTINCT FROM {cursor_alias}.{tied.field}"
                for tied in ordering[:index]
            ]
            terms.append(self._sorts_after(part, cursor_alias, operator))
            branches.append(terms[0] if len(terms) == 1 else f"({' AND '.join(terms)})")
        return (
            f"EXISTS (SELECT 1 FROM {self.meta.table} {cursor_alias} "
            f"WHERE {cursor_alias}.id = {ctx.param(self.cursor)} AND ({' OR '.join(branches)}))"
        )

    def _sorts_after(self, part: OrderBy, cursor_alias: str, operator: str) -> str:
        """Condition for a row sorting strictly after the cursor row on one key"""
        column = f"{ROOT_ALIAS}.{part.field}"
        cursor = f"{cursor_alias}.{part.field}"
        after = f"{column} {operator} {cursor}"
        if not self.meta.is_nullable(part.field):
            return after
        # NULLs sort last ascending and first descending
        if part.order == SortOrder.ASC:
            return f"({after} OR ({column} IS NULL AND {cursor} IS NOT NULL))"
        return f"({after} OR ({column} IS NOT NULL AND {cursor} IS NULL))"

    def build(self) -> tuple[str, list[Any]]:
        """Build the final SQL query and parameters"""
        ctx = SqlContext()
        columns = self.raw_columns or ProjectionBuilder(ctx).columns(
            self.meta, self.selection, ROOT_ALIAS
        )
        query_parts = [f"SELECT {', '.join(columns)} FROM {self.meta.table} {ROOT_ALIAS}"]

        conditions = ConditionBuilder(ctx)
        where_parts = [conditions.build(self.meta, node) for node in self.conditions]
        ordering = self._ordering()
        if self.cursor is not None:
            where_parts.append(self._cursor_condition(ctx, ordering))

        if where_parts:
            query_parts.append(f"WHERE {' AND '.join(where_parts)}")

        if self.group_by_parts:
            group_columns = ", ".join(f"{ROOT_ALIAS}.{f}" for f in self.group_by_parts)
            query_parts.append(f"GROUP BY {group_columns}")

        if ordering:
            order_columns = ", ".join(
                f"{ROOT_ALIAS}.{part.field}"
                + (" DESC" if part.order == SortOrder.DESC else "")
                for part in ordering
            )
            query_parts.append(f"ORDER BY {order_columns}")

        if self.limit_count is not None:
            query_parts.append(f"LIMIT {int(self.limit_count)}")

        if self.offset_count is not None:
            query_parts.append(f"OFFSET {int(self.offset_count)}")

        return " ".join(query_parts), ctx.params

    def to_sql(self) -> str:
        """Return only the SQL query string without parameters"""
        query, _ = self.build()
        return query

    def __str__(self) -> str:
        query, params = self.build()
        return f"Query: {query}\nParams: {params}"
