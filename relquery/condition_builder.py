"""Translate filter trees into parameterised SQL conditions"""

from enum import Enum
from typing import Any

from relquery.errors import ValidationError
from relquery.filters import (
    And,
    Compare,
    ComparisonOperator,
    Contains,
    EndsWith,
    Equals,
    Every,
    Filter,
    In,
    Is,
    IsNot,
    NoneMatch,
    Not,
    NotEquals,
    NotIn,
    Or,
    Some,
    StartsWith,
)
from relquery.schema import ModelMeta, Relation, RelationKind

ROOT_ALIAS = "t0"


def db_value(value: Any) -> Any:
    """Convert a python value into what asyncpg binds (enums by value)"""
    if isinstance(value, Enum):
        return value.value
    return value


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value is matched literally"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlContext:
    """Positional parameters and table aliases of one statement being built"""

    def __init__(self):
        self.params: list[Any] = []
        self._alias_count = 0

    def param(self, value: Any) -> str:
        """Register a parameter and return its $n placeholder"""
        self.params.append(db_value(value))
        return f"${len(self.params)}"

    def alias(self) -> str:
        self._alias_count += 1
        return f"t{self._alias_count}"


class ConditionBuilder:
    """Composition class for building WHERE conditions from filter trees"""

    def __init__(self, ctx: SqlContext):
        self.ctx = ctx

    def build(self, meta: ModelMeta, node: Filter, alias: str = ROOT_ALIAS) -> str:
        """Translate `node`, evaluated against rows of `meta` aliased as `alias`"""
        match node:
            case And(items=items):
                return self._combine(meta, items, alias, " AND ", "TRUE")
            case Or(items=items):
                return self._combine(meta, items, alias, " OR ", "FALSE")
            case Not(item=item):
                return f"NOT ({self.build(meta, item, alias)})"
            case Equals(field=name, value=value):
                column = self._column(meta, name, alias)
                if value is None:
                    return f"{column} IS NULL"
                return f"{column} = {self.ctx.param(value)}"
            case NotEquals(field=name, value=value):
                column = self._column(meta, name, alias)
                if value is None:
                    return f"{column} IS NOT NULL"
                return f"{column} <> {self.ctx.param(value)}"
            case In(field=name, values=values):
                column = self._column(meta, name, alias)
                if not values:
                    return "FALSE"
                return f"{column} = ANY({self.ctx.param([db_value(v) for v in values])})"
            case NotIn(field=name, values=values):
                column = self._column(meta, name, alias)
                if not values:
                    return "TRUE"
                return f"NOT ({column} = ANY({self.ctx.param([db_value(v) for v in values])}))"
            case Contains(field=name, value=value, insensitive=insensitive):
                return self._like(meta, name, alias, f"%{escape_like(value)}%", insensitive)
            case StartsWith(field=name, value=value, insensitive=insensitive):
                return self._like(meta, name, alias, f"{escape_like(value)}%", insensitive)
            case EndsWith(field=name, value=value, insensitive=insensitive):
                return self._like(meta, name, alias, f"%{escape_like(value)}", insensitive)
            case Compare(field=name, operator=operator, value=value):
                column = self._column(meta, name, alias)
                try:
                    operator = ComparisonOperator(operator)
                except ValueError as exc:
                    raise ValidationError(f"Unsupported comparison '{operator}'") from exc
                return f"{column} {operator.value} {self.ctx.param(value)}"
            case Some(relation=name, where=where):
                relation = self._to_many(meta, name)
                return f"EXISTS ({self._related(meta, relation, alias, where)})"
            case NoneMatch(relation=name, where=where):
                relation = self._to_many(meta, name)
                return f"NOT EXISTS ({self._related(meta, relation, alias, where)})"
            case Every(relation=name, where=where):
                # No related row may fail the condition; NULL counts as failing
                relation = self._to_many(meta, name)
                return f"NOT EXISTS ({self._related(meta, relation, alias, where, negate=True)})"
            case Is(relation=name, where=where):
                relation = self._to_one(meta, name)
                if where is None:
                    return f"{alias}.{relation.foreign_key} IS NULL"
                return f"EXISTS ({self._related(meta, relation, alias, where)})"
            case IsNot(relation=name, where=where):
                relation = self._to_one(meta, name)
                if where is None:
                    return f"{alias}.{relation.foreign_key} IS NOT NULL"
                return f"NOT EXISTS ({self._related(meta, relation, alias, where)})"
            case _:
                raise ValidationError(f"Unsupported filter node: {node!r}")

    def _combine(
        self,
        meta: ModelMeta,
        items: tuple[Filter, ...],
        alias: str,
        joiner: str,
        empty: str,
    ) -> str:
        if not items:
            return empty
        parts = [self.build(meta, item, alias) for item in items]
        if len(parts) == 1:
            return parts[0]
        return f"({joiner.join(parts)})"

    @staticmethod
    def _column(meta: ModelMeta, name: str, alias: str) -> str:
        return f"{alias}.{meta.column(name)}"

    def _like(
        self, meta: ModelMeta, name: str, alias: str, pattern: str, insensitive: bool
    ) -> str:
        column = self._column(meta, name, alias)
        operator = "ILIKE" if insensitive else "LIKE"
        return f"{column} {operator} {self.ctx.param(pattern)}"

    @staticmethod
    def _to_many(meta: ModelMeta, name: str) -> Relation:
        relation = meta.relation(name)
        if not relation.to_many:
            raise ValidationError(
                f"every/some/none need a to-many relation; {meta.name}.{name} is to-one"
            )
        return relation

    @staticmethod
    def _to_one(meta: ModelMeta, name: str) -> Relation:
        relation = meta.relation(name)
        if relation.to_many:
            raise ValidationError(
                f"is/is_not need a to-one relation; {meta.name}.{name} is to-many"
            )
        return relation

    def _related(
        self,
        meta: ModelMeta,
        relation: Relation,
        alias: str,
        where: Filter,
        negate: bool = False,
    ) -> str:
        """SELECT 1 over the rows related to `alias` through `relation` matching `where`"""
        target = meta.related(relation)
        target_alias = self.ctx.alias()
        source, join_condition = relation_source(relation, target, alias, target_alias)
        condition = self.build(target, where, target_alias)
        if negate:
            condition = f"NOT COALESCE({condition}, FALSE)"
        return f"SELECT 1 FROM {source} WHERE {join_condition} AND {condition}"


def relation_source(
    relation: Relation, target: ModelMeta, alias: str, target_alias: str
) -> tuple[str, str]:
    """FROM clause and join condition reaching `target` rows from the row at `alias`"""
    match relation.kind:
        case RelationKind.ONE_TO_MANY:
            return (
                f"{target.table} {target_alias}",
                f"{target_alias}.{relation.foreign_key} = {alias}.id",
            )
        case RelationKind.MANY_TO_ONE:
            return (
                f"{target.table} {target_alias}",
                f"{target_alias}.id = {alias}.{relation.foreign_key}",
            )
        case RelationKind.MANY_TO_MANY:
            join_alias = f"{target_alias}_j"
            return (
                f"{relation.join_table} {join_alias} "
                f"JOIN {target.table} {target_alias} "
                f"ON {target_alias}.id = {join_alias}.{relation.join_target}",
                f"{join_alias}.{relation.join_source} = {alias}.id",
            )
    raise ValidationError(f"Unsupported relation kind {relation.kind!r}")
