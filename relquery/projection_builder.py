"""Translate Select / Include descriptors into SELECT expressions"""

from relquery.condition_builder import SqlContext, relation_source
from relquery.errors import ValidationError
from relquery.schema import ModelMeta, Relation
from relquery.selection import Include, RelationSelection, Select, Selection


class ProjectionBuilder:
    """Composition class building the column list of a SELECT.

    Scalars are plain columns. Each selected relation becomes a correlated
    subquery returning JSON (an object for to-one relations, an array ordered
    by id for to-many relations), nested as deep as the selection goes.
    """

    def __init__(self, ctx: SqlContext):
        self.ctx = ctx

    def columns(
        self, meta: ModelMeta, selection: Selection | None, alias: str
    ) -> list[str]:
        scalars, relations = self.resolve(meta, selection)
        columns = [f"{alias}.{name}" for name in scalars]
        for name, nested in relations:
            subquery = self._relation_json(meta, meta.relation(name), nested, alias)
            columns.append(f"({subquery}) AS {name}")
        return columns

    @staticmethod
    def resolve(
        meta: ModelMeta, selection: Selection | None
    ) -> tuple[list[str], list[tuple[str, RelationSelection]]]:
        """Split a selection into scalar field names and (relation, nested) pairs"""
        match selection:
            case None:
                return list(meta.columns), []
            case Select(fields=fields, relations=relations):
                if not fields and not relations:
                    raise ValidationError(f"Select on {meta.name} names no field")
                scalars = [meta.column(name) for name in dict.fromkeys(fields)]
            case Include(relations=relations):
                scalars = list(meta.columns)
            case _:
                raise ValidationError(
                    f"Expected Select or Include, got {type(selection).__name__}"
                )

        picked = []
        for name, nested in relations:
            meta.relation(name)
            if not isinstance(nested, (bool, Select, Include)):
                raise ValidationError(
                    f"{meta.name}.{name} must be True, False, Select or Include"
                )
            if nested is not False:
                picked.append((name, nested))
        return scalars, picked

    def _json_object(
        self, meta: ModelMeta, selection: Selection | None, alias: str
    ) -> str:
        scalars, relations = self.resolve(meta, selection)
        args = [f"'{name}', {alias}.{name}" for name in scalars]
        for name, nested in relations:
            subquery = self._relation_json(meta, meta.relation(name), nested, alias)
            args.append(f"'{name}', ({subquery})")
        return f"json_build_object({', '.join(args)})"

    def _relation_json(
        self,
        meta: ModelMeta,
        relation: Relation,
        nested: RelationSelection,
        alias: str,
    ) -> str:
        target = meta.related(relation)
        target_alias = self.ctx.alias()
        source, join_condition = relation_source(relation, target, alias, target_alias)
        obj = self._json_object(target, None if nested is True else nested, target_alias)
        if relation.to_many:
            return (
                f"SELECT COALESCE(json_agg({obj} ORDER BY {target_alias}.id), '[]'::json) "
                f"FROM {source} WHERE {join_condition}"
            )
        return f"SELECT {obj} FROM {source} WHERE {join_condition}"
