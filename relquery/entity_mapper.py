import json
from typing import Any

from relquery.schema import ModelMeta
from relquery.selection import Selection, returns_entities


class EntityMapper:
    """Composition class for entity mapping operations"""

    def __init__(self, meta: ModelMeta):
        self.meta = meta
        self.entity_class = meta.entity_class

    def row_to_dict(self, row: Any) -> dict[str, Any]:
        """Turn a row into a dict, decoding relation columns returned as JSON"""
        data = dict(row)
        data.pop("_inserted", None)
        for name in self.meta.relations:
            if isinstance(data.get(name), str):
                data[name] = json.loads(data[name])
        return data

    def map_row(self, row: Any, selection: Selection | None = None) -> Any:
        """Map a row to an entity, or to a dict when the selection is partial"""
        data = self.row_to_dict(row)
        if returns_entities(selection):
            return self.entity_class(**data)
        return data

    def map_rows(self, rows: list[Any], selection: Selection | None = None) -> list[Any]:
        return [self.map_row(row, selection) for row in rows]
