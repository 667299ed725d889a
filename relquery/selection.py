"""Projection, sorting and pagination descriptors for find()"""

from dataclasses import dataclass
from typing import Union

from relquery.entities import SortOrder
from relquery.errors import ValidationError


@dataclass(frozen=True, init=False)
class Select:
    """Return only the named scalar fields, plus the named relations.

    Select("title", author=Select("name"))

    Relation values are True (every scalar of the related record), a nested
    Select or a nested Include. Results shaped by a Select are plain dicts.
    """

    fields: tuple[str, ...]
    relations: tuple[tuple[str, "RelationSelection"], ...]

    def __init__(self, *fields: str, **relations: "RelationSelection"):
        object.__setattr__(self, "fields", tuple(str(f) for f in fields))
        object.__setattr__(self, "relations", tuple(relations.items()))


@dataclass(frozen=True, init=False)
class Include:
    """Return every scalar field, plus the named relations.

    Include(posts=True, author=Select("name"))
    """

    relations: tuple[tuple[str, "RelationSelection"], ...]

    def __init__(self, **relations: "RelationSelection"):
        object.__setattr__(self, "relations", tuple(relations.items()))


Selection = Union[Select, Include]
RelationSelection = Union[bool, Select, Include]


def returns_entities(selection: Selection | None) -> bool:
    """Whether records shaped by this selection can be built as entities.

    Any Select in the tree yields partial records, which are returned as dicts.
    """
    if selection is None:
        return True
    if isinstance(selection, Select):
        return False
    return all(
        isinstance(value, bool)
        or (isinstance(value, Include) and returns_entities(value))
        for _, value in selection.relations
    )


@dataclass(frozen=True)
class OrderBy:
    field: str
    order: SortOrder = SortOrder.ASC

    def __post_init__(self):
        object.__setattr__(self, "field", str(self.field))
        object.__setattr__(self, "order", SortOrder(self.order))


@dataclass(frozen=True)
class OffsetPage:
    """Zero-based page `index` of `size` records: skips index * size records"""

    index: int
    size: int

    def __post_init__(self):
        if self.index < 0:
            raise ValidationError("Page index must be 0 or greater")
        if self.size < 0:
            raise ValidationError("Page size must be 0 or greater")

    @property
    def offset(self) -> int:
        return self.index * self.size


@dataclass(frozen=True)
class CursorPage:
    """The `size` records sorting strictly after the record whose id is `cursor`"""

    cursor: int
    size: int

    def __post_init__(self):
        if self.size < 0:
            raise ValidationError("Page size must be 0 or greater")


Page = Union[OffsetPage, CursorPage]
