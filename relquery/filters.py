"""
Filter expression tree.

A filter is one of the node classes below. Nodes are immutable and compose
with `&` (And), `|` (Or) and `~` (Not):

    UserFields.name.starts_with("s") | ~UserFields.id.gt(2)
    UserFields.posts.every(PostFields.published.eq(True))

The tree is translated into SQL by relquery.condition_builder.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union


class _Node:
    def __and__(self, other: "Filter") -> "And":
        return And(self, other)

    def __or__(self, other: "Filter") -> "Or":
        return Or(self, other)

    def __invert__(self) -> "Not":
        return Not(self)


class ComparisonOperator(str, Enum):
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="


@dataclass(frozen=True)
class Equals(_Node):
    """field = value; a None value matches NULL"""

    field: str
    value: Any


@dataclass(frozen=True)
class NotEquals(_Node):
    field: str
    value: Any


@dataclass(frozen=True)
class In(_Node):
    field: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class NotIn(_Node):
    field: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class Contains(_Node):
    field: str
    value: str
    insensitive: bool = False


@dataclass(frozen=True)
class StartsWith(_Node):
    field: str
    value: str
    insensitive: bool = False


@dataclass(frozen=True)
class EndsWith(_Node):
    field: str
    value: str
    insensitive: bool = False


@dataclass(frozen=True)
class Compare(_Node):
    field: str
    operator: ComparisonOperator
    value: Any


@dataclass(frozen=True)
class Not(_Node):
    item: "Filter"


@dataclass(frozen=True, init=False)
class And(_Node):
    """Conjunction. And() with no items matches every record."""

    items: tuple["Filter", ...]

    def __init__(self, *items: "Filter"):
        object.__setattr__(self, "items", tuple(items))


@dataclass(frozen=True, init=False)
class Or(_Node):
    """Disjunction. Or() with no items matches no record."""

    items: tuple["Filter", ...]

    def __init__(self, *items: "Filter"):
        object.__setattr__(self, "items", tuple(items))


# Quantifiers over to-many relations (one-to-many, many-to-many)
@dataclass(frozen=True)
class Every(_Node):
    """All related records match; true when there are none"""

    relation: str
    where: "Filter" = And()


@dataclass(frozen=True)
class Some(_Node):
    relation: str
    where: "Filter" = And()


@dataclass(frozen=True)
class NoneMatch(_Node):
    relation: str
    where: "Filter" = And()


# Quantifiers over to-one relations (many-to-one)
@dataclass(frozen=True)
class Is(_Node):
    """The related record matches; `where=None` means the relation is absent"""

    relation: str
    where: "Filter | None"


@dataclass(frozen=True)
class IsNot(_Node):
    """The related record does not match; `where=None` means the relation is set"""

    relation: str
    where: "Filter | None"


Filter = Union[
    Equals,
    NotEquals,
    In,
    NotIn,
    Contains,
    StartsWith,
    EndsWith,
    Compare,
    Not,
    And,
    Or,
    Every,
    Some,
    NoneMatch,
    Is,
    IsNot,
]

FilterLike = Union[Filter, Mapping[str, Any]]


def as_filter(where: FilterLike | None) -> Filter | None:
    """Accept a filter node or a {field: value} mapping of equalities"""
    if where is None or isinstance(where, _Node):
        return where
    if isinstance(where, Mapping):
        return And(*(Equals(str(name), value) for name, value in where.items()))
    raise TypeError(f"Expected a filter node or a mapping, got {type(where).__name__}")


T = TypeVar("T")


class Field(Generic[T]):
    """Type-safe field definition for schema classes.

    Usage:
        class PostFields(SchemaBase):
            published = Field[bool]("published")
            title = Field[str]("title")

    This allows for:
        facade.posts.find(PostFields.published.eq(True))
        facade.posts.find(PostFields.title.contains("github"))
    """

    def __init__(self, column_name: str):
        """
        Args:
            column_name: The actual database column name
        """
        self._column_name = column_name

    @property
    def column(self) -> str:
        """Return the underlying database column name."""
        return self._column_name

    def __str__(self) -> str:
        return self._column_name

    def __repr__(self) -> str:
        return f"Field({self._column_name})"

    def eq(self, value: T | None) -> Equals:
        return Equals(self._column_name, value)

    def ne(self, value: T | None) -> NotEquals:
        return NotEquals(self._column_name, value)

    def in_(self, values: Iterable[T]) -> In:
        return In(self._column_name, tuple(values))

    def not_in(self, values: Iterable[T]) -> NotIn:
        return NotIn(self._column_name, tuple(values))

    def contains(self, value: str, insensitive: bool = False) -> Contains:
        return Contains(self._column_name, value, insensitive)

    def starts_with(self, value: str, insensitive: bool = False) -> StartsWith:
        return StartsWith(self._column_name, value, insensitive)

    def ends_with(self, value: str, insensitive: bool = False) -> EndsWith:
        return EndsWith(self._column_name, value, insensitive)

    def gt(self, value: T) -> Compare:
        return Compare(self._column_name, ComparisonOperator.GT, value)

    def gte(self, value: T) -> Compare:
        return Compare(self._column_name, ComparisonOperator.GTE, value)

    def lt(self, value: T) -> Compare:
        return Compare(self._column_name, ComparisonOperator.LT, value)

    def lte(self, value: T) -> Compare:
        return Compare(self._column_name, ComparisonOperator.LTE, value)


class RelationField:
    """Relation definition for schema classes, building relation quantifiers"""

    def __init__(self, relation_name: str):
        self._relation_name = relation_name

    def __str__(self) -> str:
        return self._relation_name

    def __repr__(self) -> str:
        return f"RelationField({self._relation_name})"

    def every(self, where: Filter = And()) -> Every:
        return Every(self._relation_name, where)

    def some(self, where: Filter = And()) -> Some:
        return Some(self._relation_name, where)

    def none(self, where: Filter = And()) -> NoneMatch:
        return NoneMatch(self._relation_name, where)

    def is_(self, where: Filter | None) -> Is:
        return Is(self._relation_name, where)

    def is_not(self, where: Filter | None) -> IsNot:
        return IsNot(self._relation_name, where)


class SchemaBase:
    """Base class for schema definitions with type-safe fields."""

    pass


class UserFields(SchemaBase):
    id = Field[int]("id")
    name = Field[str | None]("name")
    email = Field[str]("email")
    role = Field[str]("role")
    posts = RelationField("posts")


class PostFields(SchemaBase):
    id = Field[int]("id")
    title = Field[str]("title")
    published = Field[bool]("published")
    like_num = Field[int]("like_num")
    author_id = Field[int]("author_id")
    author = RelationField("author")
    categories = RelationField("categories")


class CategoryFields(SchemaBase):
    id = Field[int]("id")
    name = Field[str]("name")
    posts = RelationField("posts")
