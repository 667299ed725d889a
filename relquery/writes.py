"""
Values accepted inside create/update descriptors.

Relation writes, placed under a relation name:

    {"posts": Create({"title": "T1", "categories": Connect(1, 2)})}
    {"author": ConnectOrCreate(where={"email": "a@x.io"}, create={"email": "a@x.io"})}

Numeric adjustments, placed under a numeric field and computed by the store:

    {"like_num": Increment(5)}
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True, init=False)
class Create:
    """Create new related records in the same operation"""

    rows: tuple[Mapping[str, Any], ...]

    def __init__(self, *rows: Mapping[str, Any]):
        object.__setattr__(self, "rows", tuple(rows))


@dataclass(frozen=True, init=False)
class Connect:
    """Associate existing related records by identity"""

    ids: tuple[int, ...]

    def __init__(self, *ids: int):
        object.__setattr__(self, "ids", tuple(ids))


@dataclass(frozen=True)
class ConnectOrCreate:
    """Connect the record matching `where` (unique fields), or create it from `create`.

    The lookup always comes first; `create` is used only when it misses and is
    not merged with `where`.
    """

    where: Mapping[str, Any]
    create: Mapping[str, Any]


RelationWrite = Union[Create, Connect, ConnectOrCreate]


@dataclass(frozen=True)
class Increment:
    by: int | float = 1


@dataclass(frozen=True)
class Decrement:
    by: int | float = 1


@dataclass(frozen=True)
class Multiply:
    by: int | float


@dataclass(frozen=True)
class Divide:
    by: int | float


NumericAdjustment = Union[Increment, Decrement, Multiply, Divide]

ADJUSTMENT_OPERATORS: dict[type, str] = {
    Increment: "+",
    Decrement: "-",
    Multiply: "*",
    Divide: "/",
}


def is_relation_write(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return bool(value) and all(
            isinstance(item, (Create, Connect, ConnectOrCreate)) for item in value
        )
    return isinstance(value, (Create, Connect, ConnectOrCreate))


def relation_writes(value: Any) -> list[RelationWrite]:
    """Normalise a single write or a list of writes into a list"""
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]
