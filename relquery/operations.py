"""
Mutation descriptors.

Each descriptor describes one façade mutation without running it. They are
what run_atomic_batch() accepts: every descriptor is built before the batch
starts, so no operation can consume another one's result.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

from relquery.filters import FilterLike
from relquery.selection import Selection


@dataclass(frozen=True)
class CreateOp:
    model: Any
    data: Mapping[str, Any]
    select: Selection | None = None


@dataclass(frozen=True)
class CreateManyOp:
    model: Any
    rows: Sequence[Mapping[str, Any]]
    skip_duplicates: bool = False


@dataclass(frozen=True)
class UpdateOp:
    model: Any
    id: int
    patch: Mapping[str, Any]


@dataclass(frozen=True)
class UpdateManyOp:
    model: Any
    where: FilterLike
    patch: Mapping[str, Any]


@dataclass(frozen=True)
class UpsertOp:
    model: Any
    where: Mapping[str, Any]
    update: Mapping[str, Any]
    create: Mapping[str, Any]


@dataclass(frozen=True)
class DeleteOp:
    model: Any
    id: int


@dataclass(frozen=True)
class DeleteManyOp:
    model: Any
    where: FilterLike


Operation = Union[
    CreateOp, CreateManyOp, UpdateOp, UpdateManyOp, UpsertOp, DeleteOp, DeleteManyOp
]
