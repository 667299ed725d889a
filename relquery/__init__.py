"""relquery: a query façade over a relational blog model"""

from relquery.config import DatabaseConfig
from relquery.db_context import Database, QueryTracker, transactional
from relquery.entities import Category, Post, Role, SortOrder, User
from relquery.errors import (
    NotFound,
    ReferentialViolation,
    RelQueryError,
    UniquenessViolation,
    UnsupportedOperation,
    ValidationError,
)
from relquery.facade import QueryFacade
from relquery.filters import (
    And,
    CategoryFields,
    Compare,
    Contains,
    EndsWith,
    Equals,
    Every,
    In,
    Is,
    IsNot,
    NoneMatch,
    Not,
    NotEquals,
    NotIn,
    Or,
    PostFields,
    Some,
    StartsWith,
    UserFields,
)
from relquery.operations import (
    CreateManyOp,
    CreateOp,
    DeleteManyOp,
    DeleteOp,
    UpdateManyOp,
    UpdateOp,
    UpsertOp,
)
from relquery.repository import AggregateResult, GroupSummary, Repository
from relquery.selection import CursorPage, Include, OffsetPage, OrderBy, Select
from relquery.writes import (
    Connect,
    ConnectOrCreate,
    Create,
    Decrement,
    Divide,
    Increment,
    Multiply,
)

__all__ = [
    "AggregateResult",
    "And",
    "Category",
    "CategoryFields",
    "Compare",
    "Connect",
    "ConnectOrCreate",
    "Contains",
    "Create",
    "CreateManyOp",
    "CreateOp",
    "CursorPage",
    "Database",
    "DatabaseConfig",
    "Decrement",
    "DeleteManyOp",
    "DeleteOp",
    "Divide",
    "EndsWith",
    "Equals",
    "Every",
    "GroupSummary",
    "In",
    "Include",
    "Increment",
    "Is",
    "IsNot",
    "Multiply",
    "NoneMatch",
    "Not",
    "NotEquals",
    "NotFound",
    "NotIn",
    "OffsetPage",
    "Or",
    "OrderBy",
    "Post",
    "PostFields",
    "QueryFacade",
    "QueryTracker",
    "ReferentialViolation",
    "RelQueryError",
    "Repository",
    "Role",
    "Select",
    "Some",
    "SortOrder",
    "StartsWith",
    "UniquenessViolation",
    "UnsupportedOperation",
    "UpdateManyOp",
    "UpdateOp",
    "UpsertOp",
    "User",
    "UserFields",
    "ValidationError",
    "transactional",
]
