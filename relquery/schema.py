"""Model metadata: tables, columns and relations of the demo schema"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from relquery.entities import BaseEntity, Category, Post, User
from relquery.errors import ValidationError


class RelationKind(str, Enum):
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"


@dataclass(frozen=True)
class Relation:
    """A navigable relation from one model to another.

    foreign_key is the column holding the reference: on the owning table for
    MANY_TO_ONE, on the target table for ONE_TO_MANY. MANY_TO_MANY relations
    go through join_table, where join_source references this model and
    join_target references the target model.
    """

    name: str
    kind: RelationKind
    target: str
    foreign_key: str | None = None
    join_table: str | None = None
    join_source: str | None = None
    join_target: str | None = None

    @property
    def to_many(self) -> bool:
        return self.kind in (RelationKind.ONE_TO_MANY, RelationKind.MANY_TO_MANY)


@dataclass(frozen=True)
class ModelMeta:
    name: str
    table: str
    entity_class: type[BaseEntity]
    columns: Mapping[str, type]
    unique: frozenset[str] = frozenset({"id"})
    nullable: frozenset[str] = frozenset()
    relations: Mapping[str, Relation] = field(default_factory=dict)

    def column(self, name: str) -> str:
        """Return the column for a scalar field, rejecting unknown names"""
        name = str(name)
        if name not in self.columns:
            raise ValidationError(f"{self.name} has no field '{name}'")
        return name

    def relation(self, name: str) -> Relation:
        name = str(name)
        if name not in self.relations:
            raise ValidationError(f"{self.name} has no relation '{name}'")
        return self.relations[name]

    def is_numeric(self, name: str) -> bool:
        return self.columns[self.column(name)] in (int, float)

    def is_unique(self, name: str) -> bool:
        return self.column(name) in self.unique

    def is_nullable(self, name: str) -> bool:
        return self.column(name) in self.nullable

    def related(self, relation: Relation) -> "ModelMeta":
        return get_model(relation.target)


USER = ModelMeta(
    name="User",
    table="users",
    entity_class=User,
    columns={"id": int, "name": str, "email": str, "role": str},
    unique=frozenset({"id", "email"}),
    nullable=frozenset({"name"}),
    relations={
        "posts": Relation(
            "posts", RelationKind.ONE_TO_MANY, "Post", foreign_key="author_id"
        ),
    },
)

POST = ModelMeta(
    name="Post",
    table="posts",
    entity_class=Post,
    columns={
        "id": int,
        "title": str,
        "published": bool,
        "like_num": int,
        "author_id": int,
    },
    relations={
        "author": Relation(
            "author", RelationKind.MANY_TO_ONE, "User", foreign_key="author_id"
        ),
        "categories": Relation(
            "categories",
            RelationKind.MANY_TO_MANY,
            "Category",
            join_table="post_categories",
            join_source="post_id",
            join_target="category_id",
        ),
    },
)

CATEGORY = ModelMeta(
    name="Category",
    table="categories",
    entity_class=Category,
    columns={"id": int, "name": str},
    relations={
        "posts": Relation(
            "posts",
            RelationKind.MANY_TO_MANY,
            "Post",
            join_table="post_categories",
            join_source="category_id",
            join_target="post_id",
        ),
    },
)

_MODELS: dict[str, ModelMeta] = {meta.name: meta for meta in (USER, POST, CATEGORY)}


def get_model(model: "str | type[BaseEntity] | ModelMeta") -> ModelMeta:
    """Resolve a model name, entity class or metadata into its metadata"""
    if isinstance(model, ModelMeta):
        return model
    name = model if isinstance(model, str) else model.__name__
    if name not in _MODELS:
        raise ValidationError(f"Unknown model '{name}'")
    return _MODELS[name]


DDL = """
CREATE TABLE IF NOT EXISTS users (
    id SERIAL PRIMARY KEY,
    name VARCHAR(255),
    email VARCHAR(255) NOT NULL UNIQUE,
    role VARCHAR(16) NOT NULL DEFAULT 'USER' CHECK (role IN ('USER', 'ADMIN'))
);
CREATE TABLE IF NOT EXISTS posts (
    id SERIAL PRIMARY KEY,
    title VARCHAR(255) NOT NULL,
    published BOOLEAN NOT NULL DEFAULT FALSE,
    like_num INTEGER NOT NULL DEFAULT 0,
    author_id INTEGER NOT NULL REFERENCES users (id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS categories (
    id SERIAL PRIMARY KEY,
    name VARCHAR(255) NOT NULL
);
CREATE TABLE IF NOT EXISTS post_categories (
    post_id INTEGER NOT NULL REFERENCES posts (id) ON DELETE CASCADE,
    category_id INTEGER NOT NULL REFERENCES categories (id) ON DELETE CASCADE,
    PRIMARY KEY (post_id, category_id)
);
"""

TRUNCATE = "TRUNCATE TABLE post_categories, posts, categories, users RESTART IDENTITY CASCADE;"
