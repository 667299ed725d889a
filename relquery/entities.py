from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel
from pydantic.config import ConfigDict


class BaseEntity(BaseModel):
    """Base entity class for all database records.

    Identities are assigned by the store, so every record read back carries one.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(use_enum_values=True, extra="allow")
    id: int


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class User(BaseEntity):
    name: str | None = None
    email: str
    role: Role = Role.USER
    # Relations, only filled when included
    posts: Optional[list["Post"]] = None


class Post(BaseEntity):
    title: str
    published: bool = False
    like_num: int = 0
    author_id: int
    author: Optional[User] = None
    categories: Optional[list["Category"]] = None


class Category(BaseEntity):
    name: str
    posts: Optional[list[Post]] = None


User.model_rebuild()
Post.model_rebuild()
Category.model_rebuild()
