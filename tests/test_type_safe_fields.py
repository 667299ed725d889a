"""
Tests for type-safe field definitions using SchemaBase, Field and RelationField.

Verifies that Field objects build the same filter nodes as the node classes
and can be used in place of string literals in mappings and orderings.
"""

import pytest

from relquery.entities import Post, User
from relquery.filters import (
    And,
    Compare,
    ComparisonOperator,
    Contains,
    EndsWith,
    Equals,
    Every,
    Field,
    In,
    Is,
    IsNot,
    NoneMatch,
    NotEquals,
    NotIn,
    PostFields,
    SchemaBase,
    Some,
    StartsWith,
    UserFields,
    as_filter,
)
from relquery.query_builder import QueryBuilder
from relquery.selection import Select


class TestFieldClass:
    """Test the Field class itself"""

    def test_field_str_representation(self):
        field = Field[str]("test_column")
        assert str(field) == "test_column"
        assert field.column == "test_column"

    def test_field_repr(self):
        field = Field[bool]("published")
        assert repr(field) == "Field(published)"

    def test_custom_schema(self):
        class DraftFields(SchemaBase):
            title = Field[str]("title")

        assert DraftFields.title.eq("x") == Equals("title", "x")


class TestFieldPredicates:
    """Each helper builds the matching filter node"""

    def test_equality(self):
        assert PostFields.title.eq("a") == Equals("title", "a")
        assert PostFields.title.ne("a") == NotEquals("title", "a")

    def test_membership_takes_any_iterable(self):
        assert PostFields.id.in_([1, 2]) == In("id", (1, 2))
        assert PostFields.id.not_in(iter([3])) == NotIn("id", (3,))

    def test_text_matching(self):
        assert PostFields.title.contains("a") == Contains("title", "a")
        assert PostFields.title.starts_with("a", insensitive=True) == StartsWith("title", "a", True)
        assert PostFields.title.ends_with("a") == EndsWith("title", "a")

    def test_comparisons(self):
        assert PostFields.like_num.gt(1) == Compare("like_num", ComparisonOperator.GT, 1)
        assert PostFields.like_num.gte(1).operator is ComparisonOperator.GTE
        assert PostFields.like_num.lt(1).operator is ComparisonOperator.LT
        assert PostFields.like_num.lte(1).operator is ComparisonOperator.LTE


class TestRelationFields:
    def test_to_many_quantifiers(self):
        published = PostFields.published.eq(True)

        assert UserFields.posts.every(published) == Every("posts", published)
        assert UserFields.posts.some(published) == Some("posts", published)
        assert UserFields.posts.none() == NoneMatch("posts", And())

    def test_to_one_quantifiers(self):
        jack = UserFields.name.eq("Jack")

        assert PostFields.author.is_(jack) == Is("author", jack)
        assert PostFields.author.is_not(None) == IsNot("author", None)

    def test_repr(self):
        assert repr(PostFields.categories) == "RelationField(categories)"
        assert str(UserFields.posts) == "posts"


class TestFieldsAsNames:
    """Field objects stand in for field names"""

    def test_mapping_keys(self):
        node = as_filter({PostFields.published: True, PostFields.author_id: 1})
        assert node == And(Equals("published", True), Equals("author_id", 1))

    def test_order_by_field(self):
        query, _ = QueryBuilder(Post).order_by(PostFields.like_num).build()
        assert query.endswith("ORDER BY t0.like_num, t0.id")

    def test_select_fields(self):
        query, _ = QueryBuilder(User).select(Select(UserFields.email)).build()
        assert query.startswith("SELECT t0.email FROM users t0")

    def test_unrelated_values_are_not_filters(self):
        with pytest.raises(TypeError):
            as_filter(PostFields.title)
