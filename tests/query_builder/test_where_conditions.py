"""
Tests for translating filter trees into WHERE conditions.
"""

import pytest

from relquery.entities import Post, Role, User
from relquery.errors import ValidationError
from relquery.filters import (
    And,
    Compare,
    Equals,
    In,
    NotEquals,
    NotIn,
    Or,
    PostFields,
    UserFields,
)
from relquery.query_builder import QueryBuilder

USER_COLUMNS = "t0.id, t0.name, t0.email, t0.role"
POST_COLUMNS = "t0.id, t0.title, t0.published, t0.like_num, t0.author_id"


class TestScalarPredicates:
    """Test cases for predicates on a single field"""

    def test_no_filter(self):
        query, params = QueryBuilder(User).build()

        assert query == f"SELECT {USER_COLUMNS} FROM users t0 ORDER BY t0.id"
        assert params == []

    def test_equals(self):
        query, params = QueryBuilder(User).where(UserFields.name.eq("John")).build()

        assert query == f"SELECT {USER_COLUMNS} FROM users t0 WHERE t0.name = $1 ORDER BY t0.id"
        assert params == ["John"]

    def test_equals_none_is_null(self):
        query, params = QueryBuilder(User).where(Equals("name", None)).build()

        assert "WHERE t0.name IS NULL" in query
        assert params == []

    def test_not_equals(self):
        query, params = QueryBuilder(User).where(NotEquals("name", "John")).build()
        assert "WHERE t0.name <> $1" in query
        assert params == ["John"]

        query, params = QueryBuilder(User).where(UserFields.name.ne(None)).build()
        assert "WHERE t0.name IS NOT NULL" in query
        assert params == []

    def test_mapping_is_equality_conjunction(self):
        query, params = QueryBuilder(User).where({"name": "John", "email": "j@x.io"}).build()

        assert "WHERE (t0.name = $1 AND t0.email = $2)" in query
        assert params == ["John", "j@x.io"]

    def test_enum_values_are_bound_by_value(self):
        _, params = QueryBuilder(User).where(UserFields.role.eq(Role.ADMIN)).build()
        assert params == ["ADMIN"]

    def test_contains_starts_with_ends_with(self):
        query, params = (
            QueryBuilder(Post)
            .where(PostFields.title.contains("github"))
            .where(PostFields.title.starts_with("Join"))
            .where(PostFields.title.ends_with("Slack", insensitive=True))
            .build()
        )

        assert query == (
            f"SELECT {POST_COLUMNS} FROM posts t0 "
            "WHERE t0.title LIKE $1 AND t0.title LIKE $2 AND t0.title ILIKE $3 "
            "ORDER BY t0.id"
        )
        assert params == ["%github%", "Join%", "%Slack"]

    def test_like_wildcards_in_value_are_escaped(self):
        _, params = QueryBuilder(Post).where(PostFields.title.contains("50%_off")).build()
        assert params == ["%50\\%\\_off%"]

    def test_comparisons(self):
        query, params = (
            QueryBuilder(Post)
            .where(PostFields.like_num.gt(1))
            .where(PostFields.like_num.gte(2))
            .where(PostFields.like_num.lt(9))
            .where(PostFields.like_num.lte(8))
            .build()
        )

        assert (
            "WHERE t0.like_num > $1 AND t0.like_num >= $2 "
            "AND t0.like_num < $3 AND t0.like_num <= $4"
        ) in query
        assert params == [1, 2, 9, 8]

    def test_comparison_accepts_raw_operator(self):
        query, _ = QueryBuilder(Post).where(Compare("like_num", ">=", 3)).build()
        assert "t0.like_num >= $1" in query

    def test_unknown_comparison_operator(self):
        with pytest.raises(ValidationError, match="Unsupported comparison"):
            QueryBuilder(Post).where(Compare("like_num", "!~", 3)).build()

    def test_in_and_not_in(self):
        query, params = (
            QueryBuilder(Post).where(In("id", (1, 2))).where(NotIn("id", (3,))).build()
        )

        assert "WHERE t0.id = ANY($1) AND NOT (t0.id = ANY($2))" in query
        assert params == [[1, 2], [3]]

    def test_empty_in_lists(self):
        query, params = QueryBuilder(Post).where(In("id", ())).build()
        assert "WHERE FALSE" in query

        query, params = QueryBuilder(Post).where(NotIn("id", ())).build()
        assert "WHERE TRUE" in query
        assert params == []

    def test_unknown_field(self):
        with pytest.raises(ValidationError, match="User has no field 'age'"):
            QueryBuilder(User).where(Equals("age", 3)).build()


class TestBooleanComposition:
    """Test cases for AND / OR / NOT nesting"""

    def test_or_with_and(self):
        """Posts mentioning github or twitter by one author"""
        where = And(
            Or(PostFields.title.contains("github"), PostFields.title.contains("twitter")),
            PostFields.author_id.eq(3),
        )
        query, params = QueryBuilder(Post).where(where).build()

        assert query == (
            f"SELECT {POST_COLUMNS} FROM posts t0 "
            "WHERE ((t0.title LIKE $1 OR t0.title LIKE $2) AND t0.author_id = $3) "
            "ORDER BY t0.id"
        )
        assert params == ["%github%", "%twitter%", 3]

    def test_negated_comparison_in_or(self):
        """Users whose id is not above 2, or whose name starts with s"""
        where = ~UserFields.id.gt(2) | UserFields.name.starts_with("s")
        query, params = QueryBuilder(User).where(where).build()

        assert "WHERE (NOT (t0.id > $1) OR t0.name LIKE $2)" in query
        assert params == [2, "s%"]

    def test_operators_build_nodes(self):
        a = UserFields.name.eq("a")
        b = UserFields.name.eq("b")

        assert (a & b) == And(a, b)
        assert (a | b) == Or(a, b)
        assert (~a).item == a

    def test_empty_or_matches_nothing(self):
        query, params = QueryBuilder(User).where(Or()).build()

        assert query == f"SELECT {USER_COLUMNS} FROM users t0 WHERE FALSE ORDER BY t0.id"
        assert params == []

    def test_empty_and_matches_everything(self):
        query, params = QueryBuilder(User).where(And()).build()

        assert query == f"SELECT {USER_COLUMNS} FROM users t0 WHERE TRUE ORDER BY t0.id"
        assert params == []

    def test_single_item_groups_are_not_parenthesised(self):
        query, _ = QueryBuilder(User).where(Or(And(UserFields.id.eq(1)))).build()
        assert "WHERE t0.id = $1" in query

    def test_empty_groups_nested(self):
        query, _ = QueryBuilder(User).where(Or(And(), UserFields.id.eq(1))).build()
        assert "WHERE (TRUE OR t0.id = $1)" in query

    def test_parameter_numbering_across_nesting(self):
        where = Or(
            And(UserFields.name.eq("a"), UserFields.email.eq("b")),
            And(UserFields.name.eq("c"), ~UserFields.email.eq("d")),
        )
        query, params = QueryBuilder(User).where(where).build()

        assert (
            "WHERE ((t0.name = $1 AND t0.email = $2) OR (t0.name = $3 AND NOT (t0.email = $4)))"
        ) in query
        assert params == ["a", "b", "c", "d"]

    def test_builder_is_immutable(self):
        base = QueryBuilder(User)
        filtered = base.where(UserFields.id.eq(1))

        assert "WHERE" not in base.to_sql()
        assert "WHERE" in filtered.to_sql()

    def test_where_none_is_ignored(self):
        base = QueryBuilder(User)
        assert base.where(None) is base

    def test_where_rejects_other_types(self):
        with pytest.raises(TypeError):
            QueryBuilder(User).where(["name", "John"])
