"""Tests for filter-setting parsing and condition building."""

from datetime import datetime, timezone
from ipaddress import IPv4Address

from metacrud.dbop.conditions import (
    Condition,
    ConditionSet,
    QueryDefine,
    Scalar,
    ValueSet,
    build_condition,
    build_range_cond,
    classify,
    parse_query_settings,
    substitute_expr,
)
from metacrud.params import Params, Range


class TestParseQuerySettings:
    """Tests for parse_query_settings."""

    def test_like_with_valid_args(self):
        """Wildcard prefix and suffix are kept."""
        defines = parse_query_settings({"Name": "like:%,%"})
        assert defines == {"Name": [QueryDefine("like", ("%", "%"))]}

    def test_like_with_invalid_args_falls_back(self):
        """Bad like arguments become a prefix match."""
        assert parse_query_settings({"Name": "like:x,%"})["Name"] == [QueryDefine("like", ("", "%"))]
        assert parse_query_settings({"Name": "like"})["Name"] == [QueryDefine("like", ("", "%"))]

    def test_table_needs_exactly_one_arg(self):
        """table directives without one argument are dropped."""
        assert parse_query_settings({"Name": "table:g"})["Name"] == [QueryDefine("table", ("g",))]
        assert parse_query_settings({"Name": "table"})["Name"] == []
        assert parse_query_settings({"Name": "table:a,b"})["Name"] == []

    def test_expr_with_commas_kept_whole(self):
        """Commas do not split an expression."""
        defines = parse_query_settings({"Score": "expr:GREATEST($, 0, 1)"})
        assert defines["Score"] == [QueryDefine("expr", ("GREATEST($, 0, 1)",))]

    def test_expr_without_arg_dropped(self):
        """An empty expression is ignored."""
        assert parse_query_settings({"Score": "expr"})["Score"] == []

    def test_multiple_directives(self):
        """Directives are separated by pipes."""
        defines = parse_query_settings({"Name": "table:u|like:%,"})
        assert defines["Name"] == [QueryDefine("table", ("u",)), QueryDefine("like", ("%", ""))]

    def test_or_group(self):
        """or lists its member fields."""
        defines = parse_query_settings({"Keyword": "or:Name,Email"})
        assert defines["Keyword"] == [QueryDefine("or", ("Name", "Email"))]

    def test_unknown_kind_kept_verbatim(self):
        """Unrecognised kinds pass through."""
        defines = parse_query_settings({"Name": "custom:a,b"})
        assert defines["Name"] == [QueryDefine("custom", ("a", "b"))]

    def test_empty_items_skipped(self):
        """Empty pipe segments are skipped."""
        assert parse_query_settings({"Name": "||table:u"})["Name"] == [QueryDefine("table", ("u",))]

    def test_none(self):
        """No settings parse to an empty mapping."""
        assert parse_query_settings(None) == {}


class TestSubstituteExpr:
    """Tests for expression substitution."""

    def test_mark_replaced(self):
        """The $ mark takes the value."""
        define = QueryDefine("expr", ("score + $",))
        assert substitute_expr(define, 5) == "score + 5"


class TestClassify:
    """Tests for parameter classification."""

    def test_variants(self):
        """Lists, ranges and scalars map to their variants."""
        assert classify([1, 2]) == ValueSet((1, 2))
        assert classify(Range(1, 2)) == Range(1, 2)
        assert classify("a") == Scalar("a")


class TestBuildCondition:
    """Tests for build_condition."""

    def test_equality(self):
        """Scalars compare for equality."""
        assert build_condition('"name"', "alice") == Condition('"name"=?', ["alice"])

    def test_in(self):
        """Sets become IN lists."""
        cond = build_condition('"id"', [1, 2, 3])
        assert cond == Condition('"id" IN (?, ?, ?)', [1, 2, 3])

    def test_empty_set_matches_nothing(self):
        """An empty set yields a false condition."""
        assert build_condition('"id"', []) == Condition("1=0", [])

    def test_closed_range(self):
        """Closed ranges include both ends."""
        cond = build_condition('"age"', Range(20, 30))
        assert cond == Condition('"age">=? AND "age"<=?', [20, 30])

    def test_half_open_range(self):
        """Open ends use strict comparisons."""
        cond = build_condition('"age"', Range(20, 30, left_closed=False, right_closed=False))
        assert cond.sql == '"age">? AND "age"<?'

    def test_datetime_range_bound_as_unix_seconds(self):
        """Datetime bounds are converted to unix time."""
        left = datetime(2024, 1, 1, tzinfo=timezone.utc)
        right = datetime(2024, 1, 2, tzinfo=timezone.utc)
        cond = build_condition('"ts"', Range(left, right))
        assert cond.args == [1704067200, 1704153600]

    def test_like(self):
        """like wraps the value in its wildcards."""
        cond = build_condition('"name"', "li", [QueryDefine("like", ("%", "%"))])
        assert cond == Condition('"name" LIKE ?', ["%li%"])

    def test_like_on_number_stringifies(self):
        """Numbers are matched by their text."""
        cond = build_condition('"code"', 12, [QueryDefine("like", ("", "%"))])
        assert cond.args == ["12%"]

    def test_ip_bound_as_string(self):
        """IP addresses are bound as text."""
        assert build_condition('"ip"', IPv4Address("10.0.0.1")).args == ["10.0.0.1"]

    def test_build_range_cond(self):
        """Range SQL follows the closed flags."""
        assert build_range_cond("c", True, False) == "c>=? AND c<?"


class TestConditionSet:
    """Tests for assembling WHERE clauses."""

    def test_and_in_insertion_order(self):
        """Conditions are ANDed in the order added."""
        conditions = ConditionSet()
        conditions.add("A", Condition("a=?", [1]))
        conditions.add("B", Condition("b=?", [2]))
        assert conditions.assemble() == ("a=? AND b=?", [1, 2])

    def test_or_groups_first(self):
        """OR groups come before the remaining conditions."""
        conditions = ConditionSet()
        conditions.add("Age", Condition("age=?", [30]))
        conditions.add("Name", Condition("name=?", ["x"]))
        conditions.add("Email", Condition("email=?", ["x"]))

        where, args = conditions.assemble([("Name", "Email")])
        assert where == "(name=? OR email=?) AND age=?"
        assert args == ["x", "x", 30]

    def test_empty_or_group_skipped(self):
        """Groups with no matching conditions add nothing."""
        conditions = ConditionSet()
        conditions.add("Age", Condition("age=?", [30]))
        assert conditions.assemble([("Missing",)]) == ("age=?", [30])

    def test_empty(self):
        """No conditions give an empty clause."""
        assert ConditionSet().assemble() == ("", [])


class TestParams:
    """Tests for the parameter source."""

    def test_get_int(self):
        """Integers are parsed with a default for bad values."""
        params = Params({"_pageSize": "20", "bad": "x"})
        assert params.get_int("_pageSize") == 20
        assert params.get_int("bad", 7) == 7
        assert params.get_int("missing", 3) == 3

    def test_get_string_array(self):
        """Comma strings and lists both give string arrays."""
        assert Params({"o": "a,b"}).get_string_array("o") == ["a", "b"]
        assert Params({"o": ["a", "b"]}).get_string_array("o") == ["a", "b"]
        assert Params().get_string_array("o") == []

    def test_copy_is_independent(self):
        """Changes to a copy do not leak back."""
        params = Params({"a": 1})
        copy = params.copy()
        copy.set("b", 2)
        assert not params.has("b")
