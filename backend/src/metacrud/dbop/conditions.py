"""Query condition builder.

Filter settings are per-field strings of ``|``-separated directives:

    {"Name": "like:%,%", "Keyword": "or:Name,Email", "GroupName": "table:g"}

Supported directive kinds:
  like:<prefix>,<suffix>   wrap the value for a LIKE match ("" or "%" each)
  table:<name>             qualify the column with a table or alias
  expr:<raw sql>           raw SQL where "$" is replaced by the value
  or:<field1,field2,...>   OR the named fields' conditions together
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Network
from typing import Any, NamedTuple

from metacrud.params import Range

LIKE = "like"
TABLE = "table"
EXPR = "expr"
OR = "or"

WILDCARD = "%"
EXPR_MARK = "$"

# Query-settings key whose table directive replaces the model's table
TABLE_SETTING = ":table:"


@dataclass(frozen=True)
class QueryDefine:
    kind: str
    args: tuple[str, ...] = ()


def parse_query_settings(query_settings: Mapping[str, str] | None) -> dict[str, list[QueryDefine]]:
    """Parse ``{field: "kind:a,b|kind:c"}`` into QueryDefine lists."""
    all_defines: dict[str, list[QueryDefine]] = {}
    for field, setting in (query_settings or {}).items():
        defines: list[QueryDefine] = []
        for item in setting.split("|"):
            if not item:
                continue
            kind, sep, raw_args = item.partition(":")
            args = raw_args.split(",") if sep else []

            if kind == LIKE:
                if len(args) != 2 or any(a not in ("", WILDCARD) for a in args):
                    args = ["", WILDCARD]
            elif kind == TABLE:
                if len(args) != 1:
                    continue
            elif kind == EXPR:
                if not args:
                    continue
                if len(args) > 1:
                    args = [raw_args]

            defines.append(QueryDefine(kind, tuple(args)))
        all_defines[field] = defines
    return all_defines


def find_define(defines: Iterable[QueryDefine] | None, kind: str) -> QueryDefine | None:
    for define in defines or ():
        if define.kind == kind:
            return define
    return None


def substitute_expr(define: QueryDefine, value: Any) -> str:
    """Fill the expression mark with the stringified value."""
    return define.args[0].replace(EXPR_MARK, str(value))


# ----------------------------------------------------------------------
# Parameter value variants
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class Scalar:
    value: Any


@dataclass(frozen=True)
class ValueSet:
    items: tuple[Any, ...]


ParamValue = Scalar | ValueSet | Range


def classify(value: Any) -> ParamValue:
    """Map a raw parameter value to its variant."""
    if isinstance(value, Range):
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return ValueSet(tuple(value))
    return Scalar(value)


def bind_value(value: Any) -> Any:
    """Convert values drivers cannot bind directly."""
    if isinstance(value, datetime):
        return int(value.timestamp())
    if isinstance(value, (IPv4Address, IPv6Address, IPv4Network, IPv6Network)):
        return str(value)
    return value


class Condition(NamedTuple):
    sql: str
    args: list[Any]


def build_range_cond(column: str, left_closed: bool, right_closed: bool) -> str:
    left_op = ">=" if left_closed else ">"
    right_op = "<=" if right_closed else "<"
    return f"{column}{left_op}? AND {column}{right_op}?"


def build_condition(column: str, value: Any, defines: Iterable[QueryDefine] | None = None) -> Condition:
    """Build the predicate for one field.

    Args:
        column: Quoted (optionally table-qualified) column reference
        value: Raw parameter value
        defines: The field's parsed filter settings

    Returns:
        Condition with ``?`` placeholders and the matching arguments
    """
    param = classify(value)

    if isinstance(param, ValueSet):
        if not param.items:
            # "IN ()" is a syntax error; match nothing instead
            return Condition("1=0", [])
        placeholders = ", ".join("?" for _ in param.items)
        return Condition(f"{column} IN ({placeholders})", [bind_value(v) for v in param.items])

    if isinstance(param, Range):
        return Condition(
            build_range_cond(column, param.left_closed, param.right_closed),
            [bind_value(param.left), bind_value(param.right)],
        )

    like = find_define(defines, LIKE)
    if like is not None:
        prefix, suffix = like.args
        return Condition(f"{column} LIKE ?", [f"{prefix}{param.value}{suffix}"])
    return Condition(f"{column}=?", [bind_value(param.value)])


class ConditionSet:
    """Field conditions collected for one query, in insertion order."""

    def __init__(self) -> None:
        self._conditions: dict[str, Condition] = {}

    def add(self, field: str, condition: Condition) -> None:
        self._conditions[field] = condition

    def __contains__(self, field: object) -> bool:
        return field in self._conditions

    def __len__(self) -> int:
        return len(self._conditions)

    def assemble(self, or_groups: Iterable[Iterable[str]] = ()) -> tuple[str, list[Any]]:
        """Build the WHERE clause: OR groups first, then the rest ANDed.

        Conditions consumed by an OR group are removed from the set.
        """
        clauses: list[str] = []
        args: list[Any] = []

        for group in or_groups:
            sub_clauses: list[str] = []
            for field in group:
                condition = self._conditions.pop(field, None)
                if condition is None:
                    continue
                sub_clauses.append(condition.sql)
                args.extend(condition.args)
            if sub_clauses:
                clauses.append(f"({' OR '.join(sub_clauses)})")

        for condition in self._conditions.values():
            clauses.append(condition.sql)
            args.extend(condition.args)

        return " AND ".join(clauses), args
