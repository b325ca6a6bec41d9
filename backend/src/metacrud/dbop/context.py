"""Shared plumbing for the CRUD operations."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, NamedTuple

from metacrud.dbop.conditions import TABLE, QueryDefine, find_define
from metacrud.dbop.session import Query, SelectColumn, Session
from metacrud.errors import ApiError, ErrorType, new_error
from metacrud.models.record import Record
from metacrud.models.registry import ModelDefinition, ModelRegistry
from metacrud.params import Params

ModelRef = Record | str
JoinCond = Sequence[str]


@dataclass
class DbContext:
    """What every operation needs: a session and the model registry."""

    session: Session
    models: ModelRegistry


class JoinClause(NamedTuple):
    operator: str
    table: str
    condition: str
    alias: str | None = None


def resolve_model(ctx: DbContext, model: Any) -> tuple[ModelDefinition, Record] | ApiError:
    """Find the definition for a record or model name.

    A model name yields a fresh empty record; a Record is used as is.
    """
    if isinstance(model, str):
        name = model
    elif isinstance(model, Record):
        name = model.model_name
    else:
        return new_error(ErrorType.INTERNAL_ERROR, "WrongParamType").with_message(
            "Expected a record or a model name!"
        )

    definition = ctx.models.get(name)
    if isinstance(definition, ApiError):
        return definition

    if isinstance(model, Record):
        return definition, model
    return definition, definition.new_record()


def parse_join_conds(join_conds: Sequence[JoinCond] | None) -> list[JoinClause] | ApiError:
    """Validate join triples ``(operator, table, condition)``.

    The table may be given as ``"table AS alias"``.
    """
    clauses: list[JoinClause] = []
    for join_cond in join_conds or ():
        if len(join_cond) != 3:
            return new_error(ErrorType.INTERNAL_ERROR, "WrongJoinCond").with_message(
                "Join cond format must be: {join_operator, tablename, condition}!"
            )
        operator, table, condition = join_cond
        alias = None
        parts = table.split()
        if len(parts) == 3 and parts[1].lower() == "as":
            table, alias = parts[0], parts[2]
        clauses.append(JoinClause(operator, table.strip(), condition, alias))
    return clauses


def apply_joins(query: Query, joins: Sequence[JoinClause]) -> Query:
    for join in joins:
        query.join(join.operator, join.table, join.condition, join.alias)
    return query


def field_table(definition: ModelDefinition, field: str, default_table: str | None,
                defines: Mapping[str, list[QueryDefine]] | None = None) -> str | None:
    """Table a field's column is read from; ``table:`` directives win."""
    table_define = find_define((defines or {}).get(field), TABLE)
    if table_define is not None:
        return table_define.args[0]
    if field in definition.main_fields():
        return default_table
    return None


def column_ref(session: Session, definition: ModelDefinition, field: str, table: str | None) -> str:
    """Quoted, optionally table-qualified, column reference for a field."""
    column = session.quote(definition.column_name(field, session.mapper))
    if table is None:
        return column
    return f"{session.quote(table)}.{column}"


def select_columns(
    session: Session,
    definition: ModelDefinition,
    table: str,
    *,
    include_refs: bool,
    defines: Mapping[str, list[QueryDefine]] | None = None,
) -> list[SelectColumn]:
    """Columns to select, aliased by field name.

    Reference fields only exist in joined tables, so they are selected
    only when the query has joins.
    """
    columns: list[SelectColumn] = []
    ref_fields = set(definition.ref_fields())
    for field in definition.field_names():
        if field in ref_fields and not include_refs:
            continue
        columns.append(
            SelectColumn(
                column=definition.column_name(field, session.mapper),
                alias=field,
                table=field_table(definition, field, table, defines),
            )
        )
    return columns


def hidden_columns(session: Session, definition: ModelDefinition, scope: str) -> tuple[list[str], list[str]]:
    """(hidden field names, their column names) for a view scope."""
    fields = definition.hidden_fields(scope)
    return fields, [definition.column_name(f, session.mapper) for f in fields]


def pk_values(definition: ModelDefinition, params: Params) -> list[Any] | None:
    """Values of every primary key field, or None if any is missing."""
    values = []
    for field in definition.primary_keys:
        value = params.get(field)
        if value is None:
            return None
        values.append(value)
    return values


def pk_where(session: Session, definition: ModelDefinition, table: str | None = None) -> str:
    return " AND ".join(
        f"{column_ref(session, definition, field, table)}=?" for field in definition.primary_keys
    )


def load_row(record: Record, row: Mapping[str, Any]) -> Record:
    """Copy a fetched row (keyed by field name) into a record."""
    for field, value in row.items():
        if field in record.definition:
            record.set(field, value)
    return record


def undefined_pk_error() -> ApiError:
    return new_error(ErrorType.INTERNAL_ERROR, "UndefinedPK").with_message("Primary key is undefined!")


def incomplete_pk_error() -> ApiError:
    return new_error(ErrorType.INTERNAL_ERROR, "IncompletePKValue").with_message(
        "Primary key value is incomplete!"
    )
