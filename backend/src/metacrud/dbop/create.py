"""Create operation."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from metacrud.dbop.autofill import (
    SHOWINDEX_APPEND,
    SHOWINDEX_INSERT,
    autofill_value,
    is_duplicate_key,
    random_value,
    showindex_mode,
    to_column_value,
)
from metacrud.dbop.conditions import EXPR, find_define, parse_query_settings, substitute_expr
from metacrud.dbop.context import DbContext, resolve_model
from metacrud.dbop.session import Expr
from metacrud.errors import ApiError, ErrorType, new_error
from metacrud.models.record import Record
from metacrud.models.registry import ModelDefinition, NameMapper
from metacrud.params import Params

logger = logging.getLogger(__name__)

MAX_INSERT_ATTEMPTS = 3

RANDOM_TAGS = ("rand", "randstr")


def create(
    ctx: DbContext,
    model: Record | str,
    params: Params,
    query_settings: Mapping[str, str] | None = None,
) -> dict[str, Any] | None | ApiError:
    """Insert one record built from params and auto-fill annotations.

    Auto-filled values and a key generated by the database are written
    back into the record. Returns the primary key values, or None when
    the model has no primary key.
    """
    resolved = resolve_model(ctx, model)
    if isinstance(resolved, ApiError):
        return resolved
    definition, record = resolved

    session = ctx.session
    mapper = session.mapper
    defines = parse_query_settings(query_settings)
    table = definition.table_name(mapper)

    values: dict[str, Any] = {}
    random_fields: list[str] = []
    showindex_columns: dict[str, str] = {}

    for field in definition.fields:
        name = field.name
        column = definition.column_name(name, mapper)
        value = params.get(name)

        if value is not None:
            expr = find_define(defines.get(name), EXPR)
            if expr is not None:
                values[column] = Expr(substitute_expr(expr, value))
            else:
                record.set(name, to_column_value(value))
                values[column] = record.get(name)
            continue

        # An explicitly set value is inserted as is, never auto-filled
        if record.has(name):
            values[column] = record.get(name)
            continue

        for tag in field.tags:
            filled, auto_value = autofill_value(tag, field)
            if not filled:
                continue
            if tag.name in RANDOM_TAGS:
                random_fields.append(name)
            elif tag.name == "showindex":
                showindex_columns[column] = showindex_mode(tag)
            record.set(name, auto_value)
            values[column] = auto_value

    local_trans = bool(showindex_columns) and not session.in_transaction
    if local_trans:
        session.begin()

    pk_fields = definition.primary_keys
    pk_columns = [definition.column_name(f, mapper) for f in pk_fields]

    # A single key left unset is generated by the database
    generated_pk = pk_fields[0] if len(pk_fields) == 1 and not record.has(pk_fields[0]) else None
    returning = pk_columns[0] if generated_pk is not None else None

    for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
        try:
            with session.savepoint():
                generated = session.insert(table, values, returning=returning)
            if generated_pk is not None and generated:
                record.set(generated_pk, generated)
            break
        except Exception as exc:
            retry = (
                attempt < MAX_INSERT_ATTEMPTS
                and random_fields
                and isinstance(exc, SQLAlchemyError)
                and is_duplicate_key(exc, table, pk_columns)
            )
            if retry:
                logger.warning(
                    "Duplicate primary key inserting %s (attempt %d), regenerating %s",
                    definition.name,
                    attempt,
                    random_fields,
                )
                _regenerate(definition, record, random_fields, values, mapper)
                continue

            if local_trans:
                session.rollback()
            logger.error("[InsertFailed] %s", exc)
            return new_error(ErrorType.INTERNAL_ERROR, "InsertFailed", definition.name).with_message(
                "Insert failed."
            )

    result = {f: record.get(f) for f in pk_fields}

    try:
        _update_showindex(ctx, definition, table, showindex_columns, record)
    except SQLAlchemyError as exc:
        if local_trans:
            session.rollback()
        logger.error("[UpdateShowIndexFailed] %s", exc)
        return new_error(ErrorType.INTERNAL_ERROR, "UpdateShowIndexFailed").with_message(
            "Update ShowIndex Failed."
        )

    if local_trans:
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("[SessionCommitFailed] %s", exc)
            return new_error(ErrorType.INTERNAL_ERROR, "SessionCommitFailed").with_message(
                "Session Commit Failed."
            )

    if not pk_fields:
        return None
    return result


def _regenerate(
    definition: ModelDefinition,
    record: Record,
    random_fields: list[str],
    values: dict[str, Any],
    mapper: NameMapper,
) -> None:
    """Draw new random values with each field's original annotation."""
    for name in random_fields:
        field = definition.field(name)
        for tag in field.tags:
            if tag.name not in RANDOM_TAGS:
                continue
            value = random_value(tag, field.type)
            if value is not None:
                record.set(name, value)
                values[definition.column_name(name, mapper)] = value
            break


def _update_showindex(
    ctx: DbContext,
    definition: ModelDefinition,
    table: str,
    showindex_columns: dict[str, str],
    record: Record,
) -> None:
    session = ctx.session
    q = session.quote
    pk_fields = definition.primary_keys

    for column, mode in showindex_columns.items():
        if mode == SHOWINDEX_INSERT:
            session.execute(f"UPDATE {q(table)} SET {q(column)}={q(column)}+1")
        elif mode == SHOWINDEX_APPEND and pk_fields:
            pk_value = record.get(pk_fields[0])
            pk_column = definition.column_name(pk_fields[0], session.mapper)
            session.execute(
                f"UPDATE {q(table)} SET {q(column)}=? WHERE {q(pk_column)}=?",
                [pk_value, pk_value],
            )
