"""List operation: filter, order, paginate."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from metacrud.dbop.conditions import (
    OR,
    TABLE,
    TABLE_SETTING,
    ConditionSet,
    QueryDefine,
    build_condition,
    find_define,
    parse_query_settings,
)
from metacrud.dbop.context import (
    DbContext,
    JoinCond,
    apply_joins,
    column_ref,
    field_table,
    hidden_columns,
    load_row,
    parse_join_conds,
    resolve_model,
    select_columns,
)
from metacrud.dbop.session import Query, Session
from metacrud.errors import ApiError, ErrorType, new_error
from metacrud.models.record import Record, redact
from metacrud.models.registry import HIDDEN_LIST, ModelDefinition
from metacrud.params import ORDER, ORDER_BY, PAGE_NUMBER, PAGE_SIZE, Params

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 1000


def page_settings(params: Params) -> tuple[int, int]:
    """(page number, page size) with out-of-range values replaced."""
    page_size = DEFAULT_PAGE_SIZE
    if params.has(PAGE_SIZE):
        page_size = params.get_int(PAGE_SIZE)
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            page_size = DEFAULT_PAGE_SIZE

    page_number = 1
    if params.has(PAGE_NUMBER):
        page_number = max(params.get_int(PAGE_NUMBER, 1), 1)
    return page_number, page_size


def expand_or_groups(
    params: Params, defines: Mapping[str, list[QueryDefine]]
) -> tuple[Params, list[tuple[str, ...]]]:
    """Copy each OR source value onto its member fields.

    Works on a copy, so the caller's params are left untouched.
    """
    expanded = params.copy()
    groups: list[tuple[str, ...]] = []
    for field, field_defines in defines.items():
        for define in field_defines:
            if define.kind != OR or not params.has(field):
                continue
            groups.append(define.args)
            value = params.get(field)
            for member in define.args:
                expanded.set(member, value)
    return expanded, groups


def list_records(
    ctx: DbContext,
    model: Record | str,
    params: Params,
    query_settings: Mapping[str, str] | None = None,
    join_conds: Sequence[JoinCond] | None = None,
) -> dict[str, Any] | ApiError:
    """Count and fetch one page of records matching params.

    Returns:
        PageNumber, PageSize, TotalCount, PageCount, ``<Main>List`` and,
        for models with a showindex field, the neighbouring ShowIndex values
    """
    joins = parse_join_conds(join_conds)
    if isinstance(joins, ApiError):
        return joins

    resolved = resolve_model(ctx, model)
    if isinstance(resolved, ApiError):
        return resolved
    definition, _ = resolved

    session = ctx.session
    defines = parse_query_settings(query_settings)

    table = definition.table_name(session.mapper)
    table_define = find_define(defines.pop(TABLE_SETTING, None), TABLE)
    if table_define is not None:
        table = table_define.args[0]

    count_query = apply_joins(session.query(table), joins)
    find_query = apply_joins(session.query(table), joins)

    filter_params, or_groups = expand_or_groups(params, defines)
    conditions = ConditionSet()
    for field in definition.field_names():
        if not filter_params.has(field):
            continue
        column = column_ref(session, definition, field, field_table(definition, field, table, defines))
        conditions.add(field, build_condition(column, filter_params.get(field), defines.get(field)))

    where, where_args = conditions.assemble(or_groups)
    count_query.where(where, *where_args)
    find_query.where(where, *where_args)

    try:
        total_count = count_query.count()
    except SQLAlchemyError as exc:
        logger.error("[CountFailed] %s", exc)
        return new_error(ErrorType.INTERNAL_ERROR, "CountFailed", definition.name).with_message(
            "Count failed."
        )

    page_number, page_size = page_settings(params)
    page_count = (total_count + page_size - 1) // page_size
    result: dict[str, Any] = {}
    items: list[Any] = []

    if total_count > 0:
        hidden_fields, omit = hidden_columns(session, definition, HIDDEN_LIST)
        find_query.omit(*omit)
        _apply_order(find_query, session, definition, table, params, defines)

        showindex_fields = definition.tag_fields("showindex")
        showindex_field = showindex_fields[0] if showindex_fields else None

        more_pre = more_next = 0
        offset = (page_number - 1) * page_size
        if showindex_field is not None:
            if 1 < page_number <= page_count:
                more_pre = 1
            if page_number < page_count:
                more_next = 1
        find_query.limit(page_size + more_pre + more_next, offset - more_pre)

        columns = select_columns(
            session, definition, table, include_refs=bool(joins), defines=defines
        )
        try:
            rows = find_query.find(columns)
        except SQLAlchemyError as exc:
            logger.error("[FindFailed] %s", exc)
            return new_error(ErrorType.INTERNAL_ERROR, "FindFailed", definition.name).with_message(
                "Find failed."
            )

        if showindex_field is not None:
            index_info: dict[str, Any] = {"pre": -1, "next": -1}
            if more_pre and rows:
                index_info["pre"] = rows.pop(0).get(showindex_field)
            if more_next and rows:
                index_info["next"] = rows.pop().get(showindex_field)
            result["ShowIndex"] = index_info

        records = [load_row(definition.new_record(), row) for row in rows]
        if hidden_fields:
            items = [redact(record, hidden_fields) for record in records]
        else:
            items = records

    result["PageNumber"] = page_number
    result["PageSize"] = page_size
    result["TotalCount"] = total_count
    result["PageCount"] = page_count
    result[definition.main_model_name + "List"] = items
    return result


def _apply_order(
    query: Query,
    session: Session,
    definition: ModelDefinition,
    table: str,
    params: Params,
    defines: Mapping[str, list[QueryDefine]],
) -> None:
    order_bys = params.get_string_array(ORDER_BY) if params.has(ORDER_BY) else []
    orders = params.get_string_array(ORDER) if params.has(ORDER) else []

    for i, field in enumerate(order_bys):
        column = column_ref(session, definition, field, field_table(definition, field, table, defines))
        order = orders[i] if i < len(orders) else "asc"
        if order == "asc":
            query.asc(column)
        else:
            query.desc(column)
